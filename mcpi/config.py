"""
Server configuration and capability model.

The configuration is a single JSON document describing the provider, its
referrals, the capabilities it exposes and the Hello protocol texts. It is
loaded once at startup and treated as read-only afterwards.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .protocol import MCPI_VERSION


logger = logging.getLogger(__name__)

DEFAULT_OPERATIONS = {
    "data": ["SEARCH", "GET", "LIST"],
    "hello": ["HELLO"],
    "weather": ["GET", "LIST"],
    "referrals": ["LIST_REFERRALS", "GET_REFERRAL"],
}

DEFAULT_INTRODUCTION = (
    "Hello! I'm the AI assistant for this website. How can I assist you today?"
)


class ConfigError(Exception):
    """Configuration could not be read or is structurally invalid."""


@dataclass(frozen=True)
class Provider:
    """Identity of the service exposing capabilities."""
    name: str
    domain: str
    description: str = ""
    branding: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Provider":
        return cls(
            name=data.get("name", ""),
            domain=data.get("domain", ""),
            description=data.get("description", ""),
            branding=data.get("branding"),
        )

    def to_dict(self) -> dict:
        result = {
            "name": self.name,
            "domain": self.domain,
            "description": self.description,
        }
        if self.branding is not None:
            result["branding"] = self.branding
        return result


@dataclass(frozen=True)
class Referral:
    """Pointer to a related provider."""
    name: str
    domain: str
    relationship: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Referral":
        return cls(
            name=data.get("name", ""),
            domain=data.get("domain", ""),
            relationship=data.get("relationship", ""),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "domain": self.domain,
            "relationship": self.relationship,
        }


@dataclass(frozen=True)
class CapabilityConfig:
    """A named capability and the plugin kind that implements it."""
    name: str
    description: str = ""
    category: str = "misc"
    plugin: str = "data"
    operations: List[str] = field(default_factory=list)
    data_file: Optional[str] = None
    search_field: str = "name"
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "CapabilityConfig":
        if not isinstance(data, dict):
            raise ConfigError(f"Capability '{name}' must be an object")

        plugin = data.get("plugin", "data")
        operations = data.get("operations") or DEFAULT_OPERATIONS.get(plugin, [])
        if not isinstance(operations, list) or not all(isinstance(op, str) for op in operations):
            raise ConfigError(f"Capability '{name}' operations must be a list of strings")

        return cls(
            name=name,
            description=data.get("description", "No description"),
            category=data.get("category", "misc"),
            plugin=plugin,
            operations=list(operations),
            data_file=data.get("data_file"),
            search_field=data.get("search_field", "name"),
            options=dict(data.get("options") or {}),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "operations": list(self.operations),
        }


@dataclass(frozen=True)
class HelloContext:
    """Context-specific override for the Hello introduction."""
    introduction: Optional[str] = None
    highlight_capabilities: Optional[List[str]] = None


@dataclass(frozen=True)
class HelloConfig:
    """Default introduction text, metadata and named context overrides."""
    introduction: str = DEFAULT_INTRODUCTION
    metadata: Dict[str, Any] = field(default_factory=dict)
    contexts: Dict[str, HelloContext] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "HelloConfig":
        if not isinstance(data, dict):
            raise ConfigError("Hello configuration must be an object")

        default = data.get("default") or {}
        if not isinstance(default, dict):
            raise ConfigError("Hello 'default' must be an object")
        metadata = default.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ConfigError("Hello 'default.metadata' must be an object")
        introduction = default.get("introduction", DEFAULT_INTRODUCTION)
        if not isinstance(introduction, str):
            raise ConfigError("Hello 'default.introduction' must be a string")

        raw_contexts = data.get("contexts") or {}
        if not isinstance(raw_contexts, dict):
            raise ConfigError("Hello 'contexts' must be an object keyed by context name")

        contexts = {}
        for key, value in raw_contexts.items():
            if not isinstance(value, dict):
                raise ConfigError(f"Hello context '{key}' must be an object")
            context_intro = value.get("introduction")
            if context_intro is not None and not isinstance(context_intro, str):
                raise ConfigError(f"Hello context '{key}' introduction must be a string")
            highlights = value.get("highlight_capabilities")
            if highlights is not None and (
                not isinstance(highlights, list) or not all(isinstance(h, str) for h in highlights)
            ):
                raise ConfigError(
                    f"Hello context '{key}' highlight_capabilities must be a list of strings"
                )
            contexts[key] = HelloContext(
                introduction=context_intro,
                highlight_capabilities=highlights,
            )

        return cls(
            introduction=introduction,
            metadata=dict(metadata),
            contexts=contexts,
        )

    def to_dict(self) -> dict:
        contexts = {}
        for key, ctx in self.contexts.items():
            entry = {}
            if ctx.introduction is not None:
                entry["introduction"] = ctx.introduction
            if ctx.highlight_capabilities is not None:
                entry["highlight_capabilities"] = ctx.highlight_capabilities
            contexts[key] = entry
        return {
            "default": {"introduction": self.introduction, "metadata": self.metadata},
            "contexts": contexts,
        }


@dataclass
class ServerConfig:
    """Configuration for the MCPI server."""
    name: str = "mcpi-server"
    version: str = MCPI_VERSION
    host: str = "0.0.0.0"
    port: int = 3001
    data_dir: str = "data"
    discovery_path: str = "/mcpi/discover"
    session_path: str = "/mcpi"
    init_timeout: float = 30.0
    idle_timeout: float = 300.0
    provider: Provider = field(default_factory=lambda: Provider(name="MCPI Service", domain="localhost"))
    referrals: List[Referral] = field(default_factory=list)
    capabilities: List[CapabilityConfig] = field(default_factory=list)
    hello: Optional[HelloConfig] = None

    @classmethod
    def from_dict(cls, data: dict, base_dir: Optional[Path] = None) -> "ServerConfig":
        """
        Build a configuration from its decoded JSON form.

        Raises:
            ConfigError: A section or value has the wrong type.
        """
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a JSON object")

        try:
            return cls._from_dict(data, base_dir)
        except (ValueError, TypeError, AttributeError) as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def _from_dict(cls, data: dict, base_dir: Optional[Path]) -> "ServerConfig":
        server = data.get("server") or {}
        if not isinstance(server, dict):
            raise ConfigError("server must be an object")
        capabilities = data.get("capabilities") or {}
        if not isinstance(capabilities, dict):
            raise ConfigError("capabilities must be an object keyed by capability name")
        referrals = data.get("referrals") or []
        if not isinstance(referrals, list) or not all(isinstance(r, dict) for r in referrals):
            raise ConfigError("referrals must be a list of objects")
        provider = data.get("provider") or {}
        if not isinstance(provider, dict):
            raise ConfigError("provider must be an object")

        data_dir = server.get("data_dir", "data")
        if base_dir is not None and not Path(data_dir).is_absolute():
            data_dir = str(base_dir / data_dir)

        hello = data.get("hello")
        config = cls(
            data_dir=data_dir,
            provider=Provider.from_dict(provider),
            referrals=[Referral.from_dict(r) for r in referrals],
            capabilities=[
                CapabilityConfig.from_dict(name, cap) for name, cap in capabilities.items()
            ],
            hello=HelloConfig.from_dict(hello) if hello is not None else None,
        )

        for key in ("name", "version", "host", "discovery_path", "session_path"):
            if key in server:
                setattr(config, key, str(server[key]))
        for key in ("init_timeout", "idle_timeout"):
            if key in server:
                setattr(config, key, float(server[key]))
        if "port" in server:
            config.port = int(server["port"])

        return config

    def data_path(self, capability: CapabilityConfig) -> Optional[Path]:
        """Resolve a capability's data file against the data directory."""
        if capability.data_file is None:
            return None
        return Path(self.data_dir) / capability.data_file

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "host": self.host,
            "port": self.port,
            "discovery_path": self.discovery_path,
            "session_path": self.session_path,
            "capabilities": [c.name for c in self.capabilities],
        }


def load_config(path: Union[str, Path]) -> ServerConfig:
    """
    Load a server configuration file.

    Relative ``data_dir`` entries are resolved against the directory holding
    the configuration file.

    Raises:
        ConfigError: The file is missing, is not valid JSON or has the wrong shape.
    """
    path = Path(path)
    logger.info(f"Loading configuration from {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read configuration {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in configuration {path}: {e}") from e

    return ServerConfig.from_dict(data, base_dir=path.parent)


def validate_config(config: ServerConfig) -> None:
    """
    Check that every referenced data file exists.

    Raises:
        MissingFileError: Names the first capability whose file is absent.
    """
    from .registry import MissingFileError

    data_dir = Path(config.data_dir)
    needs_data = any(c.data_file for c in config.capabilities)
    if needs_data and not data_dir.is_dir():
        raise MissingFileError("*", f"Data directory missing: {data_dir}")

    for capability in config.capabilities:
        path = config.data_path(capability)
        if path is not None and not path.is_file():
            raise MissingFileError(capability.name, f"Data file not found: {path}")
