"""
Plugin registry.

Built once at startup from the capability model and never mutated
afterwards, so connection handlers share it without locking.
"""

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from .config import CapabilityConfig, ConfigError, HelloConfig, ServerConfig
from .plugins import (
    BasePlugin,
    DataPlugin,
    HelloPlugin,
    PluginMetadata,
    ReferralPlugin,
    WeatherPlugin,
)


logger = logging.getLogger(__name__)


class StartupError(Exception):
    """Fatal error while building the registry; names the offending capability."""

    def __init__(self, capability: str, message: str):
        super().__init__(f"Capability '{capability}': {message}")
        self.capability = capability
        self.message = message


class MissingFileError(StartupError):
    pass


class MalformedDataError(StartupError):
    pass


class InvalidCapabilityError(StartupError):
    pass


def load_json_file(capability: str, path: Path) -> Any:
    """Read and parse a capability's data file."""
    if not path.is_file():
        raise MissingFileError(capability, f"Data file not found: {path}")

    logger.info(f"Loading data for '{capability}' from {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise MalformedDataError(capability, f"Invalid JSON in {path}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedDataError(capability, f"Cannot read {path}: {e}") from e


def load_dataset(capability: str, path: Path) -> List[Dict[str, Any]]:
    """Load a dataset: a JSON array of objects."""
    data = load_json_file(capability, path)
    if not isinstance(data, list):
        raise MalformedDataError(capability, f"Dataset {path} must be a JSON array")
    for index, record in enumerate(data):
        if not isinstance(record, dict):
            raise MalformedDataError(
                capability, f"Record {index} in {path} is not a JSON object"
            )
    return data


class PluginRegistry:
    """Immutable mapping from capability name to plugin."""

    def __init__(self, plugins: Optional[List[BasePlugin]] = None):
        entries: Dict[str, BasePlugin] = {}
        for plugin in plugins or []:
            if plugin.name in entries:
                raise InvalidCapabilityError(plugin.name, "Capability is already registered")
            entries[plugin.name] = plugin
        self._plugins: Mapping[str, BasePlugin] = MappingProxyType(entries)

    @classmethod
    def load(cls, config: ServerConfig) -> "PluginRegistry":
        """
        Build a registry from the capability model.

        Every dataset is parsed fully before the registry is returned.

        Raises:
            StartupError: A data file is missing or malformed, or a
                capability's operations are not understood by its plugin.
        """
        names = [c.name for c in config.capabilities]
        plugins = [create_plugin(config, capability, names) for capability in config.capabilities]
        registry = cls(plugins)
        logger.info(f"Registered {len(registry)} plugins: {', '.join(registry.names())}")
        return registry

    def get(self, name: str) -> Optional[BasePlugin]:
        """Get a plugin by capability name."""
        return self._plugins.get(name)

    def names(self) -> List[str]:
        return list(self._plugins)

    def list(self) -> List[Tuple[str, PluginMetadata]]:
        """Registered capabilities in configuration order."""
        return [(name, plugin.metadata()) for name, plugin in self._plugins.items()]

    def __contains__(self, name: str) -> bool:
        return name in self._plugins

    def __iter__(self) -> Iterator[BasePlugin]:
        return iter(self._plugins.values())

    def __len__(self) -> int:
        return len(self._plugins)


def create_plugin(config: ServerConfig, capability: CapabilityConfig,
                  capability_names: List[str]) -> BasePlugin:
    """Construct the plugin variant bound to a capability."""
    path = config.data_path(capability)

    try:
        if capability.plugin == "data":
            if path is None:
                raise InvalidCapabilityError(capability.name, "Data plugins require a data_file")
            return DataPlugin(capability, load_dataset(capability.name, path))

        if capability.plugin == "hello":
            if path is not None:
                data = load_json_file(capability.name, path)
                if not isinstance(data, dict):
                    raise MalformedDataError(capability.name, f"Hello config {path} must be a JSON object")
                try:
                    hello = HelloConfig.from_dict(data)
                except ConfigError as e:
                    raise MalformedDataError(capability.name, str(e)) from e
            else:
                hello = config.hello or HelloConfig(
                    metadata={"provider": {"name": config.provider.name, "domain": config.provider.domain}},
                )
            return HelloPlugin(capability, hello, capability_names)

        if capability.plugin == "weather":
            return WeatherPlugin(capability)

        if capability.plugin == "referrals":
            return ReferralPlugin(capability, config.referrals)
    except ValueError as e:
        raise InvalidCapabilityError(capability.name, str(e)) from e

    raise InvalidCapabilityError(capability.name, f"Unknown plugin kind: {capability.plugin}")


def load_registry(config: ServerConfig) -> PluginRegistry:
    """Build the registry, logging the offending capability on failure."""
    try:
        return PluginRegistry.load(config)
    except StartupError as e:
        logger.error(f"Startup failed for capability '{e.capability}': {e.message}")
        raise
