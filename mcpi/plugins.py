"""
MCPI plugins.

A plugin implements the operations of one configured capability. Every
variant exposes the same flat contract: ``metadata()`` for listing and
``execute(operation, params)`` for invocation, plus optional resources.
"""

import copy
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .config import CapabilityConfig, HelloConfig, Referral
from .protocol import MCPErrorCode, Tool, ToolParameter, text_content


logger = logging.getLogger(__name__)

SEARCH_ALL_FIELDS = "*"
DETAIL_LEVELS = ("basic", "standard", "detailed")


class PluginError(Exception):
    """Base class for errors raised by plugin operations."""
    code = MCPErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, data: Any = None):
        super().__init__(message)
        self.message = message
        self.data = data


class UnsupportedOperationError(PluginError):
    code = MCPErrorCode.INVALID_PARAMS


class InvalidParamsError(PluginError):
    code = MCPErrorCode.INVALID_PARAMS


class NotFoundError(PluginError):
    code = MCPErrorCode.NOT_FOUND


class PluginInternalError(PluginError):
    code = MCPErrorCode.INTERNAL_ERROR


@dataclass(frozen=True)
class PluginMetadata:
    """Static description of a plugin, used for listing without executing."""
    name: str
    description: str
    category: str
    operations: Tuple[str, ...]
    input_schema: Dict[str, Any]

    def to_tool_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }

    def to_capability_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "operations": list(self.operations),
        }


def as_text(value: Any) -> Optional[str]:
    """String projection of a scalar field value; None for missing or nested values."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return None


def string_param(params: Dict[str, Any], name: str, required: bool = False,
                 default: Optional[str] = None) -> Optional[str]:
    """Fetch a string argument, raising InvalidParamsError on a bad value."""
    value = params.get(name)
    if value is None:
        if required:
            raise InvalidParamsError(f"Missing required parameter: {name}")
        return default
    if not isinstance(value, str):
        raise InvalidParamsError(f"Parameter '{name}' must be a string")
    return value


class BasePlugin(ABC):
    """Base class for MCPI plugins."""

    # Operation names this variant understands. A configured operation is
    # accepted if it equals one of these or extends it with a "_SUFFIX".
    verbs: Tuple[str, ...] = ()

    def __init__(self, capability: CapabilityConfig):
        unknown = [op for op in capability.operations if self.resolve_operation(op) is None]
        if unknown:
            raise ValueError(
                f"{type(self).__name__} does not understand operations: {', '.join(unknown)}"
            )
        self.capability = capability

    @property
    def name(self) -> str:
        return self.capability.name

    @property
    def description(self) -> str:
        return self.capability.description

    @property
    def category(self) -> str:
        return self.capability.category

    @property
    def operations(self) -> List[str]:
        return list(self.capability.operations)

    @property
    @abstractmethod
    def parameters(self) -> List[ToolParameter]:
        """Arguments accepted besides ``operation``."""
        pass

    @abstractmethod
    def run(self, verb: str, params: Dict[str, Any]) -> Any:
        """Run a validated operation, identified by its base verb."""
        pass

    def resolve_operation(self, operation: str) -> Optional[str]:
        """Map a configured operation name to the verb implementing it."""
        if operation in self.verbs:
            return operation
        for verb in self.verbs:
            if operation.startswith(verb + "_"):
                return verb
        return None

    def metadata(self) -> PluginMetadata:
        operation = ToolParameter(
            name="operation",
            type="string",
            description="Operation to perform",
            required=True,
            enum=self.operations,
        )
        tool = Tool(
            name=self.name,
            description=self.description,
            parameters=[operation] + self.parameters,
        )
        return PluginMetadata(
            name=self.name,
            description=self.description,
            category=self.category,
            operations=tuple(self.operations),
            input_schema=tool.input_schema(),
        )

    def execute(self, operation: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Execute one of the capability's operations.

        Raises:
            UnsupportedOperationError: The capability does not declare ``operation``.
            InvalidParamsError: An argument is missing or has the wrong type.
            NotFoundError: The requested item does not exist.
        """
        if operation not in self.capability.operations:
            raise UnsupportedOperationError(
                f"Unsupported operation: {operation}",
                data={"supported": self.operations},
            )
        return self.run(self.resolve_operation(operation), params or {})

    def resources(self) -> List[Dict[str, Any]]:
        """Resources listed by resources/list; a None key addresses the whole capability."""
        return [{"key": None, "name": self.name, "description": self.description}]

    def read_resource(self, key: Optional[str]) -> Any:
        raise NotFoundError(f"Resource not found: {self.name}/{key}")


class DataPlugin(BasePlugin):
    """
    Generic SEARCH/GET/LIST engine over an in-memory JSON dataset.

    The dataset is an ordered sequence of records held as an immutable
    snapshot. Results always preserve dataset order.
    """

    verbs = ("SEARCH", "GET", "LIST")

    def __init__(self, capability: CapabilityConfig, records: Sequence[Dict[str, Any]]):
        super().__init__(capability)
        self.records: Tuple[Dict[str, Any], ...] = tuple(records)
        self.search_field = capability.search_field or "name"

    @property
    def parameters(self) -> List[ToolParameter]:
        return [
            ToolParameter(
                name="query",
                type="string",
                description="Query string for SEARCH operations",
            ),
            ToolParameter(
                name="field",
                type="string",
                description=f"Field to search in (default: {self.search_field})",
            ),
            ToolParameter(
                name="id",
                type="string",
                description="ID for GET operations",
            ),
        ]

    def run(self, verb: str, params: Dict[str, Any]) -> Any:
        if verb == "SEARCH":
            query = string_param(params, "query", default="")
            field = string_param(params, "field")
            return self.search(query, field)
        if verb == "GET":
            return self.get(string_param(params, "id", required=True))
        return self.list()

    def list(self) -> dict:
        logger.debug(f"{self.name}: LIST returning {len(self.records)} records")
        return {"results": list(self.records), "count": len(self.records)}

    def get(self, item_id: str) -> dict:
        for record in self.records:
            if as_text(record.get("id")) == item_id:
                return record
        raise NotFoundError(f"Item not found: {item_id}", data={"id": item_id})

    def search(self, query: str = "", field: Optional[str] = None) -> dict:
        field = field or self.search_field
        needle = query.lower()

        if not needle:
            matches = list(self.records)
        elif field == SEARCH_ALL_FIELDS:
            matches = [r for r in self.records if any(self._contains(v, needle) for v in r.values())]
        else:
            matches = [r for r in self.records if self._contains(r.get(field), needle)]

        logger.debug(f"{self.name}: SEARCH '{query}' on {field} matched {len(matches)} records")
        return {
            "results": matches,
            "count": len(matches),
            "query": query,
            "field": field,
        }

    @staticmethod
    def _contains(value: Any, needle: str) -> bool:
        text = as_text(value)
        return text is not None and needle in text.lower()

    def resources(self) -> List[Dict[str, Any]]:
        return [{
            "key": None,
            "name": self.name,
            "description": f"{self.description} ({len(self.records)} records)",
        }]

    def read_resource(self, key: Optional[str]) -> Any:
        if key is None:
            return self.list()
        return self.get(key)


class HelloPlugin(BasePlugin):
    """Context-aware self-introduction (the HELLO operation)."""

    verbs = ("HELLO",)

    def __init__(self, capability: CapabilityConfig, hello: HelloConfig,
                 capability_names: Iterable[str] = ()):
        super().__init__(capability)
        self.hello = hello
        self.capability_names = list(capability_names)

    @property
    def parameters(self) -> List[ToolParameter]:
        return [
            ToolParameter(
                name="context",
                type="string",
                description="Optional context about requester's intent (e.g., shopping, support)",
            ),
            ToolParameter(
                name="detail_level",
                type="string",
                description="Amount of detail to include in the response",
                default="standard",
                enum=list(DETAIL_LEVELS),
            ),
        ]

    def run(self, verb: str, params: Dict[str, Any]) -> Any:
        context = string_param(params, "context", default="")
        detail_level = string_param(params, "detail_level", default="standard")
        if detail_level not in DETAIL_LEVELS:
            raise InvalidParamsError(
                f"detail_level must be one of: {', '.join(DETAIL_LEVELS)}"
            )
        return self.introduce(context, detail_level)

    def introduce(self, context: str = "", detail_level: str = "standard") -> dict:
        introduction = self.hello.introduction
        metadata = copy.deepcopy(self.hello.metadata)

        override = self.hello.contexts.get(context) if context else None
        if override is not None:
            if override.introduction is not None:
                introduction = override.introduction
            if override.highlight_capabilities is not None:
                metadata["highlight_capabilities"] = list(override.highlight_capabilities)
        elif context:
            logger.debug(f"No Hello context '{context}', using default introduction")

        return {
            "content": [text_content(introduction)],
            "metadata": self._shape(metadata, detail_level),
        }

    def _shape(self, metadata: Dict[str, Any], detail_level: str) -> Dict[str, Any]:
        if detail_level == "detailed":
            return metadata

        shaped = {"provider": metadata.get("provider", {})}
        if detail_level == "basic":
            return shaped

        shaped["capabilities"] = metadata.get("capabilities", self.capability_names)
        shaped["topics"] = metadata.get("primary_focus", [])
        if "highlight_capabilities" in metadata:
            shaped["highlight_capabilities"] = metadata["highlight_capabilities"]
        return shaped

    def resources(self) -> List[Dict[str, Any]]:
        return [{"key": None, "name": self.name, "description": "Hello protocol configuration"}]

    def read_resource(self, key: Optional[str]) -> Any:
        if key is None:
            return self.hello.to_dict()
        return super().read_resource(key)


class WeatherPlugin(BasePlugin):
    """Simulated weather forecasts generated per request."""

    verbs = ("GET", "LIST")

    DEFAULT_LOCATIONS = ["New York", "London", "Tokyo", "Sydney", "Paris"]
    CONDITIONS = {
        "Sunny": 75,
        "Cloudy": 65,
        "Rainy": 55,
        "Snowy": 30,
        "Windy": 60,
        "Foggy": 55,
    }

    def __init__(self, capability: CapabilityConfig):
        super().__init__(capability)
        self.locations: List[str] = list(capability.options.get("locations") or self.DEFAULT_LOCATIONS)
        self.seed = capability.options.get("seed")

    @property
    def parameters(self) -> List[ToolParameter]:
        return [
            ToolParameter(
                name="location",
                type="string",
                description="Location for weather forecast",
                default=self.locations[0] if self.locations else None,
            ),
        ]

    def _rng(self, location: str) -> random.Random:
        if self.seed is None:
            return random.Random()
        return random.Random(f"{self.seed}:{location}")

    def generate_forecast(self, location: str) -> dict:
        rng = self._rng(location)
        conditions = list(self.CONDITIONS)
        condition = rng.choice(conditions)

        base = self.CONDITIONS[condition]
        temp_min = base - rng.randrange(10)
        temp_max = base + rng.randrange(10)
        current = rng.randint(temp_min, temp_max)
        wind_low, wind_high = (15, 30) if condition == "Windy" else (2, 15)

        forecast = [{
            "day": "Today",
            "condition": condition,
            "temp_min": temp_min,
            "temp_max": temp_max,
            "precipitation": rng.randrange(100),
        }]
        for offset, day in ((2, "Tomorrow"), (4, "Day after tomorrow")):
            forecast.append({
                "day": day,
                "condition": rng.choice(conditions),
                "temp_min": temp_min - offset + rng.randint(-5, 4),
                "temp_max": temp_max - offset + rng.randint(-5, 4),
                "precipitation": rng.randrange(100),
            })

        return {
            "location": location,
            "condition": condition,
            "temperature": {"current": current, "min": temp_min, "max": temp_max},
            "humidity": rng.randrange(30, 90),
            "wind_speed": rng.randrange(wind_low, wind_high),
            "updated": datetime.now(timezone.utc).isoformat(),
            "forecast": forecast,
        }

    def _find_location(self, location: str) -> str:
        for known in self.locations:
            if known.lower() == location.lower():
                return known
        raise NotFoundError(
            f"Location not found: {location}",
            data={"available_locations": self.locations},
        )

    def run(self, verb: str, params: Dict[str, Any]) -> Any:
        if verb == "GET":
            default = self.locations[0] if self.locations else None
            location = string_param(params, "location", required=default is None, default=default)
            return self.generate_forecast(self._find_location(location))

        forecasts = [self.generate_forecast(loc) for loc in self.locations]
        return {
            "results": forecasts,
            "count": len(forecasts),
            "available_locations": self.locations,
        }

    def resources(self) -> List[Dict[str, Any]]:
        entries = super().resources()
        for location in self.locations:
            entries.append({
                "key": location,
                "name": f"{self.name} ({location})",
                "description": f"Forecast for {location}",
            })
        return entries

    def read_resource(self, key: Optional[str]) -> Any:
        if key is None:
            return self.run("LIST", {})
        return self.generate_forecast(self._find_location(key))


class ReferralPlugin(BasePlugin):
    """Social connections and referrals to other providers."""

    verbs = ("LIST_REFERRALS", "GET_REFERRAL")

    def __init__(self, capability: CapabilityConfig, referrals: Sequence[Referral]):
        super().__init__(capability)
        self.referrals: Tuple[Referral, ...] = tuple(referrals)

    @property
    def parameters(self) -> List[ToolParameter]:
        return [
            ToolParameter(
                name="domain",
                type="string",
                description="Domain name for GET_REFERRAL operation",
            ),
            ToolParameter(
                name="relationship",
                type="string",
                description="Filter referrals by relationship type",
            ),
        ]

    def run(self, verb: str, params: Dict[str, Any]) -> Any:
        if verb == "GET_REFERRAL":
            return self.get(string_param(params, "domain", required=True))
        return self.list(string_param(params, "relationship"))

    def list(self, relationship: Optional[str] = None) -> dict:
        referrals = [
            r.to_dict() for r in self.referrals
            if relationship is None or r.relationship == relationship
        ]
        return {"referrals": referrals, "count": len(referrals)}

    def get(self, domain: str) -> dict:
        for referral in self.referrals:
            if referral.domain == domain:
                return referral.to_dict()
        raise NotFoundError(f"Referral not found: {domain}", data={"domain": domain})

    def read_resource(self, key: Optional[str]) -> Any:
        if key is None:
            return self.list()
        return self.get(key)
