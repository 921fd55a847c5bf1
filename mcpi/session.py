"""
Per-connection protocol session.

A session starts CONNECTED, becomes INITIALIZED after a successful
``initialize`` call and ends CLOSED when its connection goes away. It is
owned by a single connection task; only the plugin registry is shared.
"""

import json
import logging
import time
import uuid
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import quote, unquote, urlsplit

from .config import ServerConfig
from .plugins import PluginError
from .protocol import (
    MCPError,
    MCPErrorCode,
    MCPRequest,
    MCPResponse,
    ProtocolError,
    SUPPORTED_PROTOCOL_VERSIONS,
    is_compatible_version,
    parse_request,
    text_content,
)
from .registry import PluginRegistry


logger = logging.getLogger(__name__)

RESOURCE_SCHEME = "mcpi"


class SessionState(Enum):
    CONNECTED = "connected"
    INITIALIZED = "initialized"
    CLOSED = "closed"


def resource_uri(domain: str, capability: str, key: Optional[str] = None) -> str:
    uri = f"{RESOURCE_SCHEME}://{domain}/resources/{quote(capability, safe='')}"
    if key is not None:
        uri += f"/{quote(key, safe='')}"
    return uri


def parse_resource_uri(uri: str) -> Tuple[str, Optional[str]]:
    """Split a resource URI into (capability, key)."""
    parts = urlsplit(uri)
    if parts.scheme != RESOURCE_SCHEME:
        raise ProtocolError(MCPErrorCode.INVALID_PARAMS, f"Invalid resource URI scheme: {parts.scheme}")

    segments = [s for s in parts.path.split("/") if s]
    if len(segments) not in (2, 3) or segments[0] != "resources":
        raise ProtocolError(MCPErrorCode.INVALID_PARAMS, f"Invalid resource path: {parts.path}")

    key = unquote(segments[2]) if len(segments) == 3 else None
    return unquote(segments[1]), key


class ProtocolSession:
    """
    JSON-RPC state machine for one connection.

    Requests are handled strictly in the order they are received; the
    session never relies on client ids being unique or monotonic.
    """

    def __init__(self, registry: PluginRegistry, config: Optional[ServerConfig] = None,
                 session_id: Optional[str] = None):
        self.registry = registry
        self.config = config or ServerConfig()
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self.state = SessionState.CONNECTED
        self.protocol_version: Optional[str] = None
        self.client_info: Optional[Dict[str, Any]] = None
        self.request_count = 0
        self.last_activity = time.monotonic()
        self._handlers: Dict[str, Callable] = {}

        self._register_default_handlers()

    def _register_default_handlers(self) -> None:
        self._handlers["initialize"] = self._handle_initialize
        self._handlers["notifications/initialized"] = self._handle_initialized
        self._handlers["ping"] = self._handle_ping
        self._handlers["tools/list"] = self._handle_list_tools
        self._handlers["tools/call"] = self._handle_call_tool
        self._handlers["resources/list"] = self._handle_list_resources
        self._handlers["resources/read"] = self._handle_read_resource

    @property
    def initialized(self) -> bool:
        return self.state == SessionState.INITIALIZED

    @property
    def closed(self) -> bool:
        return self.state == SessionState.CLOSED

    @property
    def domain(self) -> str:
        return self.config.provider.domain or "localhost"

    def touch(self) -> None:
        self.last_activity = time.monotonic()

    def idle_for(self) -> float:
        return time.monotonic() - self.last_activity

    def close(self) -> None:
        if self.state != SessionState.CLOSED:
            logger.info(f"Session {self.session_id} closed after {self.request_count} requests")
        self.state = SessionState.CLOSED

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------

    async def handle_message(self, data: Any) -> Optional[Union[dict, List[dict]]]:
        """
        Handle one decoded frame: a request object or a batch array.

        Returns the response payload, or None when nothing must be sent
        (notifications, or a closed session).
        """
        if self.closed:
            return None
        self.touch()

        if isinstance(data, list):
            return await self._handle_batch(data)
        return await self._handle_single(data)

    async def _handle_batch(self, messages: List[Any]) -> Optional[Union[dict, List[dict]]]:
        if not messages:
            error = MCPError.from_code(MCPErrorCode.INVALID_REQUEST, "Empty batch")
            return MCPResponse.failure(None, error).to_dict()

        logger.debug(f"Session {self.session_id}: batch of {len(messages)} messages")
        responses = []
        for message in messages:
            response = await self._handle_single(message)
            if response is not None:
                responses.append(response)
        return responses or None

    async def _handle_single(self, data: Any) -> Optional[dict]:
        try:
            request = parse_request(data)
        except ProtocolError as e:
            msg_id = data.get("id") if isinstance(data, dict) else None
            if isinstance(msg_id, bool) or not isinstance(msg_id, (str, int, float)):
                msg_id = None
            logger.warning(f"Session {self.session_id}: rejected message: {e.message}")
            return MCPResponse.failure(msg_id, e.to_error()).to_dict()

        response = await self.process_request(request)
        if request.is_notification:
            return None
        return response.to_dict()

    async def process_request(self, request: MCPRequest) -> MCPResponse:
        """Process a single request and build its response."""
        self.request_count += 1

        try:
            result = await self._dispatch(request)
            return MCPResponse.success(request.id, result)
        except ProtocolError as e:
            logger.warning(f"Session {self.session_id}: {request.method} failed: {e.message}")
            return MCPResponse.failure(request.id, e.to_error())
        except PluginError as e:
            logger.warning(f"Session {self.session_id}: {request.method} plugin error: {e.message}")
            error = MCPError.from_code(e.code, e.message, e.data)
            return MCPResponse.failure(request.id, error)
        except Exception as e:
            logger.exception(f"Error processing {request.method}: {e}")
            error = MCPError.from_code(MCPErrorCode.INTERNAL_ERROR, f"Internal error: {e}")
            return MCPResponse.failure(request.id, error)

    async def _dispatch(self, request: MCPRequest) -> Any:
        method = request.method

        if self.state == SessionState.CONNECTED and method != "initialize":
            raise ProtocolError(
                MCPErrorCode.INVALID_STATE,
                f"Session not initialized: '{method}' requires a prior initialize",
            )
        if self.state == SessionState.INITIALIZED and method == "initialize":
            raise ProtocolError(MCPErrorCode.INVALID_STATE, "Session already initialized")

        handler = self._handlers.get(method)
        if handler is None:
            raise ProtocolError(MCPErrorCode.METHOD_NOT_FOUND, f"Method not found: {method}")

        return await handler(request.params or {})

    # ------------------------------------------------------------------
    # Method handlers
    # ------------------------------------------------------------------

    async def _handle_initialize(self, params: dict) -> dict:
        version = params.get("protocolVersion")
        if not isinstance(version, str) or not version:
            raise ProtocolError(MCPErrorCode.INVALID_PARAMS, "initialize requires a protocolVersion string")

        client_info = params.get("clientInfo")
        if client_info is not None and not isinstance(client_info, dict):
            raise ProtocolError(MCPErrorCode.INVALID_PARAMS, "clientInfo must be an object")

        if not is_compatible_version(version, self.config.version):
            raise ProtocolError(
                MCPErrorCode.INVALID_PARAMS,
                f"Unsupported protocol version: {version}",
                data={"supported": list(SUPPORTED_PROTOCOL_VERSIONS)},
            )

        # A version matched only on its major component is answered with ours.
        if version not in SUPPORTED_PROTOCOL_VERSIONS:
            version = self.config.version

        self.protocol_version = version
        self.client_info = client_info
        self.state = SessionState.INITIALIZED

        client_name = (client_info or {}).get("name", "unknown")
        logger.info(f"Session {self.session_id} initialized by {client_name} (protocol {version})")

        provider = self.config.provider
        return {
            "protocolVersion": version,
            "capabilities": {
                "resources": {"subscribe": False, "listChanged": True},
                "tools": {"listChanged": True},
            },
            "serverInfo": {
                "name": provider.name or self.config.name,
                "version": self.config.version,
            },
            "instructions": f"Provider: {provider.description}",
        }

    async def _handle_initialized(self, params: dict) -> dict:
        logger.debug(f"Session {self.session_id}: client confirmed initialization")
        return {}

    async def _handle_ping(self, params: dict) -> dict:
        return {}

    async def _handle_list_tools(self, params: dict) -> dict:
        return {
            "tools": [metadata.to_tool_dict() for _, metadata in self.registry.list()],
        }

    async def _handle_call_tool(self, params: dict) -> dict:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise ProtocolError(MCPErrorCode.INVALID_PARAMS, "tools/call requires a tool name")

        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise ProtocolError(MCPErrorCode.INVALID_PARAMS, "arguments must be an object")

        plugin = self.registry.get(name)
        if plugin is None:
            raise ProtocolError(MCPErrorCode.TOOL_NOT_FOUND, f"Unknown tool: {name}", data={"name": name})

        operation = arguments.get("operation")
        if not isinstance(operation, str) or not operation:
            raise ProtocolError(MCPErrorCode.INVALID_PARAMS, "arguments.operation is required")

        args = {k: v for k, v in arguments.items() if k != "operation"}
        logger.debug(f"Session {self.session_id}: {name}.{operation}({args})")
        result = plugin.execute(operation, args)

        return {
            "content": [text_content(json.dumps(result, indent=2))],
            "isError": False,
        }

    async def _handle_list_resources(self, params: dict) -> dict:
        resources = []
        for plugin in self.registry:
            for entry in plugin.resources():
                resources.append({
                    "uri": resource_uri(self.domain, plugin.name, entry["key"]),
                    "name": entry["name"],
                    "description": entry["description"],
                    "mimeType": "application/json",
                })
        return {"resources": resources}

    async def _handle_read_resource(self, params: dict) -> dict:
        uri = params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise ProtocolError(MCPErrorCode.INVALID_PARAMS, "resources/read requires a uri")

        name, key = parse_resource_uri(uri)
        plugin = self.registry.get(name)
        if plugin is None:
            raise ProtocolError(MCPErrorCode.NOT_FOUND, f"Resource not found: {uri}")

        content = plugin.read_resource(key)
        return {
            "contents": [{
                "uri": uri,
                "mimeType": "application/json",
                "text": json.dumps(content, indent=2),
            }],
        }
