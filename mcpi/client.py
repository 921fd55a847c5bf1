"""
MCPI client.

Speaks the JSON-RPC protocol over any Transport; ``connect`` opens a
WebSocket with the websockets library and ``connect_domain`` runs the
discovery chain first.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import websockets

from .discovery import DiscoveryResolver, DiscoveryResult
from .protocol import MCPError, MCPI_VERSION, MCPRequest, MCPResponse
from .transport import Transport, WebSocketTransport


logger = logging.getLogger(__name__)


class MCPIClientError(Exception):
    """The server answered a request with a JSON-RPC error."""

    def __init__(self, error: MCPError):
        super().__init__(f"{error.message} ({error.code})")
        self.code = error.code
        self.message = error.message
        self.data = error.data


class MCPIClient:
    """
    Sequential request/response client.

    Requests are sent one at a time; responses carrying another id are
    logged and dropped.
    """

    def __init__(self, transport: Transport):
        self.transport = transport
        self.server_info: Optional[Dict[str, Any]] = None
        self.protocol_version: Optional[str] = None
        self.discovery: Optional[DiscoveryResult] = None
        self._next_id = 0

    @classmethod
    async def connect(cls, url: str, **kwargs) -> "MCPIClient":
        """Open a WebSocket to ``url``; extra arguments go to ``websockets.connect``."""
        logger.info(f"Connecting to {url}")
        websocket = await websockets.connect(url, **kwargs)
        return cls(WebSocketTransport(websocket))

    async def request(self, method: str, params: Optional[dict] = None) -> Any:
        """
        Send a request and wait for its result.

        Raises:
            MCPIClientError: The server returned an error response.
            ConnectionError: The connection closed before the response.
        """
        self._next_id += 1
        request = MCPRequest(id=self._next_id, method=method, params=params)
        await self.transport.send(request.to_dict())

        while True:
            data = await self.transport.receive()
            if data is None:
                raise ConnectionError(f"Connection closed while waiting for {method}")
            if not isinstance(data, dict):
                logger.warning(f"Ignoring unexpected frame: {data!r}")
                continue

            response = MCPResponse.from_dict(data)
            if response.id != request.id:
                logger.warning(f"Ignoring response for id {response.id} (waiting for {request.id})")
                continue
            if response.error is not None:
                raise MCPIClientError(response.error)
            return response.result

    async def notify(self, method: str, params: Optional[dict] = None) -> None:
        await self.transport.send(MCPRequest(method=method, params=params).to_dict())

    async def initialize(self, client_name: str = "mcpi-client", client_version: str = MCPI_VERSION,
                         protocol_version: str = MCPI_VERSION) -> dict:
        result = await self.request("initialize", {
            "protocolVersion": protocol_version,
            "clientInfo": {"name": client_name, "version": client_version},
            "capabilities": {},
        })
        self.server_info = result.get("serverInfo")
        self.protocol_version = result.get("protocolVersion")
        await self.notify("notifications/initialized")

        logger.info(
            f"Initialized with {(self.server_info or {}).get('name', '?')} "
            f"(protocol {self.protocol_version})"
        )
        return result

    async def ping(self) -> dict:
        return await self.request("ping")

    async def list_tools(self) -> List[dict]:
        result = await self.request("tools/list")
        return result.get("tools", [])

    async def call_tool(self, name: str, operation: str, **arguments) -> Any:
        """Invoke a capability operation and decode its JSON payload."""
        arguments["operation"] = operation
        result = await self.request("tools/call", {"name": name, "arguments": arguments})
        content = result.get("content") or []
        if not content:
            return None
        return json.loads(content[0]["text"])

    async def list_resources(self) -> List[dict]:
        result = await self.request("resources/list")
        return result.get("resources", [])

    async def read_resource(self, uri: str) -> Any:
        result = await self.request("resources/read", {"uri": uri})
        contents = result.get("contents") or []
        if not contents:
            return None
        return json.loads(contents[0]["text"])

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


async def connect_domain(domain: str, resolver: Optional[DiscoveryResolver] = None,
                         client_name: str = "mcpi-client") -> MCPIClient:
    """
    Discover a domain's MCPI endpoint, connect and initialize.

    Raises:
        DiscoveryError: The domain could not be resolved to an endpoint.
    """
    resolver = resolver or DiscoveryResolver()
    result = await resolver.discover(domain)

    client = await MCPIClient.connect(result.websocket_url)
    client.discovery = result
    try:
        await client.initialize(client_name=client_name)
    except Exception:
        await client.close()
        raise
    return client
