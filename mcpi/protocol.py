"""
MCPI protocol definitions.

JSON-RPC 2.0 envelopes, error codes and tool definitions shared by the
server session and the client.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


JSONRPC_VERSION = "2.0"

# Version of the MCPI WebSocket protocol spoken by this server.
MCPI_VERSION = "0.1.0"
# Latest base MCP revision the method set is modelled on.
MCP_PROTOCOL_VERSION = "2025-03-26"

SUPPORTED_PROTOCOL_VERSIONS = (MCPI_VERSION, MCP_PROTOCOL_VERSION)


class MCPErrorCode(Enum):
    """JSON-RPC and MCPI error codes."""
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    # Application codes
    TOOL_NOT_FOUND = -32000
    INVALID_STATE = -32001
    NOT_FOUND = -32002


class ProtocolError(Exception):
    """Error raised while interpreting a JSON-RPC message."""

    def __init__(self, code: MCPErrorCode, message: str, data: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_error(self) -> "MCPError":
        return MCPError.from_code(self.code, self.message, self.data)


@dataclass
class MCPError:
    """JSON-RPC error object."""
    code: int
    message: str
    data: Optional[Any] = None

    @classmethod
    def from_code(cls, code: MCPErrorCode, message: str, data: Any = None) -> "MCPError":
        return cls(code=code.value, message=message, data=data)

    @classmethod
    def from_dict(cls, data: dict) -> "MCPError":
        return cls(
            code=data.get("code", MCPErrorCode.INTERNAL_ERROR.value),
            message=data.get("message", ""),
            data=data.get("data"),
        )

    def to_dict(self) -> dict:
        result = {"code": self.code, "message": self.message}
        if self.data is not None:
            result["data"] = self.data
        return result


@dataclass
class MCPMessage:
    """Base JSON-RPC message."""
    jsonrpc: str = JSONRPC_VERSION
    id: Optional[Union[str, int]] = None

    def to_dict(self) -> dict:
        result = {"jsonrpc": self.jsonrpc}
        if self.id is not None:
            result["id"] = self.id
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class MCPRequest(MCPMessage):
    """JSON-RPC request or notification."""
    method: str = ""
    params: Optional[Dict[str, Any]] = None

    @property
    def is_notification(self) -> bool:
        return self.id is None

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["method"] = self.method
        if self.params is not None:
            result["params"] = self.params
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "MCPRequest":
        return cls(
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
            id=data.get("id"),
            method=data.get("method", ""),
            params=data.get("params"),
        )


@dataclass
class MCPResponse(MCPMessage):
    """JSON-RPC response message."""
    result: Optional[Any] = None
    error: Optional[MCPError] = None

    def to_dict(self) -> dict:
        # Error responses to unparseable requests must still carry "id": null.
        result = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            result["error"] = self.error.to_dict()
        else:
            result["result"] = self.result if self.result is not None else {}
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "MCPResponse":
        error = data.get("error")
        return cls(
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
            id=data.get("id"),
            result=data.get("result"),
            error=MCPError.from_dict(error) if isinstance(error, dict) else None,
        )

    @classmethod
    def success(cls, id: Optional[Union[str, int]], result: Any) -> "MCPResponse":
        return cls(id=id, result=result)

    @classmethod
    def failure(cls, id: Optional[Union[str, int]], error: MCPError) -> "MCPResponse":
        return cls(id=id, error=error)


@dataclass
class ToolParameter:
    """Tool parameter definition."""
    name: str
    type: str
    description: str
    required: bool = False
    default: Optional[Any] = None
    enum: Optional[List[Any]] = None

    def to_json_schema(self) -> dict:
        """Convert to JSON schema property."""
        schema = {
            "type": self.type,
            "description": self.description,
        }
        if self.enum is not None:
            schema["enum"] = self.enum
        if self.default is not None:
            schema["default"] = self.default
        return schema


@dataclass
class Tool:
    """Tool definition as listed by tools/list."""
    name: str
    description: str
    parameters: List[ToolParameter] = field(default_factory=list)

    def input_schema(self) -> dict:
        properties = {}
        required = []

        for param in self.parameters:
            properties[param.name] = param.to_json_schema()
            if param.required:
                required.append(param.name)

        return {
            "type": "object",
            "properties": properties,
            "required": required,
        }

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema(),
        }


def text_content(text: str) -> dict:
    """Build a text content item."""
    return {"type": "text", "text": text}


def is_compatible_version(requested: str, supported: str = MCPI_VERSION) -> bool:
    """
    Check whether a client's protocol version can be served.

    Exact matches against any supported revision are accepted, as is any
    dotted numeric version sharing the major component of ``supported``.
    """
    if requested in SUPPORTED_PROTOCOL_VERSIONS or requested == supported:
        return True

    def major(version: str) -> Optional[int]:
        head = version.split(".", 1)[0]
        if "." not in version or not head.isdigit():
            return None
        return int(head)

    requested_major = major(requested)
    return requested_major is not None and requested_major == major(supported)


def parse_request(data: Any) -> MCPRequest:
    """Validate a decoded JSON value as a single JSON-RPC request."""
    if not isinstance(data, dict):
        raise ProtocolError(MCPErrorCode.PARSE_ERROR, "Message must be a JSON object")

    if data.get("jsonrpc") != JSONRPC_VERSION:
        raise ProtocolError(
            MCPErrorCode.INVALID_REQUEST,
            f"Invalid JSON-RPC version: {data.get('jsonrpc')}",
        )

    method = data.get("method")
    if not isinstance(method, str) or not method:
        raise ProtocolError(MCPErrorCode.INVALID_REQUEST, "Missing method")

    msg_id = data.get("id")
    if msg_id is not None and (isinstance(msg_id, bool) or not isinstance(msg_id, (str, int, float))):
        raise ProtocolError(MCPErrorCode.INVALID_REQUEST, "Invalid request id")

    params = data.get("params")
    if params is not None and not isinstance(params, dict):
        raise ProtocolError(MCPErrorCode.INVALID_PARAMS, "params must be an object")

    return MCPRequest.from_dict(data)


def parse_message(data: Union[str, bytes, Any]) -> Any:
    """Decode a raw text frame into a JSON value."""
    if isinstance(data, (str, bytes)):
        try:
            return json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError(MCPErrorCode.PARSE_ERROR, f"Parse error: {e}")
    return data
