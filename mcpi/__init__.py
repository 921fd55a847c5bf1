"""
MCPI - discoverable capabilities for AI agents.

A provider publishes a DNS TXT record pointing at a discovery document;
agents then open a WebSocket session and invoke the provider's
capabilities through a Model Context Protocol style JSON-RPC surface.
"""

from .protocol import (
    MCPI_VERSION,
    MCPError,
    MCPErrorCode,
    MCPMessage,
    MCPRequest,
    MCPResponse,
    ProtocolError,
    Tool,
    ToolParameter,
)
from .config import (
    CapabilityConfig,
    ConfigError,
    HelloConfig,
    Provider,
    Referral,
    ServerConfig,
    load_config,
    validate_config,
)
from .plugins import (
    BasePlugin,
    DataPlugin,
    HelloPlugin,
    PluginError,
    ReferralPlugin,
    WeatherPlugin,
)
from .registry import PluginRegistry, StartupError, load_registry
from .session import ProtocolSession, SessionState
from .transport import (
    Transport,
    WebSocketTransport,
    ASGIWebSocketTransport,
)
from .server import MCPIServer, create_app, create_server
from .discovery import (
    DiscoveryError,
    DiscoveryRecord,
    DiscoveryResolver,
    build_discovery_document,
    parse_txt_record,
)
from .client import MCPIClient, MCPIClientError, connect_domain

__version__ = "0.1.0"

__all__ = [
    # Protocol
    "MCPI_VERSION",
    "MCPError",
    "MCPErrorCode",
    "MCPMessage",
    "MCPRequest",
    "MCPResponse",
    "ProtocolError",
    "Tool",
    "ToolParameter",
    # Configuration
    "CapabilityConfig",
    "ConfigError",
    "HelloConfig",
    "Provider",
    "Referral",
    "ServerConfig",
    "load_config",
    "validate_config",
    # Plugins
    "BasePlugin",
    "DataPlugin",
    "HelloPlugin",
    "PluginError",
    "ReferralPlugin",
    "WeatherPlugin",
    "PluginRegistry",
    "StartupError",
    "load_registry",
    # Session and transport
    "ProtocolSession",
    "SessionState",
    "Transport",
    "WebSocketTransport",
    "ASGIWebSocketTransport",
    # Server
    "MCPIServer",
    "create_app",
    "create_server",
    # Discovery and client
    "DiscoveryError",
    "DiscoveryRecord",
    "DiscoveryResolver",
    "build_discovery_document",
    "parse_txt_record",
    "MCPIClient",
    "MCPIClientError",
    "connect_domain",
]
