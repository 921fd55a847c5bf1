"""
MCPI server.

Serves one protocol session per WebSocket connection and the REST
discovery document, sharing a single read-only plugin registry.
"""

import asyncio
import logging
from typing import Optional, Union
from pathlib import Path

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from websockets.exceptions import ConnectionClosed

from .config import ServerConfig, load_config, validate_config
from .discovery import build_discovery_document
from .protocol import MCPResponse, ProtocolError
from .registry import PluginRegistry, load_registry
from .session import ProtocolSession
from .transport import ASGIWebSocketTransport, Transport


logger = logging.getLogger(__name__)


class MCPIServer:
    """
    Owns the configuration and plugin registry and runs sessions.

    Connections share nothing but the registry, so any number of them can
    be served concurrently on one event loop.
    """

    def __init__(self, config: Optional[ServerConfig] = None,
                 registry: Optional[PluginRegistry] = None):
        self.config = config or ServerConfig()
        self.registry = registry if registry is not None else load_registry(self.config)

    def discovery_document(self) -> dict:
        return build_discovery_document(self.config, self.registry)

    async def serve_connection(self, transport: Transport) -> ProtocolSession:
        """
        Run a session over an accepted connection until it closes.

        The connection is dropped if ``initialize`` does not succeed within
        ``init_timeout`` seconds of accept, or if no message arrives for
        ``idle_timeout`` seconds once initialized.
        """
        session = ProtocolSession(self.registry, self.config)
        logger.info(f"Session {session.session_id} opened")

        try:
            async with transport:
                await self._run(session, transport)
        except (ConnectionClosed, WebSocketDisconnect, OSError) as e:
            logger.info(f"Session {session.session_id}: transport failed: {e}")
        finally:
            session.close()

        return session

    async def _run(self, session: ProtocolSession, transport: Transport) -> None:
        loop = asyncio.get_running_loop()
        init_deadline = loop.time() + self.config.init_timeout

        while not session.closed:
            if session.initialized:
                timeout = self.config.idle_timeout
            else:
                timeout = init_deadline - loop.time()

            try:
                message = await asyncio.wait_for(transport.receive(), timeout=max(timeout, 0))
            except asyncio.TimeoutError:
                reason = "idle" if session.initialized else "no initialize"
                logger.info(f"Session {session.session_id} timed out ({reason})")
                return
            except ProtocolError as e:
                logger.warning(f"Session {session.session_id}: {e.message}")
                session.touch()
                await transport.send(MCPResponse.failure(None, e.to_error()).to_dict())
                continue

            if message is None:
                logger.info(f"Session {session.session_id}: client closed connection")
                return

            response = await session.handle_message(message)
            if response is not None:
                await transport.send(response)


def create_app(config: Optional[ServerConfig] = None,
               registry: Optional[PluginRegistry] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Routes:
        GET <discovery_path>: discovery document
        WebSocket <session_path>: JSON-RPC protocol session
    """
    server = MCPIServer(config, registry)
    config = server.config

    app = FastAPI(title=config.provider.name or config.name, version=config.version)
    app.state.server = server

    @app.get(config.discovery_path)
    async def discover() -> dict:
        return server.discovery_document()

    @app.websocket(config.session_path)
    async def session_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        await server.serve_connection(ASGIWebSocketTransport(websocket))

    logger.info(
        f"MCPI server {config.name} v{config.version}: discovery at {config.discovery_path}, "
        f"sessions at {config.session_path}"
    )
    return app


def create_server(config_path: Union[str, Path]) -> FastAPI:
    """
    Load a configuration file and build the application.

    Raises:
        ConfigError: The configuration cannot be read.
        StartupError: A capability's data is missing or malformed.
    """
    config = load_config(config_path)
    validate_config(config)
    return create_app(config, load_registry(config))
