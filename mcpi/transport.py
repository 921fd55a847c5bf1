"""
MCPI transport layer.

Provides WebSocket transports carrying JSON-RPC text frames:
- WebSocketTransport: a websockets-style connection (send/recv/close)
- ASGIWebSocketTransport: a Starlette/FastAPI server-side socket
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Union

from fastapi import WebSocket, WebSocketDisconnect
from websockets.exceptions import ConnectionClosed

from .protocol import parse_message


logger = logging.getLogger(__name__)


class Transport(ABC):
    """Abstract base class for MCPI transports."""

    @abstractmethod
    async def send(self, message: Union[dict, list]) -> None:
        """Send a message."""
        pass

    @abstractmethod
    async def receive(self) -> Optional[Any]:
        """
        Receive one decoded frame. Returns None once the peer has closed.

        Raises:
            ProtocolError: The frame is not valid JSON.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the transport."""
        pass

    @property
    @abstractmethod
    def closed(self) -> bool:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class WebSocketTransport(Transport):
    """
    Transport over a websockets-style connection.

    Any object with awaitable ``send``, ``recv`` and ``close`` works; the
    client uses connections opened by ``websockets.connect``.
    """

    def __init__(self, websocket):
        self.websocket = websocket
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, message: Union[dict, list]) -> None:
        """Send a message as a text frame."""
        if self._closed:
            raise RuntimeError("Transport is closed")

        await self.websocket.send(json.dumps(message))

    async def receive(self) -> Optional[Any]:
        if self._closed:
            return None

        try:
            content = await self.websocket.recv()
        except ConnectionClosed as e:
            logger.debug(f"WebSocket closed by peer: {e}")
            self._closed = True
            return None

        return parse_message(content)

    async def close(self) -> None:
        """Close the WebSocket transport."""
        if self._closed:
            return
        self._closed = True
        try:
            await self.websocket.close()
        except ConnectionClosed:
            logger.debug("WebSocket already closed")


class ASGIWebSocketTransport(Transport):
    """Transport over an accepted Starlette/FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, message: Union[dict, list]) -> None:
        if self._closed:
            raise RuntimeError("Transport is closed")

        try:
            await self.websocket.send_text(json.dumps(message))
        except WebSocketDisconnect:
            self._closed = True
            raise

    async def receive(self) -> Optional[Any]:
        if self._closed:
            return None

        message = await self.websocket.receive()
        if message["type"] == "websocket.disconnect":
            logger.debug(f"Client disconnected (code {message.get('code')})")
            self._closed = True
            return None

        content = message.get("text")
        if content is None:
            content = message.get("bytes") or b""
        return parse_message(content)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self.websocket.close()
        except RuntimeError as e:
            # Starlette refuses to close a socket the client already closed.
            logger.debug(f"WebSocket close skipped: {e}")
