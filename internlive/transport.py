"""Live channel transports.

``Transport`` is the seam the connection manager talks to; the production
implementation wraps python-socketio's ``AsyncClient`` with its own
reconnection switched off, since reconnection policy belongs to
``ConnectionManager``.
"""
import time
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlencode

import socketio

from .errors import TransportError
from .log import get_logger

logger = get_logger("transport")

# Normalized close reasons
SERVER_DISCONNECT = "io server disconnect"
CLIENT_DISCONNECT = "io client disconnect"
TRANSPORT_CLOSE = "transport close"

_SERVER_REASONS = {SERVER_DISCONNECT, "server disconnect"}
_CLIENT_REASONS = {CLIENT_DISCONNECT, "client disconnect"}

EventHandler = Callable[[str, Any], Any]
CloseHandler = Callable[[str], Awaitable[None]]


def normalize_reason(reason: Optional[str]) -> str:
    if reason in _SERVER_REASONS:
        return SERVER_DISCONNECT
    if reason in _CLIENT_REASONS:
        return CLIENT_DISCONNECT
    return TRANSPORT_CLOSE


class Transport:
    name: str = "transport"

    def bind(self, on_event: EventHandler, on_close: CloseHandler) -> None: ...
    async def open(self, token: str) -> None: ...
    async def close(self) -> None: ...
    async def emit(self, event: str, payload: Any) -> None: ...

    @property
    def sid(self) -> Optional[str]: ...

    @property
    def connected(self) -> bool: ...


class SocketIOTransport(Transport):
    """Socket.IO client authenticated with the bearer token at handshake."""
    name = "socket.io"

    def __init__(
        self,
        url: str,
        client_version: str = "1.0.0",
        transports: tuple = ("polling", "websocket"),
        wait_timeout: float = 5.0,
    ):
        self.url = url.rstrip("/")
        self.client_version = client_version
        self.transports = list(transports)
        self.wait_timeout = wait_timeout
        self._on_event: Optional[EventHandler] = None
        self._on_close: Optional[CloseHandler] = None
        self._client = socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)
        self._client.on("disconnect", self._handle_disconnect)
        self._client.on("*", self._handle_event)

    def bind(self, on_event: EventHandler, on_close: CloseHandler) -> None:
        self._on_event = on_event
        self._on_close = on_close

    def _connect_url(self) -> str:
        query: Dict[str, str] = {
            "clientVersion": self.client_version,
            "timezone": time.strftime("%Z") or "UTC",
        }
        return f"{self.url}?{urlencode(query)}"

    async def open(self, token: str) -> None:
        try:
            await self._client.connect(
                self._connect_url(),
                auth={"token": token},
                transports=self.transports,
                wait_timeout=self.wait_timeout,
            )
        except socketio.exceptions.ConnectionError as exc:
            raise TransportError(str(exc) or "connection refused") from exc

    async def close(self) -> None:
        if self._client.connected:
            await self._client.disconnect()

    async def emit(self, event: str, payload: Any) -> None:
        try:
            await self._client.emit(event, payload)
        except socketio.exceptions.SocketIOError as exc:
            raise TransportError(f"emit {event!r} failed: {exc}") from exc

    @property
    def sid(self) -> Optional[str]:
        return self._client.sid

    @property
    def connected(self) -> bool:
        return self._client.connected

    @property
    def transport_name(self) -> Optional[str]:
        if not self._client.connected:
            return None
        return self._client.transport()

    async def _handle_disconnect(self, reason: Optional[str] = None) -> None:
        normalized = normalize_reason(reason)
        logger.debug("socket.io disconnect: %r -> %s", reason, normalized)
        if self._on_close is not None:
            await self._on_close(normalized)

    async def _handle_event(self, event: str, *args: Any) -> None:
        if self._on_event is None:
            return
        if not args:
            payload = None
        elif len(args) == 1:
            payload = args[0]
        else:
            payload = list(args)
        self._on_event(event, payload)
