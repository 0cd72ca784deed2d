"""Connection manager for the live channel.

Owns the single transport, the reconnection policy and the pending-emit
queue. State machine::

    disconnected -> connecting -> connected
    connected -> reconnecting -> connected | disconnected
    connected -> disconnected  (explicit disconnect or server-initiated close)

A server-initiated close is terminal: the server has rejected or replaced
us, so retrying with the same credential is pointless. Network closes,
failed opens and establishment timeouts go through a bounded backoff loop.
"""
import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .config import RealtimeSettings
from .data_models import ConnectionInfo
from .errors import ConnectionFailure, FailureKind, TransportError
from .events import EventKey, EventName, EventRegistry, event_key
from .log import get_logger
from .pending import PendingEmitQueue
from .transport import CLIENT_DISCONNECT, SERVER_DISCONNECT, SocketIOTransport, Transport

logger = get_logger("connection")

TransportFactory = Callable[[], Transport]
Sleep = Callable[[float], Awaitable[Any]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class EmitResult(str, Enum):
    SENT = "sent"
    QUEUED = "queued"


class ConnectionManager:
    def __init__(
        self,
        registry: EventRegistry,
        settings: Optional[RealtimeSettings] = None,
        transport_factory: Optional[TransportFactory] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self.registry = registry
        self.settings = settings or RealtimeSettings()
        self._transport_factory = transport_factory or self._default_transport
        self._clock = clock
        self._sleep = sleep
        self.pending = PendingEmitQueue(clock=clock)

        self.state = ConnectionState.DISCONNECTED
        self.attempt_count = 0
        self.last_attempt_at: Optional[float] = None
        self.failure: Optional[FailureKind] = None
        self._token: Optional[str] = None
        self._transport: Optional[Transport] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        # bumped by disconnect(); attempts started under an older epoch are discarded
        self._epoch = 0
        self._send_lock = asyncio.Lock()

    def _default_transport(self) -> Transport:
        return SocketIOTransport(
            self.settings.server_url,
            client_version=self.settings.client_version,
            wait_timeout=self.settings.connect_timeout,
        )

    # --- public API ---

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def transport(self) -> Optional[Transport]:
        return self._transport

    async def connect(self, token: Optional[str]) -> Optional[Transport]:
        """Open the channel with ``token``.

        Returns the live transport, or ``None`` when the call was skipped
        (no token, throttled, attempt already in flight) or the first attempt
        failed and reconnection took over.
        """
        if self.state is ConnectionState.CONNECTED and self._transport is not None:
            return self._transport

        if not token:
            logger.warning("connect() called without a credential; skipping")
            return None

        if self.state in (ConnectionState.CONNECTING, ConnectionState.RECONNECTING):
            logger.debug("connect() ignored: attempt already in progress (%s)", self.state.value)
            return None

        now = self._clock()
        if self.last_attempt_at is not None and now - self.last_attempt_at < self.settings.throttle_window:
            logger.debug("connect() throttled: %.2fs since last attempt", now - self.last_attempt_at)
            return None

        self._token = token
        self.failure = None
        self._set_state(ConnectionState.CONNECTING)
        epoch = self._epoch
        connected = await self._attempt()
        if epoch != self._epoch:
            return None
        if connected:
            return self._transport
        self._after_failure()
        return None

    async def disconnect(self) -> None:
        """Tear down the channel, drop queued emits and reset counters."""
        self._epoch += 1
        await self._cancel_reconnect()
        transport, self._transport = self._transport, None
        if transport is not None:
            await self._close_quietly(transport)
        self.pending.clear()
        self.attempt_count = 0
        self._token = None
        self.failure = None
        if self.state is not ConnectionState.DISCONNECTED:
            self._set_state(ConnectionState.DISCONNECTED)
            self.registry.dispatch(EventName.DISCONNECT, CLIENT_DISCONNECT)

    async def emit(self, event: EventKey, payload: Any = None) -> EmitResult:
        key = event_key(event)
        if self.state is ConnectionState.CONNECTED:
            async with self._send_lock:
                transport = self._transport
                if self.state is ConnectionState.CONNECTED and transport is not None:
                    try:
                        await transport.emit(key, payload)
                        return EmitResult.SENT
                    except TransportError:
                        logger.warning("emit %r failed; queueing until reconnect", key, exc_info=True)
        self.pending.put(key, payload)
        return EmitResult.QUEUED

    async def wait_settled(self) -> None:
        """Wait for any running reconnection loop to finish."""
        task = self._reconnect_task
        if task is not None and not task.done():
            try:
                await task
            except asyncio.CancelledError:
                pass

    def connection_info(self) -> ConnectionInfo:
        transport = self._transport
        return ConnectionInfo(
            state=self.state.value,
            is_connected=self.is_connected,
            sid=transport.sid if transport is not None else None,
            attempt_count=self.attempt_count,
            transport=getattr(transport, "transport_name", None) if transport is not None else None,
            failure=self.failure.value if self.failure else None,
        )

    # --- internals ---

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self.state:
            logger.debug("connection %s -> %s", self.state.value, state.value)
        self.state = state

    async def _attempt(self) -> bool:
        epoch = self._epoch
        self.last_attempt_at = self._clock()
        transport = self._transport_factory()
        transport.bind(
            on_event=self._handle_event,
            on_close=lambda reason, t=transport: self._handle_close(t, reason),
        )
        try:
            await asyncio.wait_for(transport.open(self._token), timeout=self.settings.connect_timeout)
        except asyncio.TimeoutError:
            logger.warning("connection attempt timed out after %.1fs", self.settings.connect_timeout)
            await self._close_quietly(transport)
            if epoch == self._epoch:
                self.attempt_count += 1
            return False
        except (TransportError, OSError) as exc:
            logger.warning("connection attempt failed: %s", exc)
            await self._close_quietly(transport)
            if epoch == self._epoch:
                self.attempt_count += 1
            return False
        except asyncio.CancelledError:
            await self._close_quietly(transport)
            raise

        if epoch != self._epoch:
            logger.info("discarding connection opened after disconnect()")
            await self._close_quietly(transport)
            return False
        self._transport = transport
        await self._on_open()
        return True

    async def _on_open(self) -> None:
        async with self._send_lock:
            self._set_state(ConnectionState.CONNECTED)
            self.attempt_count = 0
            self.failure = None
            # flush under the lock so fresh emits queue up behind it
            for entry in self.pending.drain():
                try:
                    await self._transport.emit(entry.event_name, entry.payload)
                except TransportError:
                    logger.warning("dropping pending %r: flush failed", entry.event_name, exc_info=True)
        logger.info("live channel connected")
        self.registry.dispatch(EventName.CONNECT, self.connection_info())

    def _after_failure(self) -> None:
        if self.attempt_count >= self.settings.max_reconnect_attempts:
            self._give_up()
            return
        self._set_state(ConnectionState.RECONNECTING)
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        while True:
            delay = self.settings.backoff_delay(self.attempt_count)
            logger.debug("reconnecting in %.1fs (failures so far: %d)", delay, self.attempt_count)
            await self._sleep(delay)
            if self.state is not ConnectionState.RECONNECTING:
                return
            if not self._token:
                self._set_state(ConnectionState.DISCONNECTED)
                return
            epoch = self._epoch
            if await self._attempt():
                return
            if epoch != self._epoch:
                return
            if self.attempt_count >= self.settings.max_reconnect_attempts:
                self._give_up()
                return

    def _give_up(self) -> None:
        attempts = self.attempt_count
        self._set_state(ConnectionState.DISCONNECTED)
        self.failure = FailureKind.UNREACHABLE
        failure = ConnectionFailure(FailureKind.UNREACHABLE, f"{attempts} failed attempt(s)")
        logger.error("%s", failure)
        self.registry.dispatch(EventName.CONNECTION_FAILED, failure)

    async def _handle_close(self, transport: Transport, reason: str) -> None:
        if transport is not self._transport:
            # stale transport from a discarded attempt
            return
        if reason == CLIENT_DISCONNECT or self.state is not ConnectionState.CONNECTED:
            return
        self._transport = None
        self.registry.dispatch(EventName.DISCONNECT, reason)

        if reason == SERVER_DISCONNECT:
            self._set_state(ConnectionState.DISCONNECTED)
            self.failure = FailureKind.SERVER_DISCONNECT
            self._token = None
            self.pending.clear()
            failure = ConnectionFailure(FailureKind.SERVER_DISCONNECT)
            logger.error("%s", failure)
            self.registry.dispatch(EventName.CONNECTION_FAILED, failure)
            return

        logger.warning("live channel lost (%s); reconnecting", reason)
        self._set_state(ConnectionState.RECONNECTING)
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_loop())

    def _handle_event(self, event: str, payload: Any) -> None:
        self.registry.dispatch(event, payload)

    async def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _close_quietly(self, transport: Transport) -> None:
        try:
            await transport.close()
        except (TransportError, OSError):
            logger.debug("error while closing transport", exc_info=True)
