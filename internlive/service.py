"""Realtime service: one explicit owner for the live channel and its consumers.

Constructed once by the app and passed to whatever needs it. ``init(token)``
wires pushes into the store, opens the channel and starts the polling
backstop; ``teardown()`` undoes all of it and leaves the service reusable.
Listeners added through ``on()`` and the consumer objects it hands out
belong to their callers and survive a teardown.
"""
import asyncio
import time
from typing import Any, Callable, List, Optional

from .activity import ActivityFeed
from .api_interface import APIInterface
from .config import ACTIVITY_MAX_ITEMS, ACTIVITY_NEW_FLAG_SECONDS, RECENT_LIMIT, TYPING_TIMEOUT, RealtimeSettings
from .connection import ConnectionManager, EmitResult, TransportFactory
from .data_models import ConnectionInfo
from .events import Callback, EventKey, EventName, EventRegistry, Subscription
from .log import get_logger
from .messaging import ConversationSession
from .notifications import NotificationBell, NotificationCenter
from .poller import NotificationPoller
from .store import NotificationStore

logger = get_logger("service")


class RealtimeService:
    def __init__(
        self,
        api: APIInterface,
        settings: Optional[RealtimeSettings] = None,
        transport_factory: Optional[TransportFactory] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.api = api
        self.settings = settings or RealtimeSettings()
        self.registry = EventRegistry()
        self.connection = ConnectionManager(
            self.registry,
            settings=self.settings,
            transport_factory=transport_factory,
            clock=clock,
            sleep=sleep,
        )
        self.store = NotificationStore()
        self.poller = NotificationPoller(
            api, self.store, interval=self.settings.poll_interval, limit=self.settings.page_limit
        )
        self.center = NotificationCenter(api, self.store, page_limit=self.settings.page_limit)
        self.bell = NotificationBell(self.center, limit=RECENT_LIMIT)
        self._subs: List[Subscription] = []
        self.initialized = False

    # --- lifecycle ---

    async def init(self, token: Optional[str]) -> bool:
        """Start syncing for ``token``. Returns True if the channel opened now."""
        if not token:
            logger.warning("init() without a credential; live updates disabled")
            return False
        self.api.set_token(token)
        if not self._subs:
            self._subs.append(self.registry.on(EventName.NOTIFICATION, self.store.apply_push))
        self.initialized = True
        transport = await self.connection.connect(token)
        self.poller.start()
        return transport is not None

    async def teardown(self) -> None:
        await self.poller.stop()
        await self.connection.disconnect()
        for sub in self._subs:
            sub.dispose()
        self._subs.clear()
        self.initialized = False

    # --- passthroughs ---

    def on(self, event: EventKey, callback: Callback) -> Subscription:
        return self.registry.on(event, callback)

    async def emit(self, event: EventKey, payload: Any = None) -> EmitResult:
        return await self.connection.emit(event, payload)

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    def connection_info(self) -> ConnectionInfo:
        return self.connection.connection_info()

    # --- conversation helpers ---

    async def join_conversation(self, conversation_id: str) -> EmitResult:
        return await self.emit(EventName.JOIN_CONVERSATION, conversation_id)

    async def leave_conversation(self, conversation_id: str) -> EmitResult:
        return await self.emit(EventName.LEAVE_CONVERSATION, conversation_id)

    async def send_typing(self, conversation_id: str, is_typing: bool) -> EmitResult:
        return await self.emit(EventName.TYPING, {"conversationId": conversation_id, "isTyping": is_typing})

    async def mark_message_read(self, conversation_id: str, message_id: str) -> EmitResult:
        return await self.emit(EventName.MESSAGE_READ, {"conversationId": conversation_id, "messageId": message_id})

    # --- consumers ---

    def activity_feed(self, company_id: Optional[str] = None) -> ActivityFeed:
        return ActivityFeed(
            self.registry,
            is_live=lambda: self.connection.is_connected,
            company_id=company_id,
            max_items=ACTIVITY_MAX_ITEMS,
            new_flag_seconds=ACTIVITY_NEW_FLAG_SECONDS,
        )

    def conversation_session(self, user_id: Optional[str] = None) -> ConversationSession:
        return ConversationSession(
            self.api, self.registry, self.emit, user_id=user_id, typing_timeout=TYPING_TIMEOUT
        )
