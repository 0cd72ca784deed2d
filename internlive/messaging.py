"""Conversation state for the messages view.

History and sends go over REST; the live channel brings other participants'
messages, deletions and typing indicators, and carries our room membership,
typing state and read receipts.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from .api_interface import APIInterface
from .data_models import Conversation, Message
from .errors import ApiError, MalformedPayload
from .events import EventKey, EventName, EventRegistry, Subscription
from .log import get_logger

logger = get_logger("messaging")

Emit = Callable[[EventKey, Any], Awaitable[Any]]


class ConversationSession:
    def __init__(
        self,
        api: APIInterface,
        registry: EventRegistry,
        emit: Emit,
        user_id: Optional[str] = None,
        typing_timeout: float = 3.0,
    ):
        self.api = api
        self.registry = registry
        self._emit = emit
        self.user_id = user_id
        self.typing_timeout = typing_timeout

        self.conversations: List[Conversation] = []
        self.conversation_id: Optional[str] = None
        self.messages: List[Message] = []
        self.typing_users: Dict[str, str] = {}
        self.is_typing = False
        self.unread_total = 0

        self._subs: List[Subscription] = []
        self._typing_task: Optional[asyncio.Task] = None
        self._typing_expiry: Dict[str, asyncio.TimerHandle] = {}
        self._listeners: List[Callable[["ConversationSession"], Any]] = []

    def add_listener(self, callback: Callable[["ConversationSession"], Any]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception:
                logger.exception("conversation listener raised")

    def _subscribe(self) -> None:
        if self._subs:
            return
        self._subs = [
            self.registry.on(EventName.NEW_MESSAGE, self._on_new_message),
            self.registry.on(EventName.MESSAGE_DELETED, self._on_message_deleted),
            self.registry.on(EventName.USER_TYPING, self._on_user_typing),
        ]

    # --- REST-backed operations ---

    async def load_conversations(self) -> List[Conversation]:
        self.conversations = await asyncio.to_thread(self.api.get_conversations)
        await self.refresh_unread_total()
        self._notify()
        return self.conversations

    async def refresh_unread_total(self) -> int:
        """Unread messages across all conversations, as the server counts them."""
        try:
            self.unread_total = await asyncio.to_thread(self.api.get_unread_message_count)
        except ApiError as exc:
            logger.warning("could not fetch unread message count: %s", exc.message)
        return self.unread_total

    async def start_conversation(self, participant_id: str, application_id: Optional[str] = None) -> Conversation:
        conversation = await asyncio.to_thread(
            self.api.create_conversation, participant_id, "direct", application_id
        )
        if all(c.id != conversation.id for c in self.conversations):
            self.conversations.insert(0, conversation)
        await self.open(conversation.id)
        return conversation

    async def open(self, conversation_id: str) -> List[Message]:
        """Switch rooms and load the history of ``conversation_id``."""
        self._subscribe()
        if self.conversation_id and self.conversation_id != conversation_id:
            await self._leave_current()
        self.conversation_id = conversation_id
        self.typing_users.clear()
        await self._emit(EventName.JOIN_CONVERSATION, conversation_id)
        self.messages = await asyncio.to_thread(self.api.get_conversation_messages, conversation_id)
        try:
            await asyncio.to_thread(self.api.mark_conversation_read, conversation_id)
        except ApiError as exc:
            logger.warning("could not mark conversation %s read: %s", conversation_id, exc.message)
        else:
            for conversation in self.conversations:
                if conversation.id == conversation_id:
                    conversation.unread_count = 0
            await self.refresh_unread_total()
        self._notify()
        return self.messages

    async def send(self, content: str) -> Optional[Message]:
        """Send ``content`` to the open conversation. ``ApiError`` propagates."""
        text = content.strip()
        if not text or not self.conversation_id:
            return None
        if self.is_typing:
            await self.set_typing(False)
        message = await asyncio.to_thread(self.api.send_message, self.conversation_id, text)
        self._append(message)
        return message

    async def set_typing(self, is_typing: bool) -> None:
        if not self.conversation_id:
            return
        self._cancel_typing_timer()
        if is_typing:
            self._typing_task = asyncio.get_running_loop().create_task(self._stop_typing_later())
        if is_typing == self.is_typing:
            return
        self.is_typing = is_typing
        await self._emit(EventName.TYPING, {"conversationId": self.conversation_id, "isTyping": is_typing})

    async def _stop_typing_later(self) -> None:
        await asyncio.sleep(self.typing_timeout)
        self._typing_task = None
        await self.set_typing(False)

    def _cancel_typing_timer(self) -> None:
        task, self._typing_task = self._typing_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _leave_current(self) -> None:
        if self.is_typing:
            await self.set_typing(False)
        await self._emit(EventName.LEAVE_CONVERSATION, self.conversation_id)

    async def close(self) -> None:
        if self.conversation_id:
            await self._leave_current()
        self._cancel_typing_timer()
        for handle in self._typing_expiry.values():
            handle.cancel()
        self._typing_expiry.clear()
        for sub in self._subs:
            sub.dispose()
        self._subs.clear()
        self.conversation_id = None
        self.messages = []
        self.typing_users.clear()

    # --- live events ---

    def _append(self, message: Message) -> bool:
        if any(m.id == message.id for m in self.messages):
            return False
        self.messages.append(message)
        self._notify()
        return True

    async def _on_new_message(self, data: Any) -> None:
        if not isinstance(data, Mapping):
            logger.warning("dropping malformed new_message payload: %r", data)
            return
        conversation_id = str(data.get("conversationId") or "")
        try:
            message = Message.from_payload(data.get("message"), conversation_id)
        except MalformedPayload as exc:
            logger.warning("dropping malformed new_message payload: %s", exc)
            return
        if message.conversation_id != self.conversation_id:
            return
        self.typing_users.pop(message.sender_id, None)
        if self._append(message) and message.sender_id != self.user_id:
            await self._emit(
                EventName.MESSAGE_READ,
                {"conversationId": message.conversation_id, "messageId": message.id},
            )

    def _on_message_deleted(self, data: Any) -> None:
        if not isinstance(data, Mapping):
            return
        message_id = str(data.get("messageId") or "")
        before = len(self.messages)
        self.messages = [m for m in self.messages if m.id != message_id]
        if len(self.messages) != before:
            self._notify()

    def _on_user_typing(self, data: Any) -> None:
        if not isinstance(data, Mapping):
            return
        if str(data.get("conversationId") or "") != self.conversation_id:
            return
        user_id = str(data.get("userId") or "")
        if not user_id or user_id == self.user_id:
            return
        previous = self._typing_expiry.pop(user_id, None)
        if previous is not None:
            previous.cancel()
        if data.get("isTyping"):
            self.typing_users[user_id] = str(data.get("userName") or "Someone")
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            if loop is not None:
                self._typing_expiry[user_id] = loop.call_later(self.typing_timeout, self._expire_typing, user_id)
        else:
            self.typing_users.pop(user_id, None)
        self._notify()

    def _expire_typing(self, user_id: str) -> None:
        self._typing_expiry.pop(user_id, None)
        if self.typing_users.pop(user_id, None) is not None:
            self._notify()
