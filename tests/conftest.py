"""Shared fakes for the internlive test suite."""
import asyncio
import threading
from typing import Any, Dict, Iterable, List, Optional

import pytest

from internlive.api_interface import APIInterface
from internlive.config import RealtimeSettings
from internlive.data_models import (
    Conversation,
    Message,
    Notification,
    NotificationPage,
    NotificationStats,
    Pagination,
)
from internlive.errors import ApiError, TransportError
from internlive.events import EventRegistry
from internlive.transport import TRANSPORT_CLOSE, Transport


class FakeTransport(Transport):
    transport_name = "fake"

    def __init__(self, mode: str = "ok", sid: str = "sid-1"):
        self.mode = mode
        self._sid = sid
        self._connected = False
        self.emitted: List[tuple] = []
        self.opened_with: Optional[str] = None
        self.closed = False
        self.on_event = None
        self.on_close = None
        # "gate" and "gate-fail" block in open() until the test sets this
        self.gate = asyncio.Event()

    def bind(self, on_event, on_close) -> None:
        self.on_event = on_event
        self.on_close = on_close

    async def open(self, token: str) -> None:
        self.opened_with = token
        if self.mode == "hang":
            await asyncio.Event().wait()
        if self.mode in ("gate", "gate-fail"):
            await self.gate.wait()
        if self.mode in ("fail", "gate-fail"):
            raise TransportError("connection refused")
        self._connected = True

    async def close(self) -> None:
        self.closed = True
        self._connected = False

    async def emit(self, event: str, payload: Any) -> None:
        if not self._connected:
            raise TransportError("not connected")
        # yield so concurrent emitters can interleave
        await asyncio.sleep(0)
        self.emitted.append((event, payload))

    @property
    def sid(self) -> Optional[str]:
        return self._sid if self._connected else None

    @property
    def connected(self) -> bool:
        return self._connected

    async def drop(self, reason: str = TRANSPORT_CLOSE) -> None:
        """Simulate the remote end closing the channel."""
        self._connected = False
        await self.on_close(reason)

    def push(self, event: str, payload: Any) -> None:
        self.on_event(event, payload)


class FakeTransportFactory:
    """Hands out a new ``FakeTransport`` per attempt, following ``plan``."""

    def __init__(self, plan: Iterable[str] = (), default: str = "ok"):
        self.plan = list(plan)
        self.default = default
        self.created: List[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        mode = self.plan.pop(0) if self.plan else self.default
        transport = FakeTransport(mode=mode, sid=f"sid-{len(self.created) + 1}")
        self.created.append(transport)
        return transport

    @property
    def opens(self) -> int:
        return len(self.created)

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Instant replacement for ``asyncio.sleep`` that advances the fake clock."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self.clock.advance(delay)
        await asyncio.sleep(0)


def notification_payload(notification_id: str, read: bool = False, **extra) -> Dict[str, Any]:
    payload = {
        "_id": notification_id,
        "type": extra.pop("type", "system_update"),
        "title": extra.pop("title", f"title {notification_id}"),
        "message": extra.pop("message", f"message {notification_id}"),
        "priority": extra.pop("priority", "medium"),
        "read": read,
        "createdAt": extra.pop("createdAt", "2024-05-01T10:00:00Z"),
    }
    payload.update(extra)
    return payload


class FakeAPI(APIInterface):
    """In-memory REST backend.

    ``fail`` maps method names to the exception they should raise.
    ``gates`` maps method names to a ``threading.Event`` the call blocks on.
    """

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None):
        self.rows: List[Dict[str, Any]] = list(rows or [])
        self.token: Optional[str] = None
        self.calls: List[tuple] = []
        self.fail: Dict[str, Exception] = {}
        self.gates: Dict[str, threading.Event] = {}
        self.conversations: List[Dict[str, Any]] = []
        self.messages: Dict[str, List[Dict[str, Any]]] = {}
        self._message_ids = 0
        self.unread_messages = 0

    def _call(self, name: str, *args) -> None:
        self.calls.append((name,) + args)
        gate = self.gates.get(name)
        if gate is not None:
            gate.wait(timeout=5)
        if name in self.fail:
            raise self.fail[name]

    def called(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    def set_token(self, token: str) -> None:
        self.token = token

    def get_notifications(self, page=1, limit=20, unread_only=False, type=None, priority=None) -> NotificationPage:
        self._call("get_notifications", page, limit, unread_only, type, priority)
        rows = [
            r for r in self.rows
            if (not unread_only or not r.get("read"))
            and (not type or r.get("type") == type)
            and (not priority or r.get("priority") == getattr(priority, "value", priority))
        ]
        start = (page - 1) * limit
        total = len(rows)
        return NotificationPage(
            items=[Notification.from_payload(r) for r in rows[start:start + limit]],
            unread_count=sum(1 for r in self.rows if not r.get("read")),
            pagination=Pagination(page=page, limit=limit, total=total, pages=max((total + limit - 1) // limit, 1)),
        )

    def get_notification_stats(self) -> NotificationStats:
        self._call("get_notification_stats")
        return NotificationStats(total=len(self.rows), unread=sum(1 for r in self.rows if not r.get("read")))

    def mark_notification_read(self, notification_id: str) -> bool:
        self._call("mark_notification_read", notification_id)
        for r in self.rows:
            if r["_id"] == notification_id:
                r["read"] = True
        return True

    def mark_all_notifications_read(self) -> bool:
        self._call("mark_all_notifications_read")
        for r in self.rows:
            r["read"] = True
        return True

    def bulk_mark_read(self, notification_ids) -> bool:
        self._call("bulk_mark_read", list(notification_ids))
        return True

    def delete_notification(self, notification_id: str) -> bool:
        self._call("delete_notification", notification_id)
        self.rows = [r for r in self.rows if r["_id"] != notification_id]
        return True

    def bulk_delete_notifications(self, notification_ids) -> bool:
        ids = list(notification_ids)
        self._call("bulk_delete_notifications", ids)
        self.rows = [r for r in self.rows if r["_id"] not in ids]
        return True

    def get_conversations(self, page=1, limit=20) -> List[Conversation]:
        self._call("get_conversations", page, limit)
        return [Conversation.from_payload(c) for c in self.conversations]

    def create_conversation(self, participant_id, type="direct", application_id=None) -> Conversation:
        self._call("create_conversation", participant_id, type, application_id)
        payload = {"_id": f"conv-{participant_id}", "participants": [{"_id": participant_id, "name": participant_id}]}
        self.conversations.append(payload)
        return Conversation.from_payload(payload)

    def get_conversation_messages(self, conversation_id, page=1, limit=50) -> List[Message]:
        self._call("get_conversation_messages", conversation_id)
        return [Message.from_payload(m, conversation_id) for m in self.messages.get(conversation_id, [])]

    def send_message(self, conversation_id: str, content: str) -> Message:
        self._call("send_message", conversation_id, content)
        self._message_ids += 1
        payload = {
            "_id": f"m-sent-{self._message_ids}",
            "sender": {"_id": "me", "name": "Me"},
            "content": content,
            "createdAt": "2024-05-01T10:00:00Z",
        }
        self.messages.setdefault(conversation_id, []).append(payload)
        return Message.from_payload(payload, conversation_id)

    def mark_conversation_read(self, conversation_id: str) -> bool:
        self._call("mark_conversation_read", conversation_id)
        return True

    def get_unread_message_count(self) -> int:
        self._call("get_unread_message_count")
        return self.unread_messages


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep(clock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture
def settings() -> RealtimeSettings:
    return RealtimeSettings(
        server_url="http://test.invalid",
        api_url="http://test.invalid/api",
        throttle_window=2.0,
        connect_timeout=0.05,
        max_reconnect_attempts=5,
        reconnect_delay=1.0,
        reconnect_delay_max=10.0,
        poll_interval=30.0,
        page_limit=20,
    )


@pytest.fixture
def registry() -> EventRegistry:
    return EventRegistry()


@pytest.fixture
def factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def api() -> FakeAPI:
    return FakeAPI()


class Recorder:
    """Callback that remembers every payload it was called with."""

    def __init__(self):
        self.calls: List[Any] = []

    def __call__(self, payload: Any = None) -> None:
        self.calls.append(payload)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
