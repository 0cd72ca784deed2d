"""In-process event dispatch registry.

Maps event names to ordered subscriber callbacks. Delivery is at-most-once
and only to listeners registered at the moment of dispatch; nothing is
queued or replayed. A callback that raises is logged and skipped.
"""
import asyncio
import inspect
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from .log import get_logger

logger = get_logger("events")


class EventName(str, Enum):
    # inbound
    NOTIFICATION = "notification"
    NEW_MESSAGE = "new_message"
    MESSAGE_DELETED = "message_deleted"
    USER_TYPING = "user_typing"
    USER_STATUS_CHANGE = "user_status_change"
    COMPANY_ACTIVITY = "company_activity"
    NEW_APPLICATION = "new_application"
    INTERNSHIP_CREATED = "internship:created"
    USER_ONLINE = "user:online"
    USER_OFFLINE = "user:offline"
    # outbound
    JOIN_CONVERSATION = "join_conversation"
    LEAVE_CONVERSATION = "leave_conversation"
    TYPING = "typing"
    MESSAGE_READ = "message_read"
    # connection lifecycle, dispatched locally
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    CONNECTION_FAILED = "connection_failed"


EventKey = Union[EventName, str]
Callback = Callable[[Any], Any]


def event_key(name: EventKey) -> str:
    return name.value if isinstance(name, EventName) else str(name)


class Subscription:
    """Handle returned by ``EventRegistry.on``.

    ``dispose()`` removes exactly this registration and is safe to call more
    than once, or after the registry has been cleared.
    """

    def __init__(self, registry: "EventRegistry", event: str, callback: Callback):
        self._registry = registry
        self.event = event
        self.callback = callback
        self.active = True

    def dispose(self) -> None:
        if not self.active:
            return
        self.active = False
        self._registry._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.dispose()

    def __repr__(self) -> str:
        state = "active" if self.active else "disposed"
        return f"<Subscription {self.event!r} {state}>"


class EventRegistry:
    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Subscription]] = {}

    def on(self, event: EventKey, callback: Callback) -> Subscription:
        """Register ``callback`` for ``event``. Duplicates are not collapsed."""
        key = event_key(event)
        sub = Subscription(self, key, callback)
        self._subscribers.setdefault(key, []).append(sub)
        return sub

    def off(self, event: EventKey, callback: Optional[Callback] = None) -> int:
        """Remove one registration of ``callback``, or every listener of ``event``.

        Returns the number of registrations removed.
        """
        key = event_key(event)
        subs = self._subscribers.get(key)
        if not subs:
            return 0
        if callback is None:
            removed = len(subs)
            for sub in subs:
                sub.active = False
            del self._subscribers[key]
            return removed
        for sub in subs:
            if sub.callback == callback:
                sub.dispose()
                return 1
        return 0

    def _remove(self, sub: Subscription) -> None:
        subs = self._subscribers.get(sub.event)
        if not subs:
            return
        try:
            subs.remove(sub)
        except ValueError:
            return
        if not subs:
            del self._subscribers[sub.event]

    def dispatch(self, event: EventKey, payload: Any = None) -> int:
        """Invoke every current listener of ``event`` in registration order.

        Returns how many callbacks completed without raising.
        """
        key = event_key(event)
        # snapshot: listeners added or removed during dispatch do not affect this round
        subs = list(self._subscribers.get(key, ()))
        delivered = 0
        for sub in subs:
            if not sub.active:
                continue
            try:
                result = sub.callback(payload)
                if inspect.isawaitable(result):
                    self._schedule(key, result)
                delivered += 1
            except Exception:
                logger.exception("listener for %r raised", key)
        return delivered

    def _schedule(self, key: str, awaitable) -> None:
        try:
            task = asyncio.ensure_future(awaitable)
        except RuntimeError:
            # no running loop: close the coroutine so it is not left pending
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.error("async listener for %r dropped: no running event loop", key)
            return

        def _done(t: asyncio.Future) -> None:
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error("async listener for %r raised", key, exc_info=exc)

        task.add_done_callback(_done)

    def listener_count(self, event: EventKey) -> int:
        return len(self._subscribers.get(event_key(event), ()))

    def clear(self) -> None:
        for subs in self._subscribers.values():
            for sub in subs:
                sub.active = False
        self._subscribers.clear()
