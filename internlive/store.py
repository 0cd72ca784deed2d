"""Client-side notification store.

Pushes (live channel) and pulls (REST) both land here and are merged by id
through ``merge_notification``. ``read`` merges as a logical OR, so the
result does not depend on whether a pull response or a push arrives first.
Local mutations are optimistic and return a ``Mutation`` that can undo them
if the backing REST call fails.
"""
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from .data_models import Notification, Priority
from .errors import MalformedPayload
from .events import EventRegistry, Subscription
from .log import get_logger

logger = get_logger("store")

_CHANGED = "changed"
_TOMBSTONE_LIMIT = 500


def merge_notification(current: Optional[Notification], incoming: Notification) -> Notification:
    """Merge two views of the same notification.

    Fields other than ``read`` take the incoming value. ``read`` never goes
    back to false through a merge.
    """
    if current is None:
        return incoming
    read = current.read or incoming.read
    read_at = (incoming.read_at or current.read_at) if read else None
    return replace(incoming, read=read, read_at=read_at)


class Mutation:
    """Undo record for an optimistic local change."""

    def __init__(self, label: str, undo: Optional[Callable[[], None]] = None):
        self.label = label
        self._undo = undo
        self.reverted = False

    @property
    def is_noop(self) -> bool:
        return self._undo is None

    def revert(self) -> None:
        if self.reverted:
            return
        self.reverted = True
        if self._undo is not None:
            self._undo()

    def __repr__(self) -> str:
        return f"<Mutation {self.label!r}{' reverted' if self.reverted else ''}>"


class NotificationStore:
    def __init__(self, max_items: Optional[int] = 500):
        self.max_items = max_items
        self._items: Dict[str, Notification] = {}
        # ids marked read locally that no pull has confirmed yet
        self._acknowledged: Set[str] = set()
        # ids deleted locally, oldest first; pulls and pushes must not bring them back
        self._tombstones: Dict[str, None] = {}
        self._changes = EventRegistry()

    # --- observation ---

    def subscribe(self, callback: Callable[["NotificationStore"], Any]) -> Subscription:
        return self._changes.on(_CHANGED, callback)

    def _changed(self) -> None:
        self._changes.dispatch(_CHANGED, self)

    @property
    def notifications(self) -> List[Notification]:
        """Newest first."""
        return sorted(self._items.values(), key=lambda n: (n.created_at, n.id), reverse=True)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._items.values() if not n.read)

    @property
    def pending_reads(self) -> Set[str]:
        return set(self._acknowledged)

    def get(self, notification_id: str) -> Optional[Notification]:
        return self._items.get(notification_id)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, notification_id: object) -> bool:
        return notification_id in self._items

    def filter(
        self,
        type: Optional[str] = None,
        priority: Optional[Priority] = None,
        unread_only: bool = False,
    ) -> List[Notification]:
        result = []
        for n in self.notifications:
            if type and n.type != type:
                continue
            if priority and n.priority != priority:
                continue
            if unread_only and n.read:
                continue
            result.append(n)
        return result

    def recent_unread(self, limit: int = 5) -> List[Notification]:
        return self.filter(unread_only=True)[:limit]

    # --- producers ---

    def apply_push(self, payload: Any) -> Optional[Notification]:
        """Insert or merge a pushed notification. Malformed payloads are dropped."""
        try:
            incoming = Notification.from_payload(payload)
        except MalformedPayload as exc:
            logger.warning("dropping malformed notification push: %s", exc)
            return None
        if incoming.id in self._tombstones:
            return None
        merged = self._merge(incoming)
        self._evict()
        self._changed()
        return merged

    def apply_pull(self, batch: Iterable[Any]) -> int:
        """Merge a fetched page. Returns how many entries were merged."""
        merged = 0
        for payload in batch:
            try:
                incoming = Notification.from_payload(payload)
            except MalformedPayload as exc:
                logger.warning("skipping malformed notification in pull: %s", exc)
                continue
            if incoming.id in self._tombstones:
                continue
            self._merge(incoming)
            if incoming.read:
                # server caught up with our optimistic read
                self._acknowledged.discard(incoming.id)
            merged += 1
        if merged:
            self._evict()
            self._changed()
        return merged

    def _merge(self, incoming: Notification) -> Notification:
        merged = merge_notification(self._items.get(incoming.id), incoming)
        self._items[incoming.id] = merged
        return merged

    def _evict(self) -> None:
        if self.max_items is None or len(self._items) <= self.max_items:
            return
        for n in self.notifications[self.max_items:]:
            del self._items[n.id]
            self._acknowledged.discard(n.id)

    # --- optimistic mutations ---

    def mark_read(self, notification_id: str) -> Mutation:
        current = self._items.get(notification_id)
        if current is None or current.read:
            return Mutation(f"mark_read:{notification_id}")
        self._set_read([notification_id])
        self._changed()
        return Mutation(f"mark_read:{notification_id}", lambda: self._unset_read([notification_id]))

    def mark_all_read(self, ids: Optional[Iterable[str]] = None) -> Mutation:
        scope = set(ids) if ids is not None else None
        targets = [
            n.id for n in self._items.values()
            if not n.read and (scope is None or n.id in scope)
        ]
        if not targets:
            return Mutation("mark_all_read")
        self._set_read(targets)
        self._changed()
        return Mutation("mark_all_read", lambda: self._unset_read(targets))

    def _set_read(self, ids: List[str]) -> None:
        now = datetime.now(timezone.utc)
        for notification_id in ids:
            self._items[notification_id] = replace(self._items[notification_id], read=True, read_at=now)
            self._acknowledged.add(notification_id)

    def _unset_read(self, ids: List[str]) -> None:
        changed = False
        for notification_id in ids:
            # a pull that already confirmed the read wins over the rollback
            if notification_id not in self._acknowledged:
                continue
            self._acknowledged.discard(notification_id)
            current = self._items.get(notification_id)
            if current is not None and current.read:
                self._items[notification_id] = current.with_read(False)
                changed = True
        if changed:
            self._changed()

    def remove(self, notification_id: str) -> Mutation:
        return self.remove_many([notification_id])

    def remove_many(self, ids: Iterable[str]) -> Mutation:
        removed: Dict[str, Notification] = {}
        for notification_id in ids:
            current = self._items.pop(notification_id, None)
            if current is None:
                continue
            removed[notification_id] = current
            self._bury(notification_id)
        if not removed:
            return Mutation("remove")
        self._changed()

        def undo() -> None:
            for notification_id, previous in removed.items():
                self._tombstones.pop(notification_id, None)
                self._items.setdefault(notification_id, previous)
            self._changed()

        return Mutation(f"remove:{','.join(removed)}", undo)

    def _bury(self, notification_id: str) -> None:
        self._tombstones.pop(notification_id, None)
        self._tombstones[notification_id] = None
        limit = self.max_items or _TOMBSTONE_LIMIT
        while len(self._tombstones) > limit:
            del self._tombstones[next(iter(self._tombstones))]

    def clear(self) -> None:
        self._items.clear()
        self._acknowledged.clear()
        self._tombstones.clear()
        self._changed()
