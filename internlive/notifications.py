"""Notification center and bell models.

Both read from the ``NotificationStore`` and never touch the live channel.
Filtering is a view over what is already loaded; ``load_more`` and
``refresh`` pull further pages and merge them into the store. Mutations go
through ``run_optimistic`` so a failed REST call rolls the store back.
"""
import asyncio
from dataclasses import dataclass
from typing import List, Optional

from .api_interface import APIInterface
from .commands import CommandResult, run_optimistic
from .data_models import NOTIFICATION_TYPES, Notification, NotificationStats, Pagination, Priority
from .errors import ApiError
from .log import get_logger
from .store import NotificationStore

logger = get_logger("notifications")

_TYPE_CYCLE = (None,) + NOTIFICATION_TYPES
_PRIORITY_CYCLE = (None, Priority.HIGH, Priority.MEDIUM, Priority.LOW)


def _next(options: tuple, current):
    try:
        return options[(options.index(current) + 1) % len(options)]
    except ValueError:
        return options[0]


@dataclass
class NotificationFilter:
    type: Optional[str] = None
    priority: Optional[Priority] = None
    unread_only: bool = False

    def matches(self, n: Notification) -> bool:
        if self.type and n.type != self.type:
            return False
        if self.priority and n.priority != self.priority:
            return False
        return not (self.unread_only and n.read)

    def cycle_type(self) -> None:
        self.type = _next(_TYPE_CYCLE, self.type)

    def cycle_priority(self) -> None:
        self.priority = _next(_PRIORITY_CYCLE, self.priority)

    def toggle_unread(self) -> None:
        self.unread_only = not self.unread_only

    def label(self) -> str:
        parts = [
            f"type={self.type or 'all'}",
            f"priority={self.priority.value if self.priority else 'all'}",
        ]
        if self.unread_only:
            parts.append("unread")
        return " ".join(parts)


class NotificationCenter:
    def __init__(self, api: APIInterface, store: NotificationStore, page_limit: int = 20):
        self.api = api
        self.store = store
        self.filter = NotificationFilter()
        self.pagination = Pagination(limit=page_limit)
        self.stats: Optional[NotificationStats] = None
        self.last_error: Optional[str] = None
        self.loading = False

    def visible(self) -> List[Notification]:
        return self.store.filter(
            type=self.filter.type,
            priority=self.filter.priority,
            unread_only=self.filter.unread_only,
        )

    @property
    def has_more(self) -> bool:
        return self.pagination.has_more

    async def _pull(self, page: int) -> int:
        self.loading = True
        try:
            result = await asyncio.to_thread(
                self.api.get_notifications,
                page,
                self.pagination.limit,
                self.filter.unread_only,
                self.filter.type,
                self.filter.priority,
            )
        except ApiError as exc:
            self.last_error = exc.message
            logger.warning("failed to fetch notifications: %s", exc.message)
            return -1
        finally:
            self.loading = False
        self.last_error = None
        self.pagination = result.pagination
        return self.store.apply_pull(result.items)

    async def refresh(self) -> bool:
        """Pull the first page for the active filter."""
        return await self._pull(1) >= 0

    async def load_more(self) -> int:
        """Pull the next page; returns how many notifications were merged."""
        if not self.pagination.has_more:
            return 0
        return max(await self._pull(self.pagination.page + 1), 0)

    async def fetch_stats(self) -> Optional[NotificationStats]:
        try:
            self.stats = await asyncio.to_thread(self.api.get_notification_stats)
        except ApiError as exc:
            logger.warning("failed to fetch notification stats: %s", exc.message)
        return self.stats

    async def mark_read(self, notification_id: str) -> CommandResult:
        mutation = self.store.mark_read(notification_id)
        if mutation.is_noop:
            return CommandResult(ok=True, inverse=mutation)
        return await run_optimistic(mutation, self.api.mark_notification_read, notification_id)

    async def mark_all_read(self) -> CommandResult:
        mutation = self.store.mark_all_read()
        return await run_optimistic(mutation, self.api.mark_all_notifications_read)

    async def bulk_mark_read(self, ids: Optional[List[str]] = None) -> CommandResult:
        """Mark ``ids``, or every unread notification the active filter shows, read in one call."""
        if ids is None:
            ids = [n.id for n in self.visible() if not n.read]
        mutation = self.store.mark_all_read(ids)
        if mutation.is_noop:
            return CommandResult(ok=True, value=False, inverse=mutation)
        return await run_optimistic(mutation, self.api.bulk_mark_read, list(ids))

    async def delete(self, notification_id: str) -> CommandResult:
        mutation = self.store.remove(notification_id)
        return await run_optimistic(mutation, self.api.delete_notification, notification_id)

    async def bulk_delete(self, ids: Optional[List[str]] = None) -> CommandResult:
        """Delete ``ids``, or everything the active filter shows, in one call."""
        if ids is None:
            ids = [n.id for n in self.visible()]
        if not ids:
            return CommandResult(ok=True, value=False)
        mutation = self.store.remove_many(ids)
        return await run_optimistic(mutation, self.api.bulk_delete_notifications, list(ids))


class NotificationBell:
    """Unread badge plus the handful of newest unread notifications."""

    def __init__(self, center: NotificationCenter, limit: int = 5):
        self.center = center
        self.limit = limit

    @property
    def unread_count(self) -> int:
        return self.center.store.unread_count

    @property
    def recent(self) -> List[Notification]:
        return self.center.store.recent_unread(self.limit)

    async def refresh(self) -> bool:
        try:
            page = await asyncio.to_thread(self.center.api.get_notifications, 1, self.limit, True)
        except ApiError as exc:
            logger.warning("failed to fetch recent notifications: %s", exc.message)
            return False
        self.center.store.apply_pull(page.items)
        return True

    async def activate(self, notification_id: str) -> CommandResult:
        """Mark a notification read; on success ``value`` is its action url."""
        notification = self.center.store.get(notification_id)
        result = await self.center.mark_read(notification_id)
        if result.ok:
            result.value = notification.data.action_url if notification else None
        return result
