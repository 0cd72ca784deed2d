"""Company activity feed fed by live events."""
import asyncio
import itertools
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional

from .data_models import Activity, parse_timestamp
from .events import EventName, EventRegistry, Subscription
from .log import get_logger

logger = get_logger("activity")

ACTIVITY_LABELS = {
    "internship_viewed": "viewed",
    "new_application": "applied to",
    "application_accepted": "accepted for",
    "application_rejected": "rejected for",
    "application_reviewing": "under review for",
}


def describe(activity: Activity) -> str:
    label = ACTIVITY_LABELS.get(activity.type, "interacted with")
    return f"{activity.user_name or 'Someone'} {label} {activity.internship_title or 'an internship'}"


class ActivityFeed:
    def __init__(
        self,
        registry: EventRegistry,
        is_live: Callable[[], bool],
        company_id: Optional[str] = None,
        max_items: int = 10,
        new_flag_seconds: float = 1.0,
    ):
        self.company_id = company_id
        self.max_items = max_items
        self.new_flag_seconds = new_flag_seconds
        self._is_live = is_live
        self._ids = itertools.count(1)
        self._timers: List[asyncio.TimerHandle] = []
        self.activities: List[Activity] = []
        self._listeners: List[Callable[["ActivityFeed"], Any]] = []
        self._subs: List[Subscription] = [
            registry.on(EventName.COMPANY_ACTIVITY, self._on_company_activity),
            registry.on(EventName.NEW_APPLICATION, self._on_new_application),
        ]

    @property
    def is_live(self) -> bool:
        return self._is_live()

    def add_listener(self, callback: Callable[["ActivityFeed"], Any]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception:
                logger.exception("activity listener raised")

    def _on_company_activity(self, data: Any) -> None:
        if not isinstance(data, Mapping):
            logger.warning("dropping malformed company_activity payload: %r", data)
            return
        if self.company_id and str(data.get("companyId")) != self.company_id:
            return
        self.add(
            type=str(data.get("type") or ""),
            user_name=str(data.get("userName") or ""),
            internship_title=str(data.get("internshipTitle") or ""),
            company_id=data.get("companyId"),
            timestamp=data.get("timestamp"),
        )

    def _on_new_application(self, data: Any) -> None:
        if not isinstance(data, Mapping):
            logger.warning("dropping malformed new_application payload: %r", data)
            return
        self.add(
            type="new_application",
            user_name=str(data.get("applicantName") or ""),
            internship_title=str(data.get("internshipTitle") or ""),
            company_id=data.get("companyId"),
        )

    def add(
        self,
        type: str,
        user_name: str,
        internship_title: str,
        company_id: Optional[str] = None,
        timestamp: Any = None,
    ) -> Activity:
        activity = Activity(
            id=next(self._ids),
            type=type,
            user_name=user_name,
            internship_title=internship_title,
            timestamp=parse_timestamp(timestamp) if timestamp else datetime.now(timezone.utc),
            company_id=str(company_id) if company_id else None,
        )
        self.activities = [activity] + self.activities[: self.max_items - 1]
        self._schedule_unflag(activity.id)
        self._notify()
        return activity

    def _schedule_unflag(self, activity_id: int) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timers = [t for t in self._timers if not t.cancelled()]
        self._timers.append(loop.call_later(self.new_flag_seconds, self._unflag, activity_id))

    def _unflag(self, activity_id: int) -> None:
        for activity in self.activities:
            if activity.id == activity_id and activity.is_new:
                activity.is_new = False
                self._notify()
                return

    def close(self) -> None:
        for sub in self._subs:
            sub.dispose()
        self._subs.clear()
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()
        self._listeners.clear()
