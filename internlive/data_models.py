"""
Data models for internlive.
These models define the structure of data flowing between the REST backend,
the live channel and the UI.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .errors import MalformedPayload

# Tags the backend's Notification model accepts
NOTIFICATION_TYPES = (
    "application_received",
    "application_status_update",
    "new_internship_match",
    "interview_scheduled",
    "deadline_reminder",
    "profile_view",
    "message",
    "system_update",
    "company_verification",
    "review_request",
)


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Any) -> "Priority":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.MEDIUM


def parse_timestamp(value: Any) -> datetime:
    """Accept datetimes, ISO strings (with a trailing Z) or epoch millis."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            # out of range for the platform, or nan
            return datetime.now(timezone.utc)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return datetime.now(timezone.utc)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


def _object_id(value: Any) -> Optional[str]:
    # populated refs arrive as objects, bare refs as strings
    if isinstance(value, Mapping):
        value = value.get("_id") or value.get("id")
    return str(value) if value not in (None, "") else None


@dataclass
class NotificationData:
    """Optional structured payload attached to a notification."""
    action_url: Optional[str] = None
    internship_id: Optional[str] = None
    application_id: Optional[str] = None
    action_required: bool = False

    @classmethod
    def from_payload(cls, payload: Any) -> "NotificationData":
        if not isinstance(payload, Mapping):
            return cls()
        return cls(
            action_url=payload.get("actionUrl") or payload.get("url"),
            internship_id=_object_id(payload.get("internshipId")),
            application_id=_object_id(payload.get("applicationId")),
            action_required=bool(payload.get("actionRequired") or False),
        )


@dataclass
class Notification:
    """Represents a notification, pushed or pulled."""
    id: str
    type: str
    title: str
    message: str
    priority: Priority = Priority.MEDIUM
    read: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    read_at: Optional[datetime] = None
    data: NotificationData = field(default_factory=NotificationData)

    @classmethod
    def from_payload(cls, payload: Any) -> "Notification":
        if isinstance(payload, Notification):
            return payload
        if not isinstance(payload, Mapping):
            raise MalformedPayload(f"notification payload is not an object: {type(payload).__name__}")
        notification_id = payload.get("_id") or payload.get("id")
        if notification_id in (None, ""):
            raise MalformedPayload("notification payload has no id")
        read_at = payload.get("readAt")
        return cls(
            id=str(notification_id),
            type=str(payload.get("type") or "system_update"),
            title=str(payload.get("title") or ""),
            message=str(payload.get("message") or ""),
            priority=Priority.parse(payload.get("priority") or Priority.MEDIUM),
            read=bool(payload.get("read") or False),
            created_at=parse_timestamp(payload.get("createdAt") or payload.get("timestamp")),
            read_at=parse_timestamp(read_at) if read_at else None,
            data=NotificationData.from_payload(payload.get("data")),
        )

    def with_read(self, read: bool) -> "Notification":
        return replace(self, read=read, read_at=self.read_at if read else None)


@dataclass
class Pagination:
    page: int = 1
    limit: int = 20
    total: int = 0
    pages: int = 0

    @property
    def has_more(self) -> bool:
        return self.page < self.pages

    @classmethod
    def from_payload(cls, payload: Any, default_limit: int = 20) -> "Pagination":
        if not isinstance(payload, Mapping):
            return cls(limit=default_limit)
        return cls(
            page=int(payload.get("page") or 1),
            limit=int(payload.get("limit") or default_limit),
            total=int(payload.get("total") or 0),
            pages=int(payload.get("pages") or 0),
        )


@dataclass
class NotificationPage:
    """One page of ``GET /notifications``."""
    items: List[Notification]
    unread_count: int = 0
    pagination: Pagination = field(default_factory=Pagination)


@dataclass
class NotificationStats:
    total: int = 0
    unread: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    by_priority: Dict[str, int] = field(default_factory=dict)


@dataclass
class Message:
    """Represents a chat message."""
    id: str
    conversation_id: str
    sender_id: str
    sender_name: str
    content: str
    created_at: datetime
    message_type: str = "text"
    read_by: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Any, conversation_id: Optional[str] = None) -> "Message":
        if not isinstance(payload, Mapping):
            raise MalformedPayload("message payload is not an object")
        message_id = payload.get("_id") or payload.get("id")
        if message_id in (None, ""):
            raise MalformedPayload("message payload has no id")
        sender = payload.get("sender")
        sender_name = sender.get("name", "") if isinstance(sender, Mapping) else ""
        read_by = []
        for entry in payload.get("readBy") or []:
            reader = _object_id(entry.get("user") if isinstance(entry, Mapping) else entry)
            if reader:
                read_by.append(reader)
        return cls(
            id=str(message_id),
            conversation_id=_object_id(payload.get("conversation")) or conversation_id or "",
            sender_id=_object_id(sender) or "",
            sender_name=sender_name,
            content=str(payload.get("content") or ""),
            created_at=parse_timestamp(payload.get("createdAt")),
            message_type=str(payload.get("messageType") or "text"),
            read_by=read_by,
        )


@dataclass
class Conversation:
    """Represents a conversation thread."""
    id: str
    participants: List[str]
    last_message_preview: str = ""
    last_activity: Optional[datetime] = None
    unread_count: int = 0

    @classmethod
    def from_payload(cls, payload: Any) -> "Conversation":
        if not isinstance(payload, Mapping):
            raise MalformedPayload("conversation payload is not an object")
        conversation_id = payload.get("_id") or payload.get("id")
        if conversation_id in (None, ""):
            raise MalformedPayload("conversation payload has no id")
        participants = []
        for p in payload.get("participants") or []:
            if isinstance(p, Mapping):
                participants.append(str(p.get("name") or p.get("email") or _object_id(p) or ""))
            else:
                participants.append(str(p))
        last = payload.get("lastMessage")
        preview = last.get("content", "") if isinstance(last, Mapping) else ""
        activity = payload.get("lastActivity")
        return cls(
            id=str(conversation_id),
            participants=participants,
            last_message_preview=preview,
            last_activity=parse_timestamp(activity) if activity else None,
            unread_count=int(payload.get("unreadCount") or 0),
        )


@dataclass
class Activity:
    """Represents one entry of the company activity feed."""
    id: int
    type: str
    user_name: str
    internship_title: str
    timestamp: datetime
    company_id: Optional[str] = None
    is_new: bool = True


@dataclass
class ConnectionInfo:
    state: str
    is_connected: bool
    sid: Optional[str] = None
    attempt_count: int = 0
    transport: Optional[str] = None
    failure: Optional[str] = None


@dataclass
class StoredCredentials:
    token: str
    user: Dict[str, Any] = field(default_factory=dict)
