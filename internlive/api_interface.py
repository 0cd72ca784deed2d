from typing import Any, Dict, Iterable, List, Optional

import requests
from requests import Session

from .data_models import (
    Conversation,
    Message,
    Notification,
    NotificationPage,
    NotificationStats,
    Pagination,
    Priority,
)
from .errors import ApiError, AuthError, MalformedPayload
from .log import get_logger

logger = get_logger("api")


def _parse_rows(rows: Any, parser) -> list:
    out = []
    for row in rows or []:
        try:
            out.append(parser(row))
        except MalformedPayload as e:
            logger.warning("skipping malformed row from server: %s", e)
    return out


def _parse_one(data: Any, parser):
    try:
        return parser(data.get("data"))
    except MalformedPayload as e:
        raise ApiError(f"Invalid response from server: {e}") from e


class APIInterface:
    def set_token(self, token: str) -> None: ...
    # notifications
    def get_notifications(
        self,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
        type: Optional[str] = None,
        priority: Optional[Priority] = None,
    ) -> NotificationPage: ...
    def get_notification_stats(self) -> NotificationStats: ...
    def mark_notification_read(self, notification_id: str) -> bool: ...
    def mark_all_notifications_read(self) -> bool: ...
    def bulk_mark_read(self, notification_ids: Iterable[str]) -> bool: ...
    def delete_notification(self, notification_id: str) -> bool: ...
    def bulk_delete_notifications(self, notification_ids: Iterable[str]) -> bool: ...
    # messaging
    def get_conversations(self, page: int = 1, limit: int = 20) -> List[Conversation]: ...
    def create_conversation(
        self, participant_id: str, type: str = "direct", application_id: Optional[str] = None
    ) -> Conversation: ...
    def get_conversation_messages(self, conversation_id: str, page: int = 1, limit: int = 50) -> List[Message]: ...
    def send_message(self, conversation_id: str, content: str) -> Message: ...
    def mark_conversation_read(self, conversation_id: str) -> bool: ...
    def get_unread_message_count(self) -> int: ...


class RealAPI(APIInterface):
    """Real API client that talks to the marketplace REST backend.

    It expects a base_url like http://localhost:5000/api. Every request
    carries the bearer token once ``set_token`` has been called; failures
    raise ``ApiError`` whose message is the backend's ``message`` field.
    """
    def __init__(self, base_url: str, token: str | None = None, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token: Optional[str] = None
        self.session: Session = requests.Session()
        if token:
            self.set_token(token)

    # --- helpers ---
    def set_token(self, token: str) -> None:
        self.token = token
        self.session.headers.update({"Authorization": f"Bearer {self.token}"})

    def _request(
        self,
        method: str,
        path: str,
        params: Dict[str, Any] | None = None,
        json_payload: Any = None,
    ) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            resp = self.session.request(method, url, params=params, json=json_payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise ApiError(f"Network error: {e}") from e

        if resp.status_code == 401:
            raise AuthError(self._error_message(resp), status_code=401)
        if not resp.ok:
            raise ApiError(self._error_message(resp), status_code=resp.status_code)
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise ApiError("Invalid response from server", status_code=resp.status_code) from e

    @staticmethod
    def _error_message(resp: requests.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return f"Request failed with status {resp.status_code}"

    def _get(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        return self._request("GET", path, params=params)

    def _post(self, path: str, json_payload: Any = None) -> Any:
        return self._request("POST", path, json_payload=json_payload)

    def _put(self, path: str, json_payload: Any = None) -> Any:
        return self._request("PUT", path, json_payload=json_payload)

    def _delete(self, path: str, json_payload: Any = None) -> Any:
        return self._request("DELETE", path, json_payload=json_payload)

    # --- notifications ---
    def get_notifications(
        self,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
        type: Optional[str] = None,
        priority: Optional[Priority] = None,
    ) -> NotificationPage:
        params: Dict[str, Any] = {"page": page, "limit": limit}
        # Backend uses 'unread', not 'unread_only'
        if unread_only:
            params["unread"] = "true"
        if type:
            params["type"] = type
        if priority:
            params["priority"] = Priority.parse(priority).value
        data = self._get("/notifications", params=params)
        return NotificationPage(
            items=_parse_rows(data.get("data"), Notification.from_payload),
            unread_count=int(data.get("unreadCount") or 0),
            pagination=Pagination.from_payload(data.get("pagination"), default_limit=limit),
        )

    def get_notification_stats(self) -> NotificationStats:
        data = self._get("/notifications/stats").get("data") or {}
        return NotificationStats(
            total=int(data.get("total") or 0),
            unread=int(data.get("unread") or 0),
            by_type=dict(data.get("byType") or {}),
            by_priority=dict(data.get("byPriority") or {}),
        )

    def mark_notification_read(self, notification_id: str) -> bool:
        self._put(f"/notifications/{notification_id}/read")
        return True

    def mark_all_notifications_read(self) -> bool:
        self._put("/notifications/read-all")
        return True

    def bulk_mark_read(self, notification_ids: Iterable[str]) -> bool:
        self._put("/notifications/bulk-read", json_payload={"notificationIds": list(notification_ids)})
        return True

    def delete_notification(self, notification_id: str) -> bool:
        self._delete(f"/notifications/{notification_id}")
        return True

    def bulk_delete_notifications(self, notification_ids: Iterable[str]) -> bool:
        self._delete("/notifications/bulk", json_payload={"notificationIds": list(notification_ids)})
        return True

    # --- messaging ---
    def get_conversations(self, page: int = 1, limit: int = 20) -> List[Conversation]:
        data = self._get("/messages/conversations", params={"page": page, "limit": limit})
        return _parse_rows(data.get("data"), Conversation.from_payload)

    def create_conversation(
        self, participant_id: str, type: str = "direct", application_id: Optional[str] = None
    ) -> Conversation:
        data = self._post(
            "/messages/conversations",
            json_payload={
                "participantId": participant_id,
                "type": type,
                "applicationId": application_id,
            },
        )
        return _parse_one(data, Conversation.from_payload)

    def get_conversation_messages(self, conversation_id: str, page: int = 1, limit: int = 50) -> List[Message]:
        data = self._get(
            f"/messages/conversations/{conversation_id}/messages",
            params={"page": page, "limit": limit},
        )
        return _parse_rows(data.get("data"), lambda m: Message.from_payload(m, conversation_id))

    def send_message(self, conversation_id: str, content: str) -> Message:
        data = self._post(
            f"/messages/conversations/{conversation_id}/messages",
            json_payload={"content": content, "messageType": "text"},
        )
        return _parse_one(data, lambda m: Message.from_payload(m, conversation_id))

    def mark_conversation_read(self, conversation_id: str) -> bool:
        self._put(f"/messages/conversations/{conversation_id}/read")
        return True

    def get_unread_message_count(self) -> int:
        data = self._get("/messages/unread-count")
        inner = data.get("data")
        if isinstance(inner, dict):
            return int(inner.get("unreadCount") or inner.get("count") or 0)
        return int(data.get("unreadCount") or data.get("count") or 0)
