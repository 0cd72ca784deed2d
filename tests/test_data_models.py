from datetime import datetime, timezone

import pytest

from internlive.data_models import Message, Notification, Pagination, Priority, parse_timestamp
from internlive.errors import MalformedPayload


def test_notification_from_backend_document():
    n = Notification.from_payload({
        "_id": "665f",
        "type": "application_status_update",
        "title": "Application update",
        "message": "You were shortlisted",
        "priority": "HIGH",
        "read": True,
        "readAt": "2024-05-02T08:00:00.000Z",
        "createdAt": "2024-05-01T10:00:00.000Z",
        "data": {"actionUrl": "/applications/1", "internshipId": {"_id": "i1"}, "actionRequired": True},
    })

    assert n.id == "665f"
    assert n.priority is Priority.HIGH
    assert n.read and n.read_at == datetime(2024, 5, 2, 8, tzinfo=timezone.utc)
    assert n.created_at == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
    assert n.data.action_url == "/applications/1"
    assert n.data.internship_id == "i1"
    assert n.data.action_required


def test_notification_defaults():
    n = Notification.from_payload({"id": 7})
    assert n.id == "7"
    assert n.priority is Priority.MEDIUM
    assert not n.read
    assert n.data.action_url is None


@pytest.mark.parametrize("payload", [None, [], "x", {"title": "no id"}, {"_id": ""}])
def test_notification_without_id_is_malformed(payload):
    with pytest.raises(MalformedPayload):
        Notification.from_payload(payload)


def test_with_read_false_clears_read_at():
    n = Notification.from_payload({"_id": "a", "read": True, "readAt": "2024-05-02T08:00:00Z"})
    assert n.with_read(False).read_at is None
    assert n.with_read(True).read_at == n.read_at


def test_unknown_priority_falls_back_to_medium():
    assert Priority.parse("critical") is Priority.MEDIUM
    assert Priority.parse(Priority.LOW) is Priority.LOW


def test_parse_timestamp_variants():
    assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
    naive = datetime(2024, 1, 1, 12)
    assert parse_timestamp(naive).tzinfo is timezone.utc
    assert parse_timestamp("garbage").tzinfo is not None
    assert parse_timestamp(None).tzinfo is not None


def test_pagination_has_more():
    assert Pagination(page=1, pages=2).has_more
    assert not Pagination(page=2, pages=2).has_more
    assert Pagination.from_payload(None, default_limit=5).limit == 5


def test_message_from_payload():
    m = Message.from_payload({
        "_id": "m1",
        "conversation": {"_id": "c9"},
        "sender": {"_id": "u1", "name": "Ana"},
        "content": "hi",
        "readBy": [{"user": "u2"}, "u3"],
    })
    assert m.conversation_id == "c9"
    assert (m.sender_id, m.sender_name) == ("u1", "Ana")
    assert m.read_by == ["u2", "u3"]

    with pytest.raises(MalformedPayload):
        Message.from_payload({"content": "no id"})


@pytest.mark.parametrize("value", [1e20, -1e20, float("nan"), float("inf")])
def test_out_of_range_epoch_falls_back_to_now(value):
    before = datetime.now(timezone.utc)
    assert parse_timestamp(value) >= before
