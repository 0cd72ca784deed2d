import pytest

from conftest import notification_payload
from internlive.connection import ConnectionState, EmitResult
from internlive.events import EventName
from internlive.service import RealtimeService


@pytest.fixture
def service(api, settings, factory, clock, sleep):
    return RealtimeService(api, settings, transport_factory=factory, clock=clock, sleep=sleep)


async def test_init_connects_and_routes_pushes_into_store(service, api, factory):
    assert await service.init("tok")

    assert api.token == "tok"
    assert service.is_connected
    assert service.poller.running

    factory.last.push("notification", notification_payload("n1", priority="high"))
    assert service.store.unread_count == 1
    assert service.bell.recent[0].id == "n1"

    await service.teardown()


async def test_init_twice_does_not_double_subscribe(service, factory, clock):
    await service.init("tok")
    clock.advance(5)
    await service.init("tok")

    assert service.registry.listener_count(EventName.NOTIFICATION) == 1
    assert factory.opens == 1
    await service.teardown()


async def test_init_without_token_stays_offline(service, factory):
    assert not await service.init(None)
    assert factory.opens == 0
    assert not service.poller.running


async def test_teardown_stops_everything(service, factory):
    await service.init("tok")
    transport = factory.last

    await service.teardown()

    assert transport.closed
    assert not service.poller.running
    assert service.connection.state is ConnectionState.DISCONNECTED
    assert service.registry.listener_count(EventName.NOTIFICATION) == 0
    assert not service.initialized


async def test_conversation_helpers_emit_expected_payloads(service, factory):
    await service.init("tok")

    assert await service.join_conversation("c1") is EmitResult.SENT
    await service.send_typing("c1", True)
    await service.mark_message_read("c1", "m1")
    await service.leave_conversation("c1")

    assert factory.last.emitted == [
        ("join_conversation", "c1"),
        ("typing", {"conversationId": "c1", "isTyping": True}),
        ("message_read", {"conversationId": "c1", "messageId": "m1"}),
        ("leave_conversation", "c1"),
    ]
    await service.teardown()


async def test_helpers_queue_while_offline(service):
    assert await service.send_typing("c1", True) is EmitResult.QUEUED
    assert "typing" in service.connection.pending


async def test_consumers_share_the_registry(service, factory):
    await service.init("tok")
    feed = service.activity_feed(company_id="c1")
    session = service.conversation_session(user_id="me")

    factory.last.push("company_activity", {"type": "internship_viewed", "companyId": "c1", "userName": "Ada"})

    assert feed.is_live
    assert feed.activities[0].user_name == "Ada"
    assert session.user_id == "me"
    feed.close()
    await service.teardown()
    assert not feed.is_live


async def test_on_returns_disposable_subscription(service, recorder):
    sub = service.on(EventName.INTERNSHIP_CREATED, recorder)
    service.registry.dispatch(EventName.INTERNSHIP_CREATED, {"title": "t"})
    sub.dispose()
    service.registry.dispatch(EventName.INTERNSHIP_CREATED, {"title": "u"})
    assert recorder.calls == [{"title": "t"}]


async def test_teardown_keeps_caller_listeners(service, factory, clock, recorder):
    service.on(EventName.NOTIFICATION, recorder)
    feed = service.activity_feed()
    await service.init("tok")

    await service.teardown()
    assert service.registry.listener_count(EventName.NOTIFICATION) == 1
    assert service.registry.listener_count(EventName.COMPANY_ACTIVITY) == 1

    clock.advance(5)
    await service.init("tok")
    factory.last.push("notification", notification_payload("n2"))

    assert len(recorder.calls) == 1
    assert "n2" in service.store
    assert service.registry.listener_count(EventName.NOTIFICATION) == 2
    feed.close()
    await service.teardown()
