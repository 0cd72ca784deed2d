from unittest.mock import AsyncMock

import pytest
import socketio

from internlive.errors import TransportError
from internlive.transport import (
    CLIENT_DISCONNECT,
    SERVER_DISCONNECT,
    TRANSPORT_CLOSE,
    SocketIOTransport,
    normalize_reason,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("io server disconnect", SERVER_DISCONNECT),
        ("server disconnect", SERVER_DISCONNECT),
        ("io client disconnect", CLIENT_DISCONNECT),
        ("client disconnect", CLIENT_DISCONNECT),
        ("transport close", TRANSPORT_CLOSE),
        ("ping timeout", TRANSPORT_CLOSE),
        (None, TRANSPORT_CLOSE),
    ],
)
def test_normalize_reason(raw, expected):
    assert normalize_reason(raw) == expected


@pytest.fixture
def transport():
    return SocketIOTransport("http://localhost:5000/", client_version="2.1.0")


def test_connect_url_carries_client_metadata(transport):
    url = transport._connect_url()
    assert url.startswith("http://localhost:5000?")
    assert "clientVersion=2.1.0" in url
    assert "timezone=" in url


async def test_open_passes_token_in_handshake(transport):
    transport._client.connect = AsyncMock()
    await transport.open("tok")
    kwargs = transport._client.connect.call_args.kwargs
    assert kwargs["auth"] == {"token": "tok"}
    assert kwargs["transports"] == ["polling", "websocket"]


async def test_open_failure_becomes_transport_error(transport):
    transport._client.connect = AsyncMock(side_effect=socketio.exceptions.ConnectionError("refused"))
    with pytest.raises(TransportError):
        await transport.open("tok")


async def test_emit_failure_becomes_transport_error(transport):
    transport._client.emit = AsyncMock(side_effect=socketio.exceptions.BadNamespaceError("/ is not connected"))
    with pytest.raises(TransportError):
        await transport.emit("typing", {})


async def test_inbound_events_and_close_are_forwarded(transport):
    events, closes = [], []

    async def on_close(reason):
        closes.append(reason)

    transport.bind(lambda event, payload: events.append((event, payload)), on_close)

    await transport._handle_event("notification", {"_id": "n1"})
    await transport._handle_event("ping")
    await transport._handle_event("multi", 1, 2)
    await transport._handle_disconnect("io server disconnect")

    assert events == [("notification", {"_id": "n1"}), ("ping", None), ("multi", [1, 2])]
    assert closes == [SERVER_DISCONNECT]


async def test_close_when_not_connected_is_noop(transport):
    transport._client.disconnect = AsyncMock()
    await transport.close()
    transport._client.disconnect.assert_not_called()
    assert transport.sid is None
    assert transport.transport_name is None


def test_asyncio_client_extra_is_installed():
    import aiohttp

    assert socketio.AsyncClient
    assert aiohttp.ClientSession
