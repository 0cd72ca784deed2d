"""Exception types shared across internlive."""
from enum import Enum
from typing import Optional


class InternLiveError(Exception):
    """Base class for internlive errors"""
    pass


class ApiError(InternLiveError):
    """A REST call failed. ``message`` is what the UI shows verbatim."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthError(ApiError):
    """Authentication related errors"""
    pass


class TransportError(InternLiveError):
    """The live channel could not be opened or used."""
    pass


class MalformedPayload(InternLiveError, ValueError):
    """An inbound payload is missing fields we need."""
    pass


class FailureKind(str, Enum):
    SERVER_DISCONNECT = "server_disconnect"
    UNREACHABLE = "unreachable"


_FAILURE_MESSAGES = {
    FailureKind.SERVER_DISCONNECT: "Disconnected by server. Please sign in again.",
    FailureKind.UNREACHABLE: "Unable to connect to the live server.",
}


class ConnectionFailure(InternLiveError):
    """Terminal connection failure surfaced to the user."""

    def __init__(self, kind: FailureKind, detail: str = ""):
        self.kind = kind
        self.detail = detail
        message = _FAILURE_MESSAGES[kind]
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)

    @property
    def requires_reauth(self) -> bool:
        return self.kind is FailureKind.SERVER_DISCONNECT
