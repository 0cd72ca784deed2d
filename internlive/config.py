"""Configuration and constants for internlive"""
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(override=True)

# Backend endpoints
SERVER_URL = os.environ.get("INTERNLIVE_SERVER_URL", "http://localhost:5000")
API_URL = os.environ.get("INTERNLIVE_API_URL", f"{SERVER_URL.rstrip('/')}/api")
CLIENT_VERSION = os.environ.get("INTERNLIVE_CLIENT_VERSION", "1.0.0")

# Storage settings
KEYRING_SERVICE = "internlive"
FALLBACK_CREDENTIALS_FILE = Path.home() / ".internlive_credentials.json"

# Debug logging
DEBUG = bool(os.getenv("INTERNLIVE_DEBUG"))
DEBUG_LOG_FILE = Path.home() / ".internlive_debug.log"

# Realtime defaults
THROTTLE_WINDOW = 2.0
CONNECT_TIMEOUT = 5.0
MAX_RECONNECT_ATTEMPTS = 5
RECONNECT_DELAY = 5.0
RECONNECT_DELAY_MAX = 10.0
POLL_INTERVAL = 30.0
PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 50
RECENT_LIMIT = 5
REST_TIMEOUT = 5.0

# Activity feed / messaging
ACTIVITY_MAX_ITEMS = 10
ACTIVITY_NEW_FLAG_SECONDS = 1.0
TYPING_TIMEOUT = 3.0


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class RealtimeSettings:
    """Tunables for the live channel and the polling backstop.

    Defaults mirror the module constants; ``from_env`` lets any of them be
    overridden with ``INTERNLIVE_*`` variables.
    """
    server_url: str = SERVER_URL
    api_url: str = API_URL
    client_version: str = CLIENT_VERSION
    throttle_window: float = THROTTLE_WINDOW
    connect_timeout: float = CONNECT_TIMEOUT
    max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS
    reconnect_delay: float = RECONNECT_DELAY
    reconnect_delay_max: float = RECONNECT_DELAY_MAX
    poll_interval: float = POLL_INTERVAL
    page_limit: int = PAGE_LIMIT
    rest_timeout: float = REST_TIMEOUT

    @classmethod
    def from_env(cls) -> "RealtimeSettings":
        return cls(
            server_url=SERVER_URL,
            api_url=API_URL,
            client_version=CLIENT_VERSION,
            throttle_window=_env_float("INTERNLIVE_THROTTLE_WINDOW", THROTTLE_WINDOW),
            connect_timeout=_env_float("INTERNLIVE_CONNECT_TIMEOUT", CONNECT_TIMEOUT),
            max_reconnect_attempts=_env_int("INTERNLIVE_MAX_RECONNECT_ATTEMPTS", MAX_RECONNECT_ATTEMPTS),
            reconnect_delay=_env_float("INTERNLIVE_RECONNECT_DELAY", RECONNECT_DELAY),
            reconnect_delay_max=_env_float("INTERNLIVE_RECONNECT_DELAY_MAX", RECONNECT_DELAY_MAX),
            poll_interval=_env_float("INTERNLIVE_POLL_INTERVAL", POLL_INTERVAL),
            page_limit=min(_env_int("INTERNLIVE_PAGE_LIMIT", PAGE_LIMIT), MAX_PAGE_LIMIT),
            rest_timeout=_env_float("INTERNLIVE_REST_TIMEOUT", REST_TIMEOUT),
        )

    def backoff_delay(self, failures: int) -> float:
        """Delay before the next reconnection attempt after ``failures`` misses."""
        return min(self.reconnect_delay * (2 ** max(failures, 0)), self.reconnect_delay_max)
