"""Credential persistence helpers for internlive.

The bearer token and a minimal user profile survive restarts. Keyring is
tried first; tokens too large for a single credential entry (Windows
Credential Manager) are split into base64 chunks stored under
``token.part{i}`` with a ``token.parts`` index. When no keyring backend
works we fall back to a JSON file in the home directory.

Functions:
  - save_credentials(token: str, user: Optional[dict]) -> None
  - load_credentials() -> Optional[StoredCredentials]
  - clear_credentials() -> None

The realtime core only reads; writing and expiry belong to whoever signs
the user in.
"""
from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from . import config
from .data_models import StoredCredentials
from .log import get_logger

SERVICE_NAME = config.KEYRING_SERVICE
TOKEN_KEY = "token"
USER_KEY = "user"
# Keep chunks conservative to stay under per-credential limits.
_CHUNK_SIZE = 1000

logger = get_logger("auth_storage")


def _fallback_file() -> Path:
    return config.FALLBACK_CREDENTIALS_FILE


def _store_chunked_value(key_base: str, value: str) -> None:
    """Store ``value`` as base64 chunks under ``{key_base}.part{i}``."""
    _delete_chunked_value(key_base)
    data = value.encode("utf-8")
    parts = [data[i : i + _CHUNK_SIZE] for i in range(0, len(data), _CHUNK_SIZE)]
    for idx, part in enumerate(parts):
        keyring.set_password(SERVICE_NAME, f"{key_base}.part{idx}", base64.b64encode(part).decode("ascii"))
    keyring.set_password(SERVICE_NAME, f"{key_base}.parts", str(len(parts)))
    logger.debug("auth_storage: stored %s in %d chunk(s)", key_base, len(parts))


def _read_chunked_value(key_base: str) -> Optional[str]:
    count_s = keyring.get_password(SERVICE_NAME, f"{key_base}.parts")
    if not count_s:
        return None
    try:
        count = int(count_s)
    except ValueError:
        logger.debug("auth_storage: invalid parts index for %s: %r", key_base, count_s)
        return None
    parts = []
    for i in range(count):
        b64 = keyring.get_password(SERVICE_NAME, f"{key_base}.part{i}")
        if b64 is None:
            # missing part -> treat as corruption
            logger.warning("auth_storage: missing chunk %s.part%d", key_base, i)
            return None
        parts.append(base64.b64decode(b64.encode("ascii")))
    return b"".join(parts).decode("utf-8")


def _delete_quietly(key: str) -> None:
    try:
        keyring.delete_password(SERVICE_NAME, key)
    except PasswordDeleteError:
        pass


def _delete_chunked_value(key_base: str) -> None:
    count_s = keyring.get_password(SERVICE_NAME, f"{key_base}.parts")
    if not count_s:
        return
    try:
        count = int(count_s)
    except ValueError:
        count = 0
    for i in range(count):
        _delete_quietly(f"{key_base}.part{i}")
    _delete_quietly(f"{key_base}.parts")


def save_credentials(token: str, user: Optional[dict] = None) -> None:
    """Persist the token and profile, keyring first, file as last resort."""
    profile = json.dumps(user or {})
    try:
        try:
            keyring.set_password(SERVICE_NAME, TOKEN_KEY, token)
        except KeyringError:
            logger.debug("auth_storage: single token write failed; attempting chunked storage")
            _store_chunked_value(TOKEN_KEY, token)
        keyring.set_password(SERVICE_NAME, USER_KEY, profile)
        logger.debug("auth_storage: wrote credentials to keyring")
        return
    except KeyringError:
        logger.warning("auth_storage: keyring unavailable, writing fallback file")

    path = _fallback_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"token": token, "user": user or {}}), encoding="utf-8")
    try:
        path.chmod(0o600)
    except OSError:
        pass


def load_credentials() -> Optional[StoredCredentials]:
    """Return stored credentials, or None when nothing usable is stored."""
    token = None
    user: dict = {}
    try:
        token = keyring.get_password(SERVICE_NAME, TOKEN_KEY) or _read_chunked_value(TOKEN_KEY)
        raw_user = keyring.get_password(SERVICE_NAME, USER_KEY)
        if raw_user:
            try:
                user = json.loads(raw_user)
            except ValueError:
                logger.debug("auth_storage: ignoring unreadable profile blob")
    except KeyringError:
        logger.debug("auth_storage: keyring read failed; trying fallback file", exc_info=True)

    if token:
        return StoredCredentials(token=token, user=user if isinstance(user, dict) else {})

    path = _fallback_file()
    if not path.exists():
        return None
    try:
        blob = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.warning("auth_storage: fallback file %s is unreadable", path)
        return None
    if not isinstance(blob, dict) or not blob.get("token"):
        return None
    profile = blob.get("user")
    return StoredCredentials(token=str(blob["token"]), user=profile if isinstance(profile, dict) else {})


def clear_credentials() -> None:
    """Remove stored credentials from every backend (best-effort)."""
    try:
        _delete_quietly(TOKEN_KEY)
        _delete_quietly(USER_KEY)
        _delete_chunked_value(TOKEN_KEY)
    except KeyringError:
        logger.debug("auth_storage: keyring clear failed", exc_info=True)
    path = _fallback_file()
    try:
        if path.exists():
            path.unlink()
    except OSError:
        logger.warning("auth_storage: could not remove %s", path)
