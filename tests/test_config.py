import logging

from internlive import config
from internlive.config import RealtimeSettings
from internlive.log import configure_logging, get_logger


def test_backoff_doubles_and_caps():
    settings = RealtimeSettings(reconnect_delay=5.0, reconnect_delay_max=10.0)
    assert settings.backoff_delay(0) == 5.0
    assert settings.backoff_delay(1) == 10.0
    assert settings.backoff_delay(4) == 10.0
    assert settings.backoff_delay(-1) == 5.0


def test_defaults_match_module_constants():
    settings = RealtimeSettings()
    assert settings.throttle_window == 2.0
    assert settings.max_reconnect_attempts == 5
    assert settings.connect_timeout == 5.0
    assert settings.poll_interval == 30.0


def test_from_env_overrides(monkeypatch):
    monkeypatch.setenv("INTERNLIVE_MAX_RECONNECT_ATTEMPTS", "3")
    monkeypatch.setenv("INTERNLIVE_POLL_INTERVAL", "12.5")
    monkeypatch.setenv("INTERNLIVE_PAGE_LIMIT", "500")
    monkeypatch.setenv("INTERNLIVE_CONNECT_TIMEOUT", "not-a-number")

    settings = RealtimeSettings.from_env()

    assert settings.max_reconnect_attempts == 3
    assert settings.poll_interval == 12.5
    assert settings.page_limit == config.MAX_PAGE_LIMIT
    assert settings.connect_timeout == config.CONNECT_TIMEOUT


def test_configure_logging_is_idempotent(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DEBUG_LOG_FILE", tmp_path / "debug.log")
    root = logging.getLogger("internlive")
    before = list(root.handlers)
    try:
        configure_logging(debug=True)
        configure_logging(debug=True)
        added = [h for h in root.handlers if h not in before]
        assert len(added) == 2
        get_logger("test").debug("hello file")
        for h in added:
            h.flush()
        assert "hello file" in (tmp_path / "debug.log").read_text()
    finally:
        for h in root.handlers[:]:
            if h not in before:
                root.removeHandler(h)
                h.close()
        root.setLevel(logging.NOTSET)
