"""Logging setup for internlive.

Textual captures stdout/stderr while the app runs, so when
``INTERNLIVE_DEBUG`` is set we also write to ``~/.internlive_debug.log``.
Without the flag only warnings and errors reach stderr.
"""
import logging
import sys

from . import config

ROOT_LOGGER = "internlive"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(debug: bool | None = None) -> logging.Logger:
    """Attach handlers to the ``internlive`` logger once and return it."""
    if debug is None:
        debug = config.DEBUG
    logger = logging.getLogger(ROOT_LOGGER)
    level = logging.DEBUG if debug else logging.WARNING
    logger.setLevel(level)

    if not any(getattr(h, "_internlive", False) for h in logger.handlers):
        stream = logging.StreamHandler(sys.stderr)
        stream.setLevel(level)
        stream.setFormatter(logging.Formatter("[%(name)s] %(levelname)s: %(message)s"))
        stream._internlive = True
        logger.addHandler(stream)

        if debug:
            try:
                config.DEBUG_LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
                fh = logging.FileHandler(str(config.DEBUG_LOG_FILE), encoding="utf-8")
                fh.setLevel(logging.DEBUG)
                fh.setFormatter(logging.Formatter(_FORMAT))
                fh._internlive = True
                logger.addHandler(fh)
            except OSError:
                # never fail core logic for logging issues
                logger.warning("could not open debug log file %s", config.DEBUG_LOG_FILE)
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
