"""Shared logging setup for the library sync.

Every module logs through a named logger that writes to the console, a
per-session log (latest.log) and a daily rotating archive (sync.log).
"""

import logging
import os
from logging.handlers import TimedRotatingFileHandler

DIR = os.path.dirname(os.path.abspath(__file__))
LOG_DIR = os.path.join(DIR, "logs")

LATEST_LOG = os.path.join(LOG_DIR, "latest.log")
DAILY_LOG = os.path.join(LOG_DIR, "sync.log")

_FILE_FMT = logging.Formatter(
    "%(asctime)s [%(name)s] %(levelname)-5s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
_CONSOLE_FMT = logging.Formatter("%(message)s")

_latest_handler = None
_daily_handler = None


class _MakeDirsOnOpen:
    """Create the log directory when the file is first opened, not at import."""

    def _open(self):
        os.makedirs(os.path.dirname(self.baseFilename), exist_ok=True)
        return super()._open()


class _FileHandler(_MakeDirsOnOpen, logging.FileHandler):
    pass


class _DailyHandler(_MakeDirsOnOpen, TimedRotatingFileHandler):
    pass


def _get_file_handlers():
    """Lazily create the shared file handlers (one instance each)."""
    global _latest_handler, _daily_handler

    if _latest_handler is None:
        _latest_handler = _FileHandler(LATEST_LOG, mode="a", encoding="utf-8", delay=True)
        _latest_handler.setLevel(logging.DEBUG)
        _latest_handler.setFormatter(_FILE_FMT)

    if _daily_handler is None:
        _daily_handler = _DailyHandler(
            DAILY_LOG, when="midnight", backupCount=7, encoding="utf-8", delay=True,
        )
        _daily_handler.setLevel(logging.DEBUG)
        _daily_handler.setFormatter(_FILE_FMT)
        _daily_handler.namer = lambda name: name.replace(".log.", ".") + ".log"

    return _latest_handler, _daily_handler


def get_logger(name):
    """Return a named logger with console + latest.log + sync.log handlers."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    if logger.handlers:
        return logger

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(_CONSOLE_FMT)
    logger.addHandler(console)

    latest, daily = _get_file_handlers()
    logger.addHandler(latest)
    logger.addHandler(daily)

    return logger


def reset_latest():
    """Truncate latest.log at session start."""
    os.makedirs(LOG_DIR, exist_ok=True)
    open(LATEST_LOG, "w").close()
