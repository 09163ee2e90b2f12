"""Process-wide logging setup.

``configure_logging()`` is called once by every entry-point (web app, celery
worker, one-shot scripts). Level and optional rotating log file come from
``LOG_LEVEL`` / ``LOG_FILE``. Message text, tokens and audio never reach
the logs; call sites log ids and counters only.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from config import settings

_MAX_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 3
_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _level_from(raw: str | None) -> int:
    return getattr(logging, (raw or "INFO").strip().upper(), logging.INFO)


def configure_logging(*, level: int | None = None, log_file: str | None = None) -> None:
    if level is None:
        level = _level_from(settings.LOG_LEVEL)
    if log_file is None:
        log_file = (settings.LOG_FILE or "").strip() or None

    formatter = logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
        except OSError as e:
            root.warning("Could not open log file %s: %s; logging to stderr only", log_file, e)

    # httpx logs full request URLs, which embed the bot token
    for name in ("httpx", "httpcore", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
