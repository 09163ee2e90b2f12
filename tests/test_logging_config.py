import logging
from logging.handlers import RotatingFileHandler

import pytest

from app.utils.logging_config import configure_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_level_and_single_console_handler():
    configure_logging(level=logging.DEBUG)
    configure_logging(level=logging.DEBUG)
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 1
    assert logging.getLogger("httpx").level == logging.WARNING


def test_rotating_file_handler(tmp_path):
    log_file = tmp_path / "logs" / "bot.log"
    configure_logging(level=logging.INFO, log_file=str(log_file))
    assert any(isinstance(h, RotatingFileHandler) for h in logging.getLogger().handlers)

    logging.getLogger("napomni.test").info("Reminder sent: task_id=%s", "t1")
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "task_id=t1" in log_file.read_text(encoding="utf-8")
