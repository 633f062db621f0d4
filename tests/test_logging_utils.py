from __future__ import annotations

import logging
import logging.handlers

import pytest

from logging_utils import get_logger, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_writes_to_rotating_file(tmp_path, monkeypatch, restore_root_logger) -> None:
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("LOG_LEVEL", "debug")

    setup_logging()
    get_logger("foggyvision.test").debug("hello from the test")

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    file_handlers = [h for h in root.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
    assert len(file_handlers) == 1
    file_handlers[0].flush()
    assert "hello from the test" in (tmp_path / "logs" / "foggyvision.log").read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING


def test_unknown_level_falls_back_to_info(tmp_path, monkeypatch, restore_root_logger) -> None:
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    monkeypatch.setenv("LOG_LEVEL", "chatty")
    setup_logging()
    assert logging.getLogger().level == logging.INFO
