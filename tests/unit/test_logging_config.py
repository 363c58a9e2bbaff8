from __future__ import annotations

import logging
import logging.handlers

import pytest

from common.logging_config import setup_logging


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    saved = (root.level, root.handlers[:])
    yield root
    for h in root.handlers[:]:
        root.removeHandler(h)
        h.close()
    root.setLevel(saved[0])
    for h in saved[1]:
        root.addHandler(h)


def test_stderr_handler_only_shows_warnings(restore_root):
    setup_logging("DEBUG")
    (handler,) = restore_root.handlers
    assert isinstance(handler, logging.StreamHandler)
    assert handler.level == logging.WARNING
    assert restore_root.level == logging.DEBUG


def test_log_file_receives_records(restore_root, tmp_path):
    log_file = tmp_path / "logs" / "formation.log"
    setup_logging("info", log_file)
    (handler,) = restore_root.handlers
    assert isinstance(handler, logging.handlers.RotatingFileHandler)

    logging.getLogger("formation.test").info("saved session %s", "session-1-abc")
    handler.flush()
    text = log_file.read_text()
    assert "[INFO] formation.test: saved session session-1-abc" in text
