import logging
from unittest.mock import patch

import pytest
import structlog

from blizbase.logging import get_logger, setup_logging
from blizbase.settings import Settings


@pytest.fixture(autouse=True)
def _reset_logging():
    original_handlers = logging.root.handlers[:]
    original_level = logging.root.level
    yield
    logging.root.handlers[:] = original_handlers
    logging.root.setLevel(original_level)
    structlog.reset_defaults()


def test_setup_logging_uses_configured_level():
    with patch("blizbase.logging.logging.basicConfig") as mock_basic:
        setup_logging(Settings(log_level="DEBUG"))
    assert mock_basic.call_args.kwargs["level"] == logging.DEBUG


def test_invalid_level_falls_back_to_info():
    with patch("blizbase.logging.logging.basicConfig") as mock_basic:
        setup_logging(Settings(log_level="CHATTY"))
    assert mock_basic.call_args.kwargs["level"] == logging.INFO


def test_http_libraries_are_quieted():
    setup_logging(Settings(log_level="DEBUG", log_json=False))
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("httpcore").level == logging.WARNING


def test_json_output(capsys):
    setup_logging(Settings(log_level="INFO", log_json=True))
    get_logger("blizbase.test").info("roster_sync_started", guild="die-gilde")
    out = capsys.readouterr().out
    assert '"event": "roster_sync_started"' in out
    assert '"guild": "die-gilde"' in out
