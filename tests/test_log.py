"""Tests for log formatting and request-scoped log context."""

import json
import logging
import sys

import pytest

from helpdesk_rbac.log import (
    HumanReadableFormatter,
    StructuredFormatter,
    clear_log_context,
    configure_logging,
    set_log_context,
)


def make_record(message="Signed in", exc_info=None):
    return logging.LogRecord("helpdesk_rbac.router", logging.INFO, __file__, 1, message, None, exc_info)


@pytest.fixture(autouse=True)
def clean_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestStructuredFormatter:
    def test_context_fields_included(self):
        set_log_context(user_email="amy@contoso.com", request_id="abc123")
        entry = json.loads(StructuredFormatter().format(make_record()))
        assert entry["message"] == "Signed in"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "helpdesk_rbac.router"
        assert entry["user"] == "amy@contoso.com"
        assert entry["request_id"] == "abc123"

    def test_no_context_outside_request(self):
        entry = json.loads(StructuredFormatter().format(make_record()))
        assert "user" not in entry
        assert "request_id" not in entry

    def test_exception_rendered(self):
        try:
            raise RuntimeError("graph down")
        except RuntimeError:
            record = make_record("failed", sys.exc_info())
        entry = json.loads(StructuredFormatter().format(record))
        assert "RuntimeError: graph down" in entry["exception"]


class TestHumanReadableFormatter:
    def test_context_appended(self):
        set_log_context(request_id="abc123")
        line = HumanReadableFormatter().format(make_record())
        assert "helpdesk_rbac.router: Signed in" in line
        assert line.endswith("[request_id=abc123]")

    def test_clear_drops_context(self):
        set_log_context(user_email="amy@contoso.com")
        clear_log_context()
        assert "amy@contoso.com" not in HumanReadableFormatter().format(make_record())


class TestConfigureLogging:
    def test_production_uses_json(self, restore_root_logger):
        configure_logging("production", "debug")
        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, StructuredFormatter)

    def test_other_environments_use_human_lines(self, restore_root_logger):
        configure_logging("test", "nonsense")
        assert restore_root_logger.level == logging.INFO
        assert isinstance(restore_root_logger.handlers[0].formatter, HumanReadableFormatter)
        assert logging.getLogger("httpx").level == logging.WARNING
