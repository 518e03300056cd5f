"""Tests for structured JSON logging."""

import json
import logging
import sys

from openblind_auth.common.logging import JSONFormatter, get_logger, setup_logging


def _record(msg="hello %s", args=("world",), **extra):
    record = logging.LogRecord("openblind_auth.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "openblind_auth.test"
        assert entry["message"] == "hello world"
        assert "timestamp" in entry

    def test_extra_fields_included(self):
        entry = json.loads(JSONFormatter().format(
            _record(audit_action="user.login", audit_details={"ip": "10.0.0.1"})
        ))
        assert entry["audit_action"] == "user.login"
        assert entry["audit_details"] == {"ip": "10.0.0.1"}

    def test_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                "openblind_auth.test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )
        entry = json.loads(JSONFormatter().format(record))
        assert "ValueError: boom" in entry["exception"]

    def test_unserializable_extra(self):
        entry = json.loads(JSONFormatter().format(_record(obj=object())))
        assert entry["obj"].startswith("<object")


class TestSetupLogging:
    def test_idempotent(self):
        setup_logging("DEBUG")
        setup_logging("DEBUG")
        logger = logging.getLogger("openblind_auth")
        json_handlers = [h for h in logger.handlers if isinstance(h.formatter, JSONFormatter)]
        assert len(json_handlers) == 1
        assert logger.level == logging.DEBUG
        setup_logging("INFO")
        assert logger.level == logging.INFO

    def test_get_logger_scoped(self):
        assert get_logger("sessions").name == "openblind_auth.sessions"
