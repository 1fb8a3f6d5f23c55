"""Tests for the structured event logger."""

import json
import logging

import pytest

from filedeck.services.event_logger import (
    EventLogger,
    LogCategory,
    LoggingConfig,
    LogLevel,
    sanitize_headers,
)
from filedeck.services.identity import Identity

BOB = Identity(user="bob", ip="192.168.1.20", user_agent="curl/8")


@pytest.fixture
def logger_dir(tmp_path):
    return tmp_path / "logs"


def _lines(event_logger):
    return [json.loads(line) for line in event_logger.log_file.read_text().splitlines()]


class TestRecords:
    def test_record_shape_and_file_sink(self, logger_dir):
        event_logger = EventLogger(logger_dir)
        record = event_logger.log("info", "system", "started", {"port": 8000}, BOB)

        assert record["level"] == "info"
        assert record["category"] == "system"
        assert record["message"] == "started"
        assert record["port"] == 8000
        assert record["user"] == "bob"
        assert record["userAgent"] == "curl/8"
        assert "timestamp" in record
        assert _lines(event_logger) == [dict(record)]

    def test_records_are_immutable(self, logger_dir):
        record = EventLogger(logger_dir).log("info", "system", "x")
        with pytest.raises(TypeError):
            record["level"] = "debug"

    def test_details_cannot_override_reserved_fields(self, logger_dir):
        record = EventLogger(logger_dir).log(
            "info", "file", "real", {"level": "error", "message": "fake"}
        )
        assert record["level"] == "info"
        assert record["message"] == "real"

    def test_unknown_level_rejected(self, logger_dir):
        with pytest.raises(ValueError):
            EventLogger(logger_dir).log("loud", "system", "x")

    def test_read_recent(self, logger_dir):
        event_logger = EventLogger(logger_dir)
        assert event_logger.read_recent() == []
        for i in range(5):
            event_logger.log("info", "system", f"m{i}")
        assert [r["message"] for r in event_logger.read_recent(2)] == ["m3", "m4"]


class TestSanitization:
    def test_sanitize_headers(self):
        headers = {"Authorization": "Bearer t", "Cookie": "s=1", "X-API-Key": "k", "Accept": "*/*"}
        assert sanitize_headers(headers) == {"Accept": "*/*"}

    def test_request_headers_stripped_from_record(self, logger_dir):
        event_logger = EventLogger(logger_dir)
        record = event_logger.log_request(
            "GET", "/api/files/list", 200, 12.4,
            identity=BOB,
            headers={"authorization": "Bearer secret", "user-agent": "curl/8"},
        )
        assert record["request"]["headers"] == {"user-agent": "curl/8"}
        assert "secret" not in event_logger.log_file.read_text()

    def test_nested_headers_stripped(self, logger_dir):
        record = EventLogger(logger_dir).log(
            "info", "security", "x", {"upstream": {"headers": {"Cookie": "c", "Host": "h"}}}
        )
        assert record["upstream"]["headers"] == {"Host": "h"}


class TestGating:
    def test_level_threshold(self, logger_dir):
        event_logger = EventLogger(logger_dir, LoggingConfig(level=LogLevel.WARN))
        assert event_logger.log("info", "system", "quiet") is None
        assert event_logger.log("warn", "system", "loud") is not None
        assert event_logger.log("error", "system", "louder") is not None

    def test_detail_switch_keeps_only_errors(self, logger_dir):
        event_logger = EventLogger(logger_dir, LoggingConfig(level=LogLevel.DEBUG, detailed=False))
        assert event_logger.log("warn", "file", "x") is None
        assert event_logger.log("error", "file", "x") is not None

    def test_category_toggle(self, logger_dir):
        config = LoggingConfig(categories={"request": False})
        event_logger = EventLogger(logger_dir, config)
        assert event_logger.log_request("GET", "/", 200, 1) is None
        assert event_logger.should_log("info", "file")
        assert not event_logger.should_log(LogLevel.INFO, LogCategory.REQUEST)

    def test_gated_records_not_written(self, logger_dir):
        event_logger = EventLogger(logger_dir, LoggingConfig(level=LogLevel.ERROR))
        event_logger.log("debug", "system", "x")
        assert not event_logger.log_file.exists()


class TestSinkFailure:
    def test_unwritable_log_dir_is_reported_not_raised(self, tmp_path, caplog):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        event_logger = EventLogger(blocker)

        with caplog.at_level(logging.ERROR, logger="filedeck.services.event_logger"):
            record = event_logger.log("info", "system", "still returned")

        assert record["message"] == "still returned"
        assert "Failed to write to log file" in caplog.text


class TestConvenience:
    def test_request_status_sets_level(self, logger_dir):
        event_logger = EventLogger(logger_dir)
        ok = event_logger.log_request("GET", "/x", 200, 5)
        bad = event_logger.log_request("GET", "/x", 404, 5)
        assert ok["level"] == "info"
        assert bad["level"] == "error"
        assert bad["statusCode"] == 404
        assert bad["message"] == "GET /x - 404"

    def test_file_operation(self, logger_dir):
        record = EventLogger(logger_dir).log_file_operation(
            "delete", "docs/a.txt", False, error="Permission denied", file_size=3
        )
        assert record["level"] == "error"
        assert record["category"] == "file"
        assert record["operation"] == "delete"
        assert record["fileSize"] == 3
        assert record["error"] == "Permission denied"

    def test_slow_operation_is_a_warning(self, logger_dir):
        event_logger = EventLogger(logger_dir)
        assert event_logger.log_performance("scan", 120)["level"] == "info"
        assert event_logger.log_performance("scan", 6000)["level"] == "warn"

    def test_security_and_auth(self, logger_dir):
        event_logger = EventLogger(logger_dir)
        security = event_logger.log_security_event("path_traversal", identity=BOB, path="../x")
        assert security["level"] == "warn"
        assert security["event"] == "path_traversal"
        auth = event_logger.log_auth("login", "bob", False)
        assert auth["category"] == "auth"
        assert auth["level"] == "warn"
        assert auth["message"] == "Auth login: bob - Failed"


class TestConsoleFormat:
    def test_console_line(self, logger_dir):
        event_logger = EventLogger(logger_dir)
        record = event_logger.log_request("POST", "/api/files/upload", 500, 12.2, identity=BOB)
        line = EventLogger.format_console(record)
        assert "[ERROR] REQUEST" in line
        assert "POST /api/files/upload - 500" in line
        assert "| 192.168.1.20 (bob)" in line
        assert "| Duration: 12ms" in line
        assert "Status:" in line and "500" in line


def test_top_level_headers_sanitized(logger_dir):
    record = EventLogger(logger_dir).log(
        "info", "request", "GET /a", {"headers": {"authorization": "Bearer x", "host": "h"}}
    )
    assert record["headers"] == {"host": "h"}
