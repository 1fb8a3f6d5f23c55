"""Structured event logging: console line + append-only JSON log file.

Records share one shape: ``timestamp, level, category, message`` plus
free-form context fields. Sensitive headers are stripped before a record
is built, and file-sink failures never reach the caller.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:
    from filedeck.config import Settings
    from filedeck.services.identity import Identity

logger = logging.getLogger(__name__)
_console = logging.getLogger("filedeck.events")

LOG_FILE_NAME = "system.log"
SLOW_OPERATION_MS = 5000


class LogLevel(str, Enum):
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"

    @property
    def numeric(self) -> int:
        return _LEVEL_ORDER[self]


_LEVEL_ORDER = {LogLevel.ERROR: 0, LogLevel.WARN: 1, LogLevel.INFO: 2, LogLevel.DEBUG: 3}

_PY_LEVELS = {
    LogLevel.ERROR: logging.ERROR,
    LogLevel.WARN: logging.WARNING,
    LogLevel.INFO: logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
}


class LogCategory(str, Enum):
    REQUEST = "request"
    FILE = "file"
    SECURITY = "security"
    PERFORMANCE = "performance"
    SYSTEM = "system"
    AUTH = "auth"


_COLORS = {
    LogLevel.ERROR: "\x1b[31m",  # red
    LogLevel.WARN: "\x1b[33m",  # yellow
    LogLevel.INFO: "\x1b[36m",  # cyan
    LogLevel.DEBUG: "\x1b[90m",  # gray
}
_ICONS = {
    LogCategory.REQUEST: "🌐",
    LogCategory.FILE: "📁",
    LogCategory.SECURITY: "🔒",
    LogCategory.PERFORMANCE: "⚡",
    LogCategory.SYSTEM: "🔧",
    LogCategory.AUTH: "👤",
}
_RESET = "\x1b[0m"

SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "x-api-key"})
_RESERVED_FIELDS = ("timestamp", "level", "category", "message")


def sanitize_headers(headers: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of ``headers`` without credential-bearing entries."""
    return {k: v for k, v in headers.items() if str(k).lower() not in SENSITIVE_HEADERS}


def _sanitize(value: Any) -> Any:
    """Deep-copy details, sanitizing every ``headers`` mapping found."""
    if isinstance(value, Mapping):
        cleaned = {}
        for key, item in value.items():
            if key == "headers" and isinstance(item, Mapping):
                cleaned[key] = {k: _sanitize(v) for k, v in sanitize_headers(item).items()}
            else:
                cleaned[key] = _sanitize(item)
        return cleaned
    if isinstance(value, (list, tuple)):
        return [_sanitize(v) for v in value]
    return value


@dataclass
class LoggingConfig:
    """Gating rules: global level, detail switch, per-category toggles."""

    level: LogLevel = LogLevel.INFO
    detailed: bool = True
    categories: dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> LoggingConfig:
        return cls(
            level=LogLevel(settings.event_log_level),
            detailed=settings.enable_detailed_logging,
            categories=dict(settings.category_toggles),
        )

    def allows(self, level: LogLevel, category: LogCategory) -> bool:
        if not self.detailed:
            return level is LogLevel.ERROR
        if level.numeric > self.level.numeric:
            return False
        return self.categories.get(category.value) is not False


class EventLogger:
    """Normalize events into records and fan them out to console and file."""

    def __init__(self, log_dir: str | Path, config: LoggingConfig | None = None):
        self.config = config or LoggingConfig()
        self._log_dir = Path(log_dir)
        self._log_file = self._log_dir / LOG_FILE_NAME
        self._write_lock = threading.Lock()

    @property
    def log_file(self) -> Path:
        return self._log_file

    def should_log(self, level: LogLevel | str, category: LogCategory | str) -> bool:
        return self.config.allows(LogLevel(level), LogCategory(category))

    def build_record(
        self,
        level: LogLevel | str,
        category: LogCategory | str,
        message: str,
        details: Mapping[str, Any] | None = None,
        identity: Identity | None = None,
    ) -> Mapping[str, Any]:
        record: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": LogLevel(level).value,
            "category": LogCategory(category).value,
            "message": message,
        }
        for key, value in _sanitize(details or {}).items():
            if key not in _RESERVED_FIELDS:
                record[key] = value
        if identity is not None:
            record.update(identity.to_fields())
        return MappingProxyType(record)

    def log(
        self,
        level: LogLevel | str,
        category: LogCategory | str,
        message: str,
        details: Mapping[str, Any] | None = None,
        identity: Identity | None = None,
    ) -> Mapping[str, Any] | None:
        """Record one event. Returns the record, or None when gated out."""
        level = LogLevel(level)
        category = LogCategory(category)
        if not self.config.allows(level, category):
            return None

        record = self.build_record(level, category, message, details, identity)
        _console.log(_PY_LEVELS[level], self.format_console(record))
        self._write(record)
        return record

    @staticmethod
    def format_console(record: Mapping[str, Any]) -> str:
        level = LogLevel(record["level"])
        category = LogCategory(record["category"])
        color = _COLORS[level]
        when = datetime.fromisoformat(record["timestamp"]).astimezone()
        stamp = when.strftime("%Y/%m/%d %H:%M:%S")

        line = (
            f"{color}{_ICONS[category]} [{stamp}] [{level.value.upper()}] "
            f"{category.value.upper()}{_RESET}: {record['message']}"
        )
        if record.get("ip") and record.get("user"):
            line += f" | {record['ip']} ({record['user']})"
        if record.get("duration") is not None:
            line += f" | Duration: {record['duration']}ms"
        status = record.get("statusCode")
        if status:
            status_color = "\x1b[31m" if status >= 400 else "\x1b[32m"
            line += f" | Status: {status_color}{status}{_RESET}"
        return line

    def _write(self, record: Mapping[str, Any]) -> None:
        line = json.dumps(dict(record), ensure_ascii=False, default=str) + "\n"
        try:
            with self._write_lock:
                self._log_dir.mkdir(parents=True, exist_ok=True)
                with open(self._log_file, "a", encoding="utf-8") as fh:
                    fh.write(line)
        except OSError as e:
            logger.error("Failed to write to log file %s: %s", self._log_file, e)

    def read_recent(self, limit: int = 100) -> list[dict[str, Any]]:
        """Last ``limit`` persisted records, oldest first."""
        if not self._log_file.exists():
            return []
        with self._write_lock, open(self._log_file, encoding="utf-8") as fh:
            lines = deque(fh, maxlen=limit)
        records = []
        for line in lines:
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError:
                continue  # Torn line from an external writer
        return records

    # --- convenience entry points ---

    def log_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
        identity: Identity | None = None,
        headers: Mapping[str, Any] | None = None,
        query: Mapping[str, Any] | None = None,
        **extra: Any,
    ) -> Mapping[str, Any] | None:
        details = {
            "statusCode": status_code,
            "duration": round(duration_ms),
            "request": {
                "method": method,
                "path": path,
                "query": dict(query or {}),
                "headers": dict(headers or {}),
            },
            **extra,
        }
        level = LogLevel.ERROR if status_code >= 400 else LogLevel.INFO
        return self.log(level, LogCategory.REQUEST, f"{method} {path} - {status_code}", details, identity)

    def log_file_operation(
        self,
        operation: str,
        file_path: str,
        success: bool,
        identity: Identity | None = None,
        file_size: int | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> Mapping[str, Any] | None:
        details: dict[str, Any] = {
            "operation": operation,
            "filePath": file_path,
            "success": success,
            **extra,
        }
        if file_size is not None:
            details["fileSize"] = file_size
        if error:
            details["error"] = error
        level = LogLevel.INFO if success else LogLevel.ERROR
        return self.log(level, LogCategory.FILE, f"File {operation}: {file_path}", details, identity)

    def log_security_event(
        self, event: str, identity: Identity | None = None, **details: Any
    ) -> Mapping[str, Any] | None:
        return self.log(
            LogLevel.WARN, LogCategory.SECURITY, f"Security Event: {event}",
            {"event": event, **details}, identity,
        )

    def log_performance(
        self, operation: str, duration_ms: float, **details: Any
    ) -> Mapping[str, Any] | None:
        level = LogLevel.WARN if duration_ms > SLOW_OPERATION_MS else LogLevel.INFO
        return self.log(
            level, LogCategory.PERFORMANCE, f"Performance: {operation}",
            {"operation": operation, "duration": round(duration_ms), **details},
        )

    def log_auth(
        self,
        event: str,
        username: str,
        success: bool,
        identity: Identity | None = None,
        **details: Any,
    ) -> Mapping[str, Any] | None:
        level = LogLevel.INFO if success else LogLevel.WARN
        outcome = "Success" if success else "Failed"
        return self.log(
            level, LogCategory.AUTH, f"Auth {event}: {username} - {outcome}",
            {"event": event, "username": username, "success": success, **details},
            identity,
        )
