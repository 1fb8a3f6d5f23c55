"""Typed error kinds raised by the file service core.

Every error carries a stable ``kind`` string and a human message. Mapping a
kind to an HTTP status is the REST layer's job (see ``filedeck.main``).
"""

from __future__ import annotations


class FileServiceError(Exception):
    """Base class for all core errors."""

    kind = "IO"

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def to_dict(self) -> dict:
        data = {"kind": self.kind, "message": self.message}
        if self.path is not None:
            data["path"] = self.path
        return data


class InvalidPath(FileServiceError):
    kind = "InvalidPath"


class NotFound(FileServiceError):
    kind = "NotFound"


class AlreadyExists(FileServiceError):
    kind = "AlreadyExists"


class PermissionDenied(FileServiceError):
    kind = "PermissionDenied"


class NotADirectory(FileServiceError):
    kind = "NotADirectory"


class IsADirectory(FileServiceError):
    kind = "IsADirectory"


class StorageIOError(FileServiceError):
    """Any other filesystem failure. ``cause="deadline"`` when a timeout hit."""

    kind = "IO"

    def __init__(self, message: str, path: str | None = None, cause: str | None = None):
        super().__init__(message, path)
        self.cause = cause

    @property
    def is_deadline(self) -> bool:
        return self.cause == "deadline"

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.cause:
            data["cause"] = self.cause
        return data


class UnknownTransfer(FileServiceError):
    kind = "UnknownTransfer"

    def __init__(self, transfer_id: str):
        super().__init__(f"Transfer {transfer_id} not found")
        self.transfer_id = transfer_id


class CacheUnavailable(FileServiceError):
    kind = "CacheUnavailable"


class ScanBusy(FileServiceError):
    kind = "ScanBusy"
