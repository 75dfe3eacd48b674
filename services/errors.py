# services/errors.py
# Version 01.00.00.00 dated 20251018
# Classified errors raised by the import engine services

from typing import Any, Dict, Optional


class ImportEngineError(Exception):
    """
    Base class for every error the engine surfaces to its callers.

    Attributes:
        kind: Machine-readable classification (e.g. "busy", "decode_failed")
        path: File or mount path the error relates to, if any
    """

    category = "engine"

    def __init__(self, kind: str, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.path = path

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "kind": self.kind,
            "message": self.message,
            "path": self.path,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r}, message={self.message!r}, path={self.path!r})"


class DeviceError(ImportEngineError):
    """Enumeration failure, busy volume on unmount, or vanished device."""

    category = "device"

    ENUMERATION_FAILED = "enumeration_failed"
    BUSY = "busy"
    VANISHED = "vanished"
    UNSUPPORTED_PLATFORM = "unsupported_platform"
    UNMOUNT_FAILED = "unmount_failed"


class ScanError(ImportEngineError):
    """Scan root unreadable or gone."""

    category = "scan"

    NOT_FOUND = "not_found"
    NOT_A_DIRECTORY = "not_a_directory"
    UNREADABLE = "unreadable"
    VANISHED = "vanished"


class ThumbnailError(ImportEngineError):
    """Preview could not be produced for one path."""

    category = "thumbnail"

    UNSUPPORTED_FORMAT = "unsupported_format"
    DECODE_FAILED = "decode_failed"
    EXTRACTION_UNSUPPORTED = "extraction_unsupported"
    SOURCE_MISSING = "source_missing"
    TIMEOUT = "timeout"


class TransferError(ImportEngineError):
    """
    Per-file or task-level copy failure.

    Task-level errors carry the partial TransferResult in `result` so that
    outcomes of files already processed are never lost.
    """

    category = "transfer"

    # Per-file
    PERMISSION_DENIED = "permission_denied"
    DISK_FULL = "disk_full"
    SOURCE_MISSING = "source_missing"
    IO_ERROR = "io_error"
    CANCELLED = "cancelled"

    # Task-level
    DESTINATION_VANISHED = "destination_vanished"
    DESTINATION_UNWRITABLE = "destination_unwritable"
    ALL_FAILED = "all_failed"

    def __init__(self, kind: str, message: str, path: Optional[str] = None, result=None):
        super().__init__(kind, message, path)
        self.result = result

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.result is not None:
            data["result"] = self.result.to_dict()
        return data
