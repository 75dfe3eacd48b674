# services/progress_events.py
# Version 01.00.00.00 dated 20251018
# Typed transfer progress events and their on-wire string form

"""
Transfer progress travels to the UI on one string stream. Two prefixes carry
structured progress; every other string is a plain status line:

    PROGRESS_BYTES:<bytesCopied>:<bytesTotal>   byte progress of the current file
    PROGRESS:<filesDone>:<filesTotal>           file-count progress
    anything else                               human-readable status text

Usage:
    event = ByteProgress(copied=65536, total=1048576)
    emit(event.to_wire())                       # "PROGRESS_BYTES:65536:1048576"
    parse_progress_message("PROGRESS:2:5")      # FileProgress(done=2, total=5)
"""

from dataclasses import dataclass
from typing import Union

BYTES_PREFIX = "PROGRESS_BYTES:"
FILES_PREFIX = "PROGRESS:"


@dataclass(frozen=True)
class ByteProgress:
    copied: int
    total: int

    def to_wire(self) -> str:
        return f"{BYTES_PREFIX}{self.copied}:{self.total}"

    @property
    def fraction(self) -> float:
        return 1.0 if self.total == 0 else self.copied / self.total


@dataclass(frozen=True)
class FileProgress:
    done: int
    total: int

    def to_wire(self) -> str:
        return f"{FILES_PREFIX}{self.done}:{self.total}"


@dataclass(frozen=True)
class StatusMessage:
    text: str

    def to_wire(self) -> str:
        return self.text


ProgressEvent = Union[ByteProgress, FileProgress, StatusMessage]


def _parse_pair(body: str):
    parts = body.split(":")
    if len(parts) != 2:
        return None
    first, second = parts
    if not (first.isdigit() and second.isdigit()):
        return None
    return int(first), int(second)


def parse_progress_message(text: str) -> ProgressEvent:
    """
    Turn a wire string back into a typed event.

    Malformed PROGRESS messages (wrong field count, non-numeric fields) are
    returned as StatusMessage rather than raising.
    """
    # PROGRESS_BYTES: must be tested first since it also starts with "PROGRESS"
    if text.startswith(BYTES_PREFIX):
        pair = _parse_pair(text[len(BYTES_PREFIX):])
        if pair is not None:
            return ByteProgress(*pair)
    elif text.startswith(FILES_PREFIX):
        pair = _parse_pair(text[len(FILES_PREFIX):])
        if pair is not None:
            return FileProgress(*pair)
    return StatusMessage(text)


def byte_progress_interval(size: int, minimum: int, maximum: int) -> int:
    """Bytes between PROGRESS_BYTES events for a file: clamp(size / 10)."""
    return max(minimum, min(maximum, size // 10))
