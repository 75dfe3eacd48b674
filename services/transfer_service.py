# services/transfer_service.py
# Version 01.00.00.00 dated 20251018
# Sequential, progress-streamed copy of selected media into a destination folder

import errno
import os
import shutil
import time
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, List, Optional, Sequence

from config import TransferConfig, get_import_config
from logging_config import get_logger
from services.duplicate_check_service import file_matches
from services.errors import TransferError
from services.progress_events import (
    ByteProgress,
    FileProgress,
    StatusMessage,
    byte_progress_interval,
)

logger = get_logger(__name__)

ProgressCallback = Callable[[str], None]

COPIED = "copied"
SKIPPED_DUPLICATE = "skipped-duplicate"
FAILED = "failed"

_DISK_FULL_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}
_PERMISSION_ERRNOS = {errno.EACCES, errno.EPERM, errno.EROFS}


@dataclass
class FileOutcome:
    """What happened to one source file."""
    source_path: str
    status: str                              # copied / skipped-duplicate / failed
    destination_path: Optional[str] = None
    reason: Optional[str] = None             # error kind for failed files
    message: Optional[str] = None
    bytes_copied: int = 0

    @property
    def renamed(self) -> bool:
        return (self.status == COPIED and self.destination_path is not None
                and os.path.basename(self.destination_path) != os.path.basename(self.source_path))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TransferResult:
    """Ordered per-file outcomes plus aggregate counts."""
    destination_dir: str
    total_files: int
    outcomes: List[FileOutcome] = field(default_factory=list)
    cancelled: bool = False
    elapsed_seconds: float = 0.0

    @property
    def copied_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == COPIED)

    @property
    def skipped_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == SKIPPED_DUPLICATE)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == FAILED)

    @property
    def bytes_copied(self) -> int:
        return sum(o.bytes_copied for o in self.outcomes)

    def summary(self) -> str:
        head = "Import cancelled" if self.cancelled else "Import complete"
        return f"{head}: {self.copied_count} copied, {self.skipped_count} skipped, {self.failed_count} failed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "destination_dir": self.destination_dir,
            "total_files": self.total_files,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "cancelled": self.cancelled,
            "copied": self.copied_count,
            "skipped": self.skipped_count,
            "failed": self.failed_count,
            "bytes_copied": self.bytes_copied,
            "elapsed_seconds": self.elapsed_seconds,
        }


class _Cancelled(Exception):
    """Raised inside the chunk loop when cancellation is requested."""


class TransferService:
    """
    Copies files one at a time into a destination directory.

    - Same name and same size at the destination: skipped as a duplicate
    - Same name, different size: written as "<stem>_<n><ext>"
    - Each file is written to a hidden part file and renamed into place,
      so a failed or cancelled copy never leaves a truncated file behind
    - A failing file is recorded and the next file is attempted

    Progress goes to a single string callback (see services.progress_events).
    """

    def __init__(self, config: Optional[TransferConfig] = None):
        self.config = config or get_import_config().transfer

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def transfer(self,
                 source_paths: Sequence[str],
                 destination_dir: str,
                 progress_callback: Optional[ProgressCallback] = None,
                 cancel_event=None) -> TransferResult:
        """
        Copy source_paths (in order) into destination_dir.

        Args:
            source_paths: Ordered source file paths
            destination_dir: Target folder, created if missing
            progress_callback: Receives every progress/status string
            cancel_event: Optional threading.Event; checked before each file
                and between chunks

        Returns:
            TransferResult

        Raises:
            TransferError: destination unusable or vanished, disk full with no
                room for any remaining file, or every file failed. The partial
                result is attached as `.result`.
        """
        emit = progress_callback or (lambda message: None)
        paths = [str(p) for p in source_paths]
        total = len(paths)
        result = TransferResult(destination_dir=destination_dir, total_files=total)
        start_time = time.time()

        self._prepare_destination(destination_dir, result)
        logger.info(f"[Transfer] Starting import of {total} files into {destination_dir}")
        emit(FileProgress(0, total).to_wire())

        for index, source in enumerate(paths):
            if self._is_cancelled(cancel_event):
                result.cancelled = True
                break

            if not os.path.isdir(destination_dir):
                self._fail_task(result, emit, start_time, TransferError(
                    TransferError.DESTINATION_VANISHED,
                    f"Destination folder disappeared: {destination_dir}",
                    destination_dir))

            outcome = self._transfer_one(source, destination_dir, emit, cancel_event)
            result.outcomes.append(outcome)
            emit(FileProgress(index + 1, total).to_wire())

            if outcome.reason == TransferError.CANCELLED:
                result.cancelled = True
                break
            if outcome.reason == TransferError.DESTINATION_VANISHED:
                self._fail_task(result, emit, start_time, TransferError(
                    TransferError.DESTINATION_VANISHED,
                    f"Destination folder disappeared: {destination_dir}",
                    destination_dir))
            if outcome.reason == TransferError.DISK_FULL:
                remaining = paths[index + 1:]
                if remaining and not self._any_fits(remaining, destination_dir):
                    self._fail_task(result, emit, start_time, TransferError(
                        TransferError.DISK_FULL,
                        f"Destination is full, none of the remaining {len(remaining)} files fit",
                        destination_dir))

        result.elapsed_seconds = time.time() - start_time

        if result.outcomes and not result.cancelled and result.failed_count == len(result.outcomes):
            self._fail_task(result, emit, start_time, TransferError(
                TransferError.ALL_FAILED,
                f"All {result.failed_count} files failed to copy",
                destination_dir))

        emit(StatusMessage(result.summary()).to_wire())
        logger.info(f"[Transfer] {result.summary()} in {result.elapsed_seconds:.2f}s")
        return result

    # ------------------------------------------------------------------
    # Per-file
    # ------------------------------------------------------------------

    def _transfer_one(self, source: str, destination_dir: str,
                      emit: ProgressCallback, cancel_event) -> FileOutcome:
        name = os.path.basename(source)

        try:
            st = os.stat(source)
        except FileNotFoundError:
            emit(StatusMessage(f"Skipped: {source} (file not found)").to_wire())
            logger.warning(f"[Transfer] Source missing: {source}")
            return FileOutcome(source, FAILED, reason=TransferError.SOURCE_MISSING,
                               message="file not found")
        except OSError as e:
            return self._failed(source, name, self._classify(e, source, destination_dir), str(e), emit)

        if not os.path.isfile(source):
            return self._failed(source, name, TransferError.IO_ERROR, "not a regular file", emit)

        size = st.st_size
        target = self._resolve_target(destination_dir, name, size)
        if target is None:
            emit(StatusMessage(f"Skipped: {name} (already exists)").to_wire())
            logger.debug(f"[Transfer] Duplicate skipped: {name}")
            return FileOutcome(source, SKIPPED_DUPLICATE,
                               destination_path=os.path.join(destination_dir, name))

        emit(StatusMessage(f"Copying: {name}").to_wire())
        part_path = os.path.join(destination_dir, f".{name}{self.config.part_suffix}")
        try:
            copied = self._copy_file(source, part_path, size, emit, cancel_event)
            target = self._finalize(part_path, destination_dir, name, size, target)
        except _Cancelled:
            self._remove_part(part_path)
            logger.info(f"[Transfer] Cancelled while copying {name}")
            return FileOutcome(source, FAILED, reason=TransferError.CANCELLED, message="cancelled")
        except OSError as e:
            self._remove_part(part_path)
            return self._failed(source, name, self._classify(e, source, destination_dir), str(e), emit)

        outcome = FileOutcome(source, COPIED, destination_path=target, bytes_copied=copied)
        if outcome.renamed:
            emit(StatusMessage(f"Copied: {name} as {os.path.basename(target)}").to_wire())
        else:
            emit(StatusMessage(f"Copied: {name}").to_wire())
        logger.debug(f"[Transfer] Copied {source} -> {target} ({copied} bytes)")
        return outcome

    def _copy_file(self, source: str, part_path: str, size: int,
                   emit: ProgressCallback, cancel_event) -> int:
        """Chunked copy into part_path. Returns bytes written."""
        interval = byte_progress_interval(size,
                                          self.config.progress_min_interval_bytes,
                                          self.config.progress_max_interval_bytes)
        next_report = interval
        copied = 0
        with open(source, "rb") as src, open(part_path, "wb") as dst:
            while True:
                if self._is_cancelled(cancel_event):
                    raise _Cancelled()
                chunk = src.read(self.config.chunk_size)
                if not chunk:
                    break
                dst.write(chunk)
                copied += len(chunk)
                if copied >= next_report and copied < size:
                    emit(ByteProgress(copied, size).to_wire())
                    next_report = copied + interval
            dst.flush()
            if self.config.fsync:
                os.fsync(dst.fileno())

        if copied != size:
            logger.warning(f"[Transfer] {source} changed size during copy ({size} -> {copied} bytes)")
        # Exactly one completion event per copied file
        emit(ByteProgress(copied, copied).to_wire())

        if self.config.preserve_timestamps:
            try:
                shutil.copystat(source, part_path)
            except OSError as e:
                logger.debug(f"[Transfer] Could not preserve timestamps for {source}: {e}")
        return copied

    def _finalize(self, part_path: str, destination_dir: str, name: str, size: int, target: str) -> str:
        """Rename the part file into place without replacing an existing file."""
        if os.path.lexists(target):
            # Created by someone else since the name was chosen
            target = self._disambiguate(destination_dir, name)
        os.replace(part_path, target)
        return target

    def _failed(self, source: str, name: str, kind: str, message: str,
                emit: ProgressCallback) -> FileOutcome:
        emit(StatusMessage(f"Failed to copy {name}: {message}").to_wire())
        logger.warning(f"[Transfer] Failed to copy {source}: {kind} ({message})")
        return FileOutcome(source, FAILED, reason=kind, message=message)

    # ------------------------------------------------------------------
    # Destination naming
    # ------------------------------------------------------------------

    def _resolve_target(self, destination_dir: str, name: str, size: int) -> Optional[str]:
        """
        Pick the destination path for a file.

        Returns None when a same-name, same-size file is already present.
        """
        match = file_matches(destination_dir, name, size)
        if match is None:
            return os.path.join(destination_dir, name)
        if match:
            return None
        return self._disambiguate(destination_dir, name)

    @staticmethod
    def _disambiguate(destination_dir: str, name: str) -> str:
        """Smallest free "<stem>_<n><ext>" with n >= 1."""
        stem, ext = os.path.splitext(name)
        n = 1
        while True:
            candidate = os.path.join(destination_dir, f"{stem}_{n}{ext}")
            if not os.path.lexists(candidate):
                return candidate
            n += 1

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _is_cancelled(cancel_event) -> bool:
        return cancel_event is not None and cancel_event.is_set()

    def _prepare_destination(self, destination_dir: str, result: TransferResult):
        if not destination_dir:
            raise TransferError(TransferError.DESTINATION_UNWRITABLE,
                                "No destination folder selected", destination_dir, result)
        try:
            os.makedirs(destination_dir, exist_ok=True)
        except OSError as e:
            raise TransferError(TransferError.DESTINATION_UNWRITABLE,
                                f"Cannot create destination {destination_dir}: {e}",
                                destination_dir, result)
        if not os.access(destination_dir, os.W_OK):
            raise TransferError(TransferError.DESTINATION_UNWRITABLE,
                                f"Destination is not writable: {destination_dir}",
                                destination_dir, result)

    def _fail_task(self, result: TransferResult, emit: ProgressCallback,
                   start_time: float, error: TransferError):
        result.elapsed_seconds = time.time() - start_time
        error.result = result
        emit(StatusMessage(f"Import failed: {error.message}").to_wire())
        logger.error(f"[Transfer] {error.kind}: {error.message}")
        raise error

    @staticmethod
    def _classify(error: OSError, source: str, destination_dir: str) -> str:
        if error.errno in _DISK_FULL_ERRNOS:
            return TransferError.DISK_FULL
        if isinstance(error, PermissionError) or error.errno in _PERMISSION_ERRNOS:
            return TransferError.PERMISSION_DENIED
        if isinstance(error, FileNotFoundError):
            if not os.path.isdir(destination_dir):
                return TransferError.DESTINATION_VANISHED
            if not os.path.exists(source):
                return TransferError.SOURCE_MISSING
        return TransferError.IO_ERROR

    @staticmethod
    def _remove_part(part_path: str):
        try:
            os.remove(part_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[Transfer] Could not remove partial file {part_path}: {e}")

    @staticmethod
    def _any_fits(remaining: Sequence[str], destination_dir: str) -> bool:
        try:
            free = shutil.disk_usage(destination_dir).free
        except OSError:
            return False
        for path in remaining:
            try:
                if os.path.getsize(path) <= free:
                    return True
            except OSError:
                continue
        return False
