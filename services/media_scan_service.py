# services/media_scan_service.py
# Version 01.00.00.00 dated 20251018
# Media scanning service - walks a device tree and builds MediaFile records

import os
import stat
import time
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

from config import ScanConfig, get_import_config
from logging_config import get_logger
from services.errors import ScanError

logger = get_logger(__name__)


@dataclass(frozen=True)
class MediaFile:
    """Snapshot of one media file on a device at scan time."""
    name: str           # File name
    path: str           # Absolute source path (identity)
    size: int           # Size in bytes
    modified: int       # Last modified, Unix timestamp (seconds)
    extension: str      # Lowercase extension without dot
    is_image: bool
    is_video: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "heic": "image/heic",
    "heif": "image/heif",
    "mp4": "video/mp4",
    "m4v": "video/x-m4v",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    "mkv": "video/x-matroska",
    "webm": "video/webm",
}


def extension_of(path: str) -> str:
    """Lowercase extension without the dot ("" if none)."""
    return os.path.splitext(path)[1][1:].lower()


def mime_type_for(path: str) -> str:
    """MIME type of a source file, from its extension."""
    return MIME_TYPES.get(extension_of(path), "application/octet-stream")


class MediaScanService:
    """
    Recursively scans a mount path for photos and videos.

    Responsibilities:
    - Unbounded-depth traversal that never follows symlinks
    - Skipping unreadable subdirectories instead of aborting
    - Classifying files against the image/video allow-lists
    - Deterministic ordering (newest first, then path)

    Does NOT handle:
    - Thumbnails (use ThumbnailService)
    - Duplicate detection (use DuplicateCheckService)
    """

    def __init__(self, config: Optional[ScanConfig] = None):
        self.config = config or get_import_config().scan
        self.image_extensions: FrozenSet[str] = frozenset(e.lower().lstrip(".") for e in self.config.image_extensions)
        self.video_extensions: FrozenSet[str] = frozenset(e.lower().lstrip(".") for e in self.config.video_extensions)

    def classify(self, extension: str):
        """Return (is_image, is_video) for a lowercase extension."""
        ext = extension.lower().lstrip(".")
        return ext in self.image_extensions, ext in self.video_extensions

    def scan(self,
             mount_path: str,
             progress_callback: Optional[Callable[[int, str], None]] = None,
             should_cancel: Optional[Callable[[], bool]] = None,
             skip_callback: Optional[Callable[[str], None]] = None) -> List[MediaFile]:
        """
        Scan a device tree for media files.

        Args:
            mount_path: Device mount path (scan root)
            progress_callback: Optional callback(files_found, current_dir)
            should_cancel: Optional callable; when it returns True the walk
                stops and the files found so far are returned
            skip_callback: Optional callback(folder) for each unreadable
                subfolder left out of the result

        Returns:
            MediaFile list sorted newest first, ties broken by path

        Raises:
            ScanError: If the root does not exist, is not a directory, cannot
                be read, or disappears during the scan
        """
        root = os.path.abspath(mount_path)
        self._check_root(root)

        start_time = time.time()
        logger.info(f"Starting media scan: {root}")

        skipped: List[str] = []

        def on_skip(folder: str):
            skipped.append(folder)
            if skip_callback:
                skip_callback(folder)

        files = []
        for entry in self._walk(root, should_cancel, on_skip):
            media_file = self._build_record(entry)
            if media_file is None:
                continue
            files.append(media_file)
            if progress_callback and len(files) % 100 == 0:
                progress_callback(len(files), os.path.dirname(entry.path))

        if not os.path.isdir(root):
            raise ScanError(ScanError.VANISHED, f"Scan root disappeared during scan: {root}", root)

        files.sort(key=lambda f: (-f.modified, f.path))
        if progress_callback:
            progress_callback(len(files), root)

        logger.info(
            f"Scan complete: {len(files)} media files in {time.time() - start_time:.2f}s "
            f"({len(skipped)} unreadable folders skipped)"
        )
        return files

    def _check_root(self, root: str):
        if not os.path.exists(root):
            raise ScanError(ScanError.NOT_FOUND, f"Drive path does not exist: {root}", root)
        if not os.path.isdir(root):
            raise ScanError(ScanError.NOT_A_DIRECTORY, f"Not a directory: {root}", root)
        try:
            with os.scandir(root):
                pass
        except OSError as e:
            raise ScanError(ScanError.UNREADABLE, f"Cannot read {root}: {e}", root)

    def _walk(self, root: str,
              should_cancel: Optional[Callable[[], bool]],
              on_skip: Callable[[str], None]) -> Iterable[os.DirEntry]:
        """Yield regular-file entries below root (iterative, no depth limit)."""
        follow = self.config.follow_symlinks
        pending = [root]
        while pending:
            if should_cancel and should_cancel():
                logger.info("Scan cancelled")
                return
            current = pending.pop()
            try:
                with os.scandir(current) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                if current == root:
                    raise ScanError(ScanError.VANISHED, f"Cannot read scan root {root}: {e}", root)
                logger.warning(f"Skipping unreadable folder {current}: {e}")
                on_skip(current)
                continue

            subdirs = []
            for entry in entries:
                try:
                    if entry.is_dir(follow_symlinks=follow):
                        if self.config.skip_hidden_dirs and entry.name.startswith("."):
                            continue
                        subdirs.append(entry.path)
                    elif entry.is_file(follow_symlinks=follow):
                        yield entry
                except OSError as e:
                    logger.debug(f"Skipping {entry.path}: {e}")
            # Reverse so the stack pops folders in name order
            pending.extend(reversed(subdirs))

    def _build_record(self, entry: os.DirEntry) -> Optional[MediaFile]:
        ext = extension_of(entry.name)
        is_image, is_video = self.classify(ext)
        if not (is_image or is_video):
            return None
        try:
            st = entry.stat(follow_symlinks=self.config.follow_symlinks)
        except OSError as e:
            # Removed between listing and stat
            logger.debug(f"Cannot stat {entry.path}: {e}")
            return None
        if not stat.S_ISREG(st.st_mode):
            return None
        return MediaFile(
            name=entry.name,
            path=entry.path,
            size=st.st_size,
            modified=int(st.st_mtime),
            extension=ext,
            is_image=is_image,
            is_video=is_video,
        )
