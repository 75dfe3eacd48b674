# services/thumbnail_service.py
# Version 02.00.00.00 dated 20251018
# On-demand preview cache for scanned media: single-flight per path,
# bounded concurrency across paths, explicit error state with retry

import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Optional

from config import ScanConfig, ThumbnailConfig, get_import_config
from logging_config import get_logger
from services.errors import ThumbnailError
from services.image_thumbnailer import ImageThumbnailer
from services.media_scan_service import extension_of
from services.video_thumbnail_service import VideoThumbnailService

logger = get_logger(__name__)

PENDING = "pending"
LOADING = "loading"
LOADED = "loaded"
ERROR = "error"


@dataclass(frozen=True)
class ThumbnailEntry:
    """
    Cached preview state for one source path.

    Entries are immutable; a state change swaps in a new entry under the
    service lock, so readers never see a half-written preview.
    """
    path: str
    state: str = PENDING
    data_uri: Optional[str] = None
    error: Optional[ThumbnailError] = None
    updated_at: float = 0.0


class ThumbnailService:
    """
    Preview cache for the current scan.

    pending -> loading -> loaded
                       -> error -> (retry) -> pending

    - A loaded entry is returned with no I/O until clear() is called
    - Concurrent requests for one path share a single Future
    - At most `max_workers` previews are generated at once
    - An error entry is returned as-is until retry(path)
    """

    def __init__(self,
                 config: Optional[ThumbnailConfig] = None,
                 image_thumbnailer: Optional[ImageThumbnailer] = None,
                 video_service: Optional[VideoThumbnailService] = None,
                 scan_config: Optional[ScanConfig] = None):
        self.config = config or get_import_config().thumbnail
        # Routing follows the scanner that produced the paths
        scan_config = scan_config or get_import_config().scan
        self._image_exts = {e.lower().lstrip(".") for e in scan_config.image_extensions}
        self._video_exts = {e.lower().lstrip(".") for e in scan_config.video_extensions}

        self.image_thumbnailer = image_thumbnailer or ImageThumbnailer(self.config)
        self._video_service = video_service

        self._lock = threading.Lock()
        self._entries: Dict[str, ThumbnailEntry] = {}
        self._inflight: Dict[str, Future] = {}
        self._epoch = 0  # bumped by clear(); stale generations are discarded
        self.hits = 0
        self.misses = 0
        self.generations = 0
        self.failures = 0

        self._executor = ThreadPoolExecutor(max_workers=self.config.max_workers,
                                            thread_name_prefix="thumbnail")
        logger.info(f"ThumbnailService initialized (max_edge={self.config.max_edge}, "
                    f"workers={self.config.max_workers})")

    @property
    def video_service(self) -> VideoThumbnailService:
        # ffmpeg lookup is deferred until the first video preview
        if self._video_service is None:
            self._video_service = VideoThumbnailService(self.config, thumbnailer=self.image_thumbnailer)
        return self._video_service

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def request_thumbnail(self, path: str) -> Future:
        """
        Start (or join) preview generation for a path.

        Returns:
            Future resolving to the data URI, or raising ThumbnailError
        """
        key = self._normalize_path(path)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.state == LOADED:
                self.hits += 1
                return self._completed(entry.data_uri)
            if entry is not None and entry.state == ERROR:
                self.hits += 1
                return self._failed(entry.error)

            future = self._inflight.get(key)
            if future is not None:
                logger.debug(f"Joining in-flight preview for {key}")
                return future

            self.misses += 1
            self._entries[key] = ThumbnailEntry(key, LOADING, updated_at=time.time())
            future = self._executor.submit(self._generate, key, self._epoch)
            self._inflight[key] = future
            return future

    def get_thumbnail(self, path: str, timeout: Optional[float] = None) -> str:
        """Blocking variant of request_thumbnail. Raises ThumbnailError."""
        return self.request_thumbnail(path).result(timeout=timeout)

    def retry(self, path: str) -> Future:
        """Reset an error entry to pending and request it again."""
        key = self._normalize_path(path)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.state == ERROR:
                self._entries[key] = ThumbnailEntry(key, PENDING, updated_at=time.time())
                logger.info(f"Retrying preview for {key}")
        return self.request_thumbnail(path)

    def state_of(self, path: str) -> str:
        with self._lock:
            entry = self._entries.get(self._normalize_path(path))
        return entry.state if entry is not None else PENDING

    def entry(self, path: str) -> Optional[ThumbnailEntry]:
        with self._lock:
            return self._entries.get(self._normalize_path(path))

    def clear(self):
        """Drop every entry (called when a new scan starts)."""
        with self._lock:
            self._epoch += 1
            count = len(self._entries)
            self._entries.clear()
            self._inflight.clear()
            self.hits = 0
            self.misses = 0
            self.generations = 0
            self.failures = 0
        logger.info(f"Thumbnail cache cleared ({count} entries)")

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            by_state = {PENDING: 0, LOADING: 0, LOADED: 0, ERROR: 0}
            for entry in self._entries.values():
                by_state[entry.state] += 1
            total = self.hits + self.misses
            return {
                "entries": len(self._entries),
                "by_state": by_state,
                "in_flight": len(self._inflight),
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": self.hits / total if total else 0.0,
                "generations": self.generations,
                "failures": self.failures,
            }

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _generate(self, key: str, epoch: int) -> str:
        start = time.time()
        try:
            data_uri = self._render(key)
        except ThumbnailError as e:
            self._store_error(key, epoch, e)
            raise
        except Exception as e:
            # Anything Pillow or ffmpeg raises beyond the classified cases
            logger.error(f"Unexpected error generating preview for {key}: {e}", exc_info=True)
            error = ThumbnailError(ThumbnailError.DECODE_FAILED, str(e), key)
            self._store_error(key, epoch, error)
            raise error

        with self._lock:
            self.generations += 1
            if epoch == self._epoch:
                self._entries[key] = ThumbnailEntry(key, LOADED, data_uri=data_uri, updated_at=time.time())
                self._inflight.pop(key, None)
        logger.debug(f"Preview ready for {key} in {(time.time() - start) * 1000:.0f}ms")
        return data_uri

    def _render(self, key: str) -> str:
        ext = extension_of(key)
        if ext in self._image_exts:
            return self.image_thumbnailer.render_file(key)
        if ext in self._video_exts:
            return self.video_service.generate_thumbnail(key)
        raise ThumbnailError(ThumbnailError.UNSUPPORTED_FORMAT, f"Not a media file: .{ext}", key)

    def _store_error(self, key: str, epoch: int, error: ThumbnailError):
        logger.warning(f"Preview failed for {key}: {error.kind} ({error.message})")
        with self._lock:
            self.generations += 1
            self.failures += 1
            if epoch == self._epoch:
                self._entries[key] = ThumbnailEntry(key, ERROR, error=error, updated_at=time.time())
                self._inflight.pop(key, None)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize_path(path: str) -> str:
        return os.path.abspath(os.path.normpath(str(path).strip()))

    @staticmethod
    def _completed(value: str) -> Future:
        future = Future()
        future.set_result(value)
        return future

    @staticmethod
    def _failed(error: ThumbnailError) -> Future:
        future = Future()
        future.set_exception(error)
        return future


_thumbnail_service: Optional[ThumbnailService] = None


def get_thumbnail_service() -> ThumbnailService:
    """Get global ThumbnailService instance."""
    global _thumbnail_service
    if _thumbnail_service is None:
        _thumbnail_service = ThumbnailService()
    return _thumbnail_service
