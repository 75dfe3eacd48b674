# workers/thumbnail_worker.py
# Version 01.00.00.00 dated 20251018
# Background preview requests for the currently visible files

from concurrent.futures import as_completed
from typing import Iterable, Optional

from PySide6.QtCore import QObject, Signal, QRunnable, Slot

from logging_config import get_logger
from services.errors import ThumbnailError
from services.thumbnail_service import ThumbnailService, get_thumbnail_service

logger = get_logger(__name__)


class ThumbnailWorkerSignals(QObject):
    """
    Signals for the thumbnail worker.

    Signals:
        thumbnail_ready: (path, data_uri)
        thumbnail_failed: (path, ThumbnailError)
        finished: (ready_count, failed_count)
    """
    thumbnail_ready = Signal(str, str)
    thumbnail_failed = Signal(str, object)
    finished = Signal(int, int)


class ThumbnailWorker(QRunnable):
    """
    Requests previews for a batch of paths and reports each as it completes.

    Generation itself runs on the ThumbnailService executor, which bounds
    concurrency; this runnable only waits on the futures. Paths requested
    twice (or already in flight elsewhere) share one generation.

    Usage:
        worker = ThumbnailWorker(visible_paths)
        worker.signals.thumbnail_ready.connect(on_ready)
        QThreadPool.globalInstance().start(worker)
    """

    def __init__(self, paths: Iterable[str], service: Optional[ThumbnailService] = None,
                 retry: bool = False):
        super().__init__()
        self.paths = list(dict.fromkeys(paths))
        self.service = service or get_thumbnail_service()
        self.retry = retry
        self.signals = ThumbnailWorkerSignals()
        self.cancelled = False

    def cancel(self):
        """Stop reporting; generations already started still fill the cache."""
        self.cancelled = True

    @Slot()
    def run(self):
        request = self.service.retry if self.retry else self.service.request_thumbnail
        futures = {request(path): path for path in self.paths}

        ready = failed = 0
        for future in as_completed(futures):
            if self.cancelled:
                logger.debug("[ThumbnailWorker] Cancelled, dropping remaining results")
                break
            path = futures[future]
            try:
                data_uri = future.result()
            except ThumbnailError as e:
                failed += 1
                self.signals.thumbnail_failed.emit(path, e)
                continue
            ready += 1
            self.signals.thumbnail_ready.emit(path, data_uri)

        logger.debug(f"[ThumbnailWorker] Batch done: {ready} ready, {failed} failed")
        self.signals.finished.emit(ready, failed)
