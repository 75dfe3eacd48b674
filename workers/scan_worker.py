# workers/scan_worker.py
# Version 01.00.00.00 dated 20251018
# Background media scan of one device

import threading
import time
from typing import Optional

from PySide6.QtCore import QObject, Signal, QRunnable, Slot

from logging_config import get_logger
from services.errors import ScanError
from services.media_scan_service import MediaScanService

logger = get_logger(__name__)


class ScanWorkerSignals(QObject):
    """
    Signals for the scan worker.

    Signals:
        progress: (files_found, current_dir)
        finished: (media_files) - list of MediaFile, newest first
        error: (ScanError)
    """
    progress = Signal(int, str)
    finished = Signal(list)
    error = Signal(object)


class ScanWorker(QRunnable):
    """
    Walks a mount path off the UI thread.

    Usage:
        worker = ScanWorker("/media/user/EOS_DIGITAL")
        worker.signals.finished.connect(on_files)
        worker.signals.error.connect(on_error)
        QThreadPool.globalInstance().start(worker)
    """

    def __init__(self, mount_path: str, scan_service: Optional[MediaScanService] = None):
        super().__init__()
        self.mount_path = mount_path
        self.scan_service = scan_service or MediaScanService()
        self.signals = ScanWorkerSignals()
        self._cancel = threading.Event()

    def cancel(self):
        self._cancel.set()
        logger.info(f"[ScanWorker] Cancellation requested for {self.mount_path}")

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @Slot()
    def run(self):
        start_time = time.time()
        try:
            files = self.scan_service.scan(
                self.mount_path,
                progress_callback=self.signals.progress.emit,
                should_cancel=self._cancel.is_set,
            )
        except ScanError as e:
            logger.warning(f"[ScanWorker] Scan of {self.mount_path} failed: {e.kind} ({e.message})")
            self.signals.error.emit(e)
            return
        except Exception as e:
            logger.error(f"[ScanWorker] Unexpected error scanning {self.mount_path}: {e}", exc_info=True)
            self.signals.error.emit(ScanError(ScanError.UNREADABLE, str(e), self.mount_path))
            return

        if self.cancelled:
            logger.info(f"[ScanWorker] Scan cancelled after {len(files)} files")
            return
        logger.info(f"[ScanWorker] {len(files)} files in {time.time() - start_time:.2f}s")
        self.signals.finished.emit(files)
