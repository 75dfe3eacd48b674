# workers/transfer_worker.py
# Version 01.00.00.00 dated 20251018
# Background import of selected files into the destination folder

import threading
from typing import List, Optional

from PySide6.QtCore import QObject, Signal, QRunnable, Slot

from logging_config import get_logger
from services.errors import TransferError
from services.transfer_service import TransferService

logger = get_logger(__name__)


class TransferWorkerSignals(QObject):
    """
    Signals for the transfer worker.

    Signals:
        message: progress stream ("PROGRESS_BYTES:..", "PROGRESS:..", status text)
        finished: (TransferResult)
        error: (TransferError) - task-level failure, partial result in .result
    """
    message = Signal(str)
    finished = Signal(object)
    error = Signal(object)


class TransferWorker(QRunnable):
    """
    Runs TransferService.transfer off the UI thread.

    Usage:
        worker = TransferWorker(paths, "/home/user/Pictures/Import")
        worker.signals.message.connect(on_progress)
        worker.signals.finished.connect(on_done)
        QThreadPool.globalInstance().start(worker)
        ...
        worker.cancel()
    """

    def __init__(self, source_paths: List[str], destination_dir: str,
                 transfer_service: Optional[TransferService] = None):
        super().__init__()
        self.source_paths = list(source_paths)
        self.destination_dir = destination_dir
        self.transfer_service = transfer_service or TransferService()
        self.signals = TransferWorkerSignals()
        self._cancel = threading.Event()

    def cancel(self):
        """Stop after the current chunk; the partial file is removed."""
        self._cancel.set()
        logger.info("[TransferWorker] Cancellation requested")

    @Slot()
    def run(self):
        logger.info(f"[TransferWorker] Importing {len(self.source_paths)} files to {self.destination_dir}")
        try:
            result = self.transfer_service.transfer(
                self.source_paths,
                self.destination_dir,
                progress_callback=self.signals.message.emit,
                cancel_event=self._cancel,
            )
        except TransferError as e:
            self.signals.error.emit(e)
            return
        except Exception as e:
            logger.error(f"[TransferWorker] Unexpected error: {e}", exc_info=True)
            self.signals.message.emit(f"Import failed: {e}")
            self.signals.error.emit(TransferError(TransferError.IO_ERROR, str(e), self.destination_dir))
            return

        self.signals.finished.emit(result)
