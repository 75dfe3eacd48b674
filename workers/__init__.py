"""
Worker runnables for background operations.

This package contains QRunnable-based workers for scans, previews and
imports that must not block the UI thread.
"""

from workers.scan_worker import ScanWorker, ScanWorkerSignals
from workers.thumbnail_worker import ThumbnailWorker, ThumbnailWorkerSignals
from workers.transfer_worker import TransferWorker, TransferWorkerSignals

__all__ = [
    'ScanWorker',
    'ScanWorkerSignals',
    'ThumbnailWorker',
    'ThumbnailWorkerSignals',
    'TransferWorker',
    'TransferWorkerSignals',
]
