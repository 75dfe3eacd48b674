"""
ImportController - caller-facing boundary of the import engine

Responsibilities:
- Device listing and safe eject
- Starting/cancelling scans, previews and transfers on the thread pool
- Forwarding results, progress and classified errors as Qt signals
- Pass-through to the preference store, folder opener and log

Version: 01.00.00.00
"""

from typing import Iterable, List, Optional, Sequence, Tuple

from PySide6.QtCore import QObject, QThreadPool, Signal, Slot

from logging_config import append_log, get_logger, read_log_tail
from services.device_sources import Device, DeviceRegistry
from services.duplicate_check_service import DuplicateCheckService
from services.media_scan_service import MediaScanService
from services.thumbnail_service import ThumbnailService, get_thumbnail_service
from services.transfer_service import TransferService
from settings_manager_qt import SettingsManager, get_settings
from utils.system_open import open_folder
from workers.scan_worker import ScanWorker
from workers.thumbnail_worker import ThumbnailWorker
from workers.transfer_worker import TransferWorker

logger = get_logger(__name__)


class ImportController(QObject):
    """
    Wires the services to background workers.

    Long operations return immediately and report through signals; errors
    arrive as dicts from ImportEngineError.to_dict().
    """

    scan_progress = Signal(int, str)        # files_found, current_dir
    scan_finished = Signal(list)            # MediaFile list
    scan_failed = Signal(dict)

    thumbnail_ready = Signal(str, str)      # path, data URI
    thumbnail_failed = Signal(str, dict)    # path, error

    import_progress = Signal(str)           # single progress/status stream
    transfer_finished = Signal(object)      # TransferResult
    transfer_failed = Signal(dict)

    def __init__(self,
                 registry: Optional[DeviceRegistry] = None,
                 scan_service: Optional[MediaScanService] = None,
                 duplicate_service: Optional[DuplicateCheckService] = None,
                 thumbnail_service: Optional[ThumbnailService] = None,
                 transfer_service: Optional[TransferService] = None,
                 settings: Optional[SettingsManager] = None,
                 thread_pool: Optional[QThreadPool] = None,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self._registry = registry
        self.scan_service = scan_service or MediaScanService()
        self.duplicate_service = duplicate_service or DuplicateCheckService()
        if thumbnail_service is None and scan_service is not None:
            # Previews must accept exactly what this scanner lists
            thumbnail_service = ThumbnailService(scan_config=scan_service.config)
        self.thumbnail_service = thumbnail_service or get_thumbnail_service()
        self.transfer_service = transfer_service or TransferService()
        self.settings = settings or get_settings()
        self.thread_pool = thread_pool or QThreadPool.globalInstance()

        # Keep Python references so signals objects outlive the runnables
        self._scan_worker: Optional[ScanWorker] = None
        self._transfer_worker: Optional[TransferWorker] = None
        self._thumbnail_workers: List[ThumbnailWorker] = []

    @property
    def registry(self) -> DeviceRegistry:
        if self._registry is None:
            self._registry = DeviceRegistry()
        return self._registry

    # ------------------------------------------------------------------
    # Devices (synchronous; raise DeviceError)
    # ------------------------------------------------------------------

    def list_devices(self) -> List[Device]:
        return self.registry.list_devices()

    def unmount(self, device: Device) -> None:
        self.registry.unmount(device)

    # ------------------------------------------------------------------
    # Scan
    # ------------------------------------------------------------------

    def scan_device(self, mount_path: str) -> ScanWorker:
        """Start scanning a device; previews of the previous scan are dropped."""
        if self._scan_worker is not None:
            self._scan_worker.cancel()
        self.thumbnail_service.clear()

        worker = ScanWorker(mount_path, self.scan_service)
        worker.signals.progress.connect(self.scan_progress)
        worker.signals.finished.connect(self._on_scan_finished)
        worker.signals.error.connect(self._on_scan_error)
        self._scan_worker = worker
        logger.info(f"[ImportController] Scanning {mount_path}")
        self.thread_pool.start(worker)
        return worker

    def _is_current_scan(self) -> bool:
        return self._scan_worker is not None and self.sender() is self._scan_worker.signals

    @Slot(list)
    def _on_scan_finished(self, files: list):
        if not self._is_current_scan():
            return
        self._scan_worker = None
        self.scan_finished.emit(files)

    @Slot(object)
    def _on_scan_error(self, error):
        if not self._is_current_scan():
            return
        self._scan_worker = None
        self.scan_failed.emit(error.to_dict())

    # ------------------------------------------------------------------
    # Duplicates
    # ------------------------------------------------------------------

    def check_existing(self, candidates: Sequence[Tuple[str, int]], destination_dir: str) -> List[bool]:
        return self.duplicate_service.check_existing(candidates, destination_dir)

    # ------------------------------------------------------------------
    # Thumbnails
    # ------------------------------------------------------------------

    def request_thumbnail(self, path: str) -> ThumbnailWorker:
        return self.request_thumbnails([path])

    def request_thumbnails(self, paths: Iterable[str], retry: bool = False) -> ThumbnailWorker:
        worker = ThumbnailWorker(paths, self.thumbnail_service, retry=retry)
        worker.signals.thumbnail_ready.connect(self.thumbnail_ready)
        worker.signals.thumbnail_failed.connect(self._on_thumbnail_failed)
        worker.signals.finished.connect(self._on_thumbnail_batch_finished)
        self._thumbnail_workers.append(worker)
        self.thread_pool.start(worker)
        return worker

    def retry_thumbnail(self, path: str) -> ThumbnailWorker:
        return self.request_thumbnails([path], retry=True)

    @Slot(str, object)
    def _on_thumbnail_failed(self, path: str, error):
        self.thumbnail_failed.emit(path, error.to_dict())

    @Slot(int, int)
    def _on_thumbnail_batch_finished(self, ready: int, failed: int):
        signals = self.sender()
        self._thumbnail_workers = [w for w in self._thumbnail_workers if w.signals is not signals]

    # ------------------------------------------------------------------
    # Transfer
    # ------------------------------------------------------------------

    @property
    def transfer_running(self) -> bool:
        return self._transfer_worker is not None

    def start_transfer(self, source_paths: Sequence[str], destination_dir: str) -> Optional[TransferWorker]:
        """Start an import; returns None if one is already running."""
        if self._transfer_worker is not None:
            logger.warning("[ImportController] Transfer already running, ignoring request")
            return None

        worker = TransferWorker(list(source_paths), destination_dir, self.transfer_service)
        worker.signals.message.connect(self.import_progress)
        worker.signals.finished.connect(self._on_transfer_finished)
        worker.signals.error.connect(self._on_transfer_error)
        self._transfer_worker = worker
        self.thread_pool.start(worker)
        return worker

    def cancel_transfer(self) -> bool:
        if self._transfer_worker is None:
            return False
        self._transfer_worker.cancel()
        return True

    @Slot(object)
    def _on_transfer_finished(self, result):
        self._transfer_worker = None
        self.transfer_finished.emit(result)

    @Slot(object)
    def _on_transfer_error(self, error):
        self._transfer_worker = None
        self.transfer_failed.emit(error.to_dict())

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def load_destination_path(self) -> str:
        return self.settings.load_destination_path()

    def save_destination_path(self, path: str):
        self.settings.save_destination_path(path)

    def open_destination_folder(self, path: Optional[str] = None) -> Tuple[bool, str]:
        return open_folder(path or self.load_destination_path())

    def read_log(self, max_lines: int = 500) -> List[str]:
        return read_log_tail(max_lines)

    def log(self, level: str, message: str):
        append_log(level, message)
