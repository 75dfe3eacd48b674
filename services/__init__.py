# services/__init__.py
# Version 02.00.00.00 dated 20251018
# Service layer package - import engine logic separated from UI and workers

from .errors import (
    ImportEngineError,
    DeviceError,
    ScanError,
    ThumbnailError,
    TransferError
)

from .device_sources import (
    Device,
    DeviceRegistry,
    create_backend,
    list_removable_devices
)

from .media_scan_service import (
    MediaFile,
    MediaScanService,
    mime_type_for
)

from .duplicate_check_service import (
    DuplicateCandidate,
    DuplicateCheckService
)

from .thumbnail_service import (
    ThumbnailEntry,
    ThumbnailService,
    get_thumbnail_service
)

from .progress_events import (
    ByteProgress,
    FileProgress,
    StatusMessage,
    parse_progress_message
)

from .transfer_service import (
    FileOutcome,
    TransferResult,
    TransferService
)

__all__ = [
    # Errors
    'ImportEngineError',
    'DeviceError',
    'ScanError',
    'ThumbnailError',
    'TransferError',

    # Devices
    'Device',
    'DeviceRegistry',
    'create_backend',
    'list_removable_devices',

    # Scanning
    'MediaFile',
    'MediaScanService',
    'mime_type_for',

    # Duplicates
    'DuplicateCandidate',
    'DuplicateCheckService',

    # Thumbnails
    'ThumbnailEntry',
    'ThumbnailService',
    'get_thumbnail_service',

    # Transfer
    'ByteProgress',
    'FileProgress',
    'StatusMessage',
    'parse_progress_message',
    'FileOutcome',
    'TransferResult',
    'TransferService',
]
