"""
Configuration Module
Centralized configuration management for Camporter.

Usage:
    from config import get_import_config

    config = get_import_config()
    chunk_size = config.transfer.chunk_size
"""

from config.import_config import (
    ImportConfig,
    ScanConfig,
    ThumbnailConfig,
    TransferConfig,
    DeviceConfig,
    get_import_config,
    reload_config,
)

__all__ = [
    'ImportConfig',
    'ScanConfig',
    'ThumbnailConfig',
    'TransferConfig',
    'DeviceConfig',
    'get_import_config',
    'reload_config',
]
