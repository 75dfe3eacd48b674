"""
Import Engine Configuration
Centralizes the tunables of device discovery, scanning, thumbnail
generation and file transfer.

Usage:
    from config import get_import_config

    config = get_import_config()
    max_edge = config.thumbnail.max_edge
    chunk = config.transfer.chunk_size
"""

import json
from dataclasses import dataclass, asdict, field, fields
from pathlib import Path
from typing import List, Optional

from logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ScanConfig:
    """Configuration for media scanning."""

    image_extensions: List[str] = field(default_factory=lambda: [
        "jpg", "jpeg", "png", "gif", "webp", "heic", "heif",
    ])
    video_extensions: List[str] = field(default_factory=lambda: [
        "mp4", "mov", "avi", "mkv", "webm", "m4v",
    ])
    follow_symlinks: bool = False  # Never cross into other mounts through links
    skip_hidden_dirs: bool = False  # e.g. ".thumbnails" on Android cards


@dataclass
class ThumbnailConfig:
    """Configuration for preview generation."""

    max_edge: int = 250  # Longest edge of the preview in pixels
    output_format: str = "PNG"  # PNG or JPEG
    jpeg_quality: int = 85
    max_workers: int = 4  # Concurrent generations across distinct paths

    # Video frame extraction
    video_seek_fraction: float = 0.1  # Grab the frame at 10% of the clip
    video_min_seek_seconds: float = 0.0
    video_max_seek_seconds: float = 30.0
    ffmpeg_timeout_seconds: float = 30.0
    ffprobe_timeout_seconds: float = 10.0


@dataclass
class TransferConfig:
    """Configuration for the copy pipeline."""

    chunk_size: int = 64 * 1024  # 64KB read/write buffer
    progress_min_interval_bytes: int = 64 * 1024
    progress_max_interval_bytes: int = 1024 * 1024
    fsync: bool = True
    preserve_timestamps: bool = True
    part_suffix: str = ".camporter-part"


@dataclass
class DeviceConfig:
    """Configuration for removable volume discovery."""

    command_timeout_seconds: float = 10.0
    extra_mount_prefixes: List[str] = field(default_factory=list)


class ImportConfig:
    """Main configuration manager for the import engine."""

    SECTIONS = {
        "scan": ScanConfig,
        "thumbnail": ThumbnailConfig,
        "transfer": TransferConfig,
        "device": DeviceConfig,
    }

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, uses ~/.camporter/import_config.json
        """
        if config_path is None:
            config_path = Path.home() / ".camporter" / "import_config.json"

        self.config_path = Path(config_path)

        self.scan = ScanConfig()
        self.thumbnail = ThumbnailConfig()
        self.transfer = TransferConfig()
        self.device = DeviceConfig()

        self.load()

    def load(self) -> None:
        """Load configuration from file, keeping defaults for anything missing."""
        if not self.config_path.exists():
            return

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"[ImportConfig] Failed to load {self.config_path}: {e}, using defaults")
            return

        for name, section_cls in self.SECTIONS.items():
            section_data = data.get(name)
            if not isinstance(section_data, dict):
                continue
            known = {f.name for f in fields(section_cls)}
            unknown = set(section_data) - known
            if unknown:
                logger.warning(f"[ImportConfig] Ignoring unknown {name} keys: {sorted(unknown)}")
            values = {k: v for k, v in section_data.items() if k in known}
            setattr(self, name, section_cls(**values))

        logger.info(f"[ImportConfig] Loaded from {self.config_path}")

    def save(self) -> None:
        """Save configuration to file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        data = {name: asdict(getattr(self, name)) for name in self.SECTIONS}
        with open(self.config_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
        logger.info(f"[ImportConfig] Saved to {self.config_path}")

    def reset_to_defaults(self) -> None:
        """Reset all configuration to defaults."""
        for name, section_cls in self.SECTIONS.items():
            setattr(self, name, section_cls())


_config: Optional[ImportConfig] = None


def get_import_config() -> ImportConfig:
    """Get global import configuration instance."""
    global _config
    if _config is None:
        _config = ImportConfig()
    return _config


def reload_config() -> None:
    """Reload configuration from disk."""
    global _config
    _config = ImportConfig()
