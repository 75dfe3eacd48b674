"""
Device ID Extraction Service

Extracts unique, persistent identifiers for removable volumes (USB drives,
SD cards, camera storage) across Linux, macOS and Windows.

Mount paths get reassigned between sessions and plugs, so identifiers are
derived from volume metadata (filesystem UUID, volume serial) and only fall
back to a hash of the block device and label when no UUID is exposed.
"""

import hashlib
import platform
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class VolumeIdentity:
    """Identity facts about one mounted volume"""
    device_id: str                        # Stable identifier ("uuid:1234-ABCD")
    volume_uuid: Optional[str] = None     # Filesystem UUID / volume serial
    serial_number: Optional[str] = None   # Hardware serial (if available)
    label: Optional[str] = None           # Volume label


class DeviceIDExtractor:
    """
    Extracts unique volume IDs.

    Strategy:
    1. Linux: lsblk/blkid UUID of the backing block device
    2. macOS: "Volume UUID" from diskutil info
    3. Windows: VolumeSerialNumber of the drive letter
    4. Fallback: hash of filesystem label + size + type (never the device node or mount path)
    """

    def __init__(self, timeout: float = 5.0, system: Optional[str] = None):
        self.system = system or platform.system()
        self.timeout = timeout

    def extract(self, mount_path: str, device_node: str = "",
                label: str = "", total_size: int = 0, fs_type: str = "") -> VolumeIdentity:
        """
        Extract a stable identifier for the volume mounted at mount_path.

        Args:
            mount_path: Current mount point (e.g. "/media/user/EOS_DIGITAL")
            device_node: Backing device (e.g. "/dev/sdb1", "E:\\", "/dev/disk4s1")
            label: Filesystem label if already known
            total_size: Volume size in bytes if already known
            fs_type: Filesystem type if already known

        Returns:
            VolumeIdentity
        """
        volume_uuid = None
        if self.system == "Linux":
            volume_uuid = self._get_volume_uuid_linux(mount_path, device_node)
        elif self.system == "Darwin":
            volume_uuid = self._get_volume_uuid_macos(mount_path)
        elif self.system == "Windows":
            volume_uuid = self._get_volume_serial_windows(mount_path)

        if volume_uuid:
            return VolumeIdentity(device_id=f"uuid:{volume_uuid}", volume_uuid=volume_uuid, label=label or None)

        return VolumeIdentity(
            device_id=stable_fallback_id(label, total_size, fs_type),
            label=label or None,
        )

    # ======================================================================
    # Platform-specific extraction methods
    # ======================================================================

    def _run(self, cmd) -> Optional[str]:
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except (FileNotFoundError, subprocess.TimeoutExpired, OSError) as e:
            logger.debug(f"[DeviceID] {cmd[0]} unavailable: {e}")
            return None
        if result.returncode != 0:
            logger.debug(f"[DeviceID] {' '.join(cmd)} exited {result.returncode}: {result.stderr.strip()}")
            return None
        return result.stdout

    def _get_volume_uuid_linux(self, mount_path: str, device_node: str = "") -> Optional[str]:
        """Get volume UUID on Linux via findmnt + blkid."""
        device = device_node
        if not device:
            out = self._run(["findmnt", "-n", "-o", "SOURCE", mount_path])
            device = out.strip() if out else ""
        if not device:
            return None

        out = self._run(["blkid", "-s", "UUID", "-o", "value", device])
        if out and out.strip():
            return out.strip()
        return None

    def _get_volume_uuid_macos(self, mount_path: str) -> Optional[str]:
        """Get volume UUID on macOS via diskutil."""
        out = self._run(["diskutil", "info", mount_path])
        if not out:
            return None
        for line in out.splitlines():
            if "Volume UUID:" in line:
                uuid_val = line.split(":", 1)[1].strip()
                if uuid_val:
                    return uuid_val
        return None

    def _get_volume_serial_windows(self, mount_path: str) -> Optional[str]:
        """Get volume serial number on Windows via the vol command."""
        drive_letter = Path(mount_path).anchor.rstrip("\\") or mount_path.rstrip("\\")
        out = self._run(["cmd", "/c", "vol", drive_letter])
        if not out:
            return None
        match = re.search(r"([0-9A-F]{4}-[0-9A-F]{4})", out, re.IGNORECASE)
        return match.group(1).upper() if match else None


def stable_fallback_id(label: str, total_size: int = 0, fs_type: str = "") -> str:
    """
    Deterministic identifier when the OS exposes no UUID or serial.

    Only facts stored on the medium go in: device nodes ("/dev/sdb1") and
    mount names are reassigned between plugs. Uses hashlib (not hash()) so
    the value survives interpreter restarts.
    """
    digest = hashlib.sha1(f"{label}|{total_size}|{fs_type.lower()}".encode("utf-8")).hexdigest()
    return f"vol:{digest[:16]}"
