"""
Removable Device Registry

Enumerates mounted removable volumes (SD cards, USB drives, camera storage)
and performs a safe eject.

Each platform gets its own DeviceBackend (enumerate + unmount), selected once
when the registry is created; business logic never branches on the OS.

Usage:
    registry = DeviceRegistry()
    for device in registry.list_devices():
        print(f"{device.label}: {device.mount_path}")
    registry.unmount(device)
"""

import json
import os
import platform
import re
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import psutil

from config import DeviceConfig, get_import_config
from logging_config import get_logger
from services.device_id_extractor import DeviceIDExtractor, stable_fallback_id
from services.errors import DeviceError

logger = get_logger(__name__)


@dataclass(frozen=True)
class Device:
    """Represents one mounted removable volume"""
    device_id: str              # Stable ID from volume metadata, not the mount path
    label: str                  # Human-readable label (e.g., "EOS_DIGITAL (removable)")
    mount_path: str             # Current mount point
    device_node: str = ""       # Backing block device ("/dev/sdb1", "E:\\")
    fs_type: str = ""           # Filesystem ("vfat", "exfat", ...)
    device_type: str = "usb"    # "usb", "sd_card", "camera"
    is_removable: bool = True   # OS flagged removable/hot-plug (False = matched by mount location)


# Camera vendor folders under DCIM
CAMERA_MARKERS = [
    "DCIM/100CANON",
    "DCIM/100NIKON",
    "DCIM/100SONY",
    "DCIM/100OLYMP",
    "DCIM/100PANA",
    "DCIM/100FUJI",
    "DCIM/100GOPRO",
    "DCIM/100MEDIA",
    "PRIVATE/AVCHD",
    "PRIVATE/M4ROOT",
]


def detect_device_type(mount_path: str, device_node: str = "", transport: str = "") -> str:
    """
    Classify a volume as "camera", "sd_card" or "usb" from its layout and bus.

    Args:
        mount_path: Volume root
        device_node: Backing device (mmcblk* means SD slot)
        transport: Bus reported by the OS ("usb", "mmc", ...)
    """
    root = Path(mount_path)
    for marker in CAMERA_MARKERS:
        if (root / marker).exists():
            return "camera"

    dcim = root / "DCIM"
    if dcim.is_dir():
        try:
            for folder in dcim.iterdir():
                # DCF folder names: three digits + five vendor chars
                if folder.is_dir() and len(folder.name) == 8 and folder.name[:3].isdigit():
                    return "camera"
        except OSError as e:
            logger.debug(f"[DeviceRegistry] Cannot list {dcim}: {e}")

    if os.path.basename(device_node).startswith("mmcblk") or transport.lower() in ("mmc", "sd"):
        return "sd_card"
    return "usb"


def _format_label(name: str, removable: bool) -> str:
    return f"{name} ({'removable' if removable else 'mounted'})"


def _truthy(value) -> bool:
    """lsblk prints RM/HOTPLUG as true/false in new releases and "1"/"0" in old ones."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes")


def _diskutil_bytes(value: str) -> int:
    """Byte count from diskutil text such as "31.9 GB (31914983424 Bytes)"."""
    match = re.search(r"\((\d+) Bytes\)", value or "")
    return int(match.group(1)) if match else 0


class DeviceBackend(ABC):
    """Platform capability set: enumerate removable volumes and eject one."""

    def __init__(self, config: Optional[DeviceConfig] = None):
        self.config = config or get_import_config().device
        self.id_extractor = DeviceIDExtractor(timeout=self.config.command_timeout_seconds)

    @abstractmethod
    def enumerate(self) -> List[Device]:
        """Return the removable volumes mounted right now."""

    @abstractmethod
    def unmount(self, device: Device) -> None:
        """Safely eject a device; raise DeviceError on failure."""

    def _partitions(self):
        try:
            return psutil.disk_partitions(all=False)
        except (OSError, RuntimeError) as e:
            raise DeviceError(DeviceError.ENUMERATION_FAILED, f"Could not list mounted volumes: {e}")

    def is_mounted(self, mount_path: str) -> bool:
        target = os.path.normcase(os.path.normpath(mount_path))
        for part in self._partitions():
            if os.path.normcase(os.path.normpath(part.mountpoint)) == target:
                return True
        return False

    def _volume_size(self, mount_path: str) -> int:
        try:
            return psutil.disk_usage(mount_path).total
        except OSError as e:
            logger.debug(f"[DeviceRegistry] No size for {mount_path}: {e}")
            return 0

    def _run(self, cmd: List[str]) -> subprocess.CompletedProcess:
        """Run an external tool; missing tools surface as DeviceError."""
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.config.command_timeout_seconds
            )
        except FileNotFoundError as e:
            raise DeviceError(DeviceError.UNSUPPORTED_PLATFORM, f"{cmd[0]} is not available: {e}")
        except subprocess.TimeoutExpired:
            raise DeviceError(DeviceError.BUSY, f"{cmd[0]} timed out after {self.config.command_timeout_seconds}s")

    @staticmethod
    def _classify_unmount_failure(device: Device, output: str) -> DeviceError:
        text = output.lower()
        if any(sig in text for sig in ("busy", "in use", "dissented", "being used")):
            return DeviceError(DeviceError.BUSY, f"Device is busy: {output.strip()}", device.mount_path)
        if any(sig in text for sig in ("not mounted", "no such", "not found", "doesn't exist", "does not exist")):
            return DeviceError(DeviceError.VANISHED, f"Device is gone: {output.strip()}", device.mount_path)
        return DeviceError(DeviceError.UNMOUNT_FAILED, f"Unmount failed: {output.strip()}", device.mount_path)


class LinuxDeviceBackend(DeviceBackend):
    """udisks/lsblk based backend"""

    SYSTEM_MOUNTS = {"/", "/boot", "/boot/efi", "/efi", "/home", "/usr", "/var", "/tmp", "/opt", "/srv"}
    SKIP_FS_TYPES = {"squashfs", "tmpfs", "devtmpfs", "overlay", "proc", "sysfs", "swap"}
    EXTERNAL_PREFIXES = ("/media/", "/run/media/")

    def _lsblk_info(self) -> Dict[str, dict]:
        """Map /dev path -> lsblk facts, children inheriting the disk's bus flags."""
        try:
            result = self._run(["lsblk", "-J", "-o", "NAME,PATH,UUID,SERIAL,LABEL,RM,HOTPLUG,TRAN,SIZE,PARTN,MOUNTPOINT", "-b"])
        except DeviceError as e:
            logger.debug(f"[DeviceRegistry] lsblk unavailable: {e}")
            return {}
        if result.returncode != 0:
            logger.debug(f"[DeviceRegistry] lsblk failed: {result.stderr.strip()}")
            return {}
        try:
            data = json.loads(result.stdout)
        except ValueError as e:
            logger.warning(f"[DeviceRegistry] Unparseable lsblk output: {e}")
            return {}

        info: Dict[str, dict] = {}

        def walk(node: dict, parent: Optional[dict], position: int):
            entry = dict(node)
            entry.pop("children", None)
            # Partition number survives re-plugs; fall back to the order under the disk
            entry["partn"] = int(entry.get("partn") or position)
            if parent:
                entry["rm"] = _truthy(entry.get("rm")) or _truthy(parent.get("rm"))
                entry["hotplug"] = _truthy(entry.get("hotplug")) or _truthy(parent.get("hotplug"))
                entry["tran"] = entry.get("tran") or parent.get("tran")
                entry["serial"] = entry.get("serial") or parent.get("serial")
            path = entry.get("path") or f"/dev/{entry.get('name', '')}"
            info[path] = entry
            for index, child in enumerate(node.get("children", []) or [], start=1):
                walk(child, entry, index)

        for dev in data.get("blockdevices", []):
            walk(dev, None, 0)
        return info

    def enumerate(self) -> List[Device]:
        block_info = self._lsblk_info()
        prefixes = self.EXTERNAL_PREFIXES + tuple(self.config.extra_mount_prefixes)
        devices = []

        for part in self._partitions():
            mount = part.mountpoint
            if mount in self.SYSTEM_MOUNTS or mount.startswith("/snap/") or part.fstype in self.SKIP_FS_TYPES:
                continue

            facts = block_info.get(part.device, {})
            transport = (facts.get("tran") or "").lower()
            removable = (
                _truthy(facts.get("rm"))
                or _truthy(facts.get("hotplug"))
                or transport in ("usb", "mmc")
                or os.path.basename(part.device).startswith("mmcblk")
            )
            external_location = mount.startswith(prefixes)
            if not removable and not external_location:
                continue

            fs_label = facts.get("label") or ""
            label = fs_label or os.path.basename(mount.rstrip("/")) or part.device
            size = int(facts.get("size") or 0)
            if facts.get("uuid"):
                device_id = f"uuid:{facts['uuid']}"
            elif facts.get("serial"):
                device_id = f"serial:{facts['serial']}:p{facts['partn']}"
            elif facts:
                device_id = stable_fallback_id(fs_label, size, part.fstype)
            else:
                device_id = self.id_extractor.extract(mount, part.device, fs_label, size, part.fstype).device_id

            devices.append(Device(
                device_id=device_id,
                label=_format_label(label, removable),
                mount_path=mount,
                device_node=part.device,
                fs_type=part.fstype,
                device_type=detect_device_type(mount, part.device, transport),
                is_removable=removable,
            ))
        return devices

    def unmount(self, device: Device) -> None:
        if device.device_node.startswith("/dev/"):
            cmd = ["udisksctl", "unmount", "--block-device", device.device_node, "--no-user-interaction"]
        else:
            cmd = ["umount", device.mount_path]
        try:
            result = self._run(cmd)
        except DeviceError as e:
            if e.kind != DeviceError.UNSUPPORTED_PLATFORM or cmd[0] == "umount":
                raise
            logger.info("[DeviceRegistry] udisksctl not found, falling back to umount")
            result = self._run(["umount", device.mount_path])
        if result.returncode != 0:
            raise self._classify_unmount_failure(device, result.stderr + result.stdout)


class MacDeviceBackend(DeviceBackend):
    """diskutil based backend"""

    VOLUMES_PREFIX = "/Volumes/"

    def _diskutil_info(self, mount_path: str) -> Dict[str, str]:
        try:
            result = self._run(["diskutil", "info", mount_path])
        except DeviceError as e:
            logger.debug(f"[DeviceRegistry] diskutil unavailable: {e}")
            return {}
        if result.returncode != 0:
            return {}
        facts = {}
        for line in result.stdout.splitlines():
            if ":" in line:
                key, value = line.split(":", 1)
                facts[key.strip()] = value.strip()
        return facts

    def enumerate(self) -> List[Device]:
        devices = []
        for part in self._partitions():
            mount = part.mountpoint
            if not mount.startswith(self.VOLUMES_PREFIX):
                continue

            facts = self._diskutil_info(mount)
            if facts:
                removable = (
                    facts.get("Removable Media", "").lower() in ("removable", "yes")
                    or facts.get("Device Location", "").lower() == "external"
                    or facts.get("Protocol", "").lower() in ("usb", "secure digital")
                )
                if not removable:
                    continue
            else:
                removable = False

            label = facts.get("Volume Name") or os.path.basename(mount)
            volume_uuid = facts.get("Volume UUID")
            if volume_uuid:
                device_id = f"uuid:{volume_uuid}"
            else:
                device_id = stable_fallback_id(
                    facts.get("Volume Name", ""),
                    _diskutil_bytes(facts.get("Disk Size") or facts.get("Volume Total Space", "")),
                    facts.get("File System Personality", part.fstype),
                )
            devices.append(Device(
                device_id=device_id,
                label=_format_label(label, removable),
                mount_path=mount,
                device_node=part.device,
                fs_type=part.fstype,
                device_type=detect_device_type(mount, part.device, facts.get("Protocol", "")),
                is_removable=removable,
            ))
        return devices

    def unmount(self, device: Device) -> None:
        result = self._run(["diskutil", "eject", device.mount_path])
        if result.returncode != 0:
            raise self._classify_unmount_failure(device, result.stderr + result.stdout)


class WindowsDeviceBackend(DeviceBackend):
    """Drive-letter backend using Shell.Application eject"""

    EJECT_SETTLE_SECONDS = 3.0

    def enumerate(self) -> List[Device]:
        system_drive = os.environ.get("SystemDrive", "C:").upper().rstrip("\\")
        devices = []
        for part in self._partitions():
            opts = part.opts.lower()
            if "removable" not in opts or "cdrom" in opts:
                continue
            mount = part.mountpoint
            if mount.upper().rstrip("\\") == system_drive:
                continue

            identity = self.id_extractor.extract(mount, part.device, total_size=self._volume_size(mount),
                                                 fs_type=part.fstype)
            name = mount.rstrip("\\")
            devices.append(Device(
                device_id=identity.device_id,
                label=_format_label(name, True),
                mount_path=mount,
                device_node=part.device,
                fs_type=part.fstype,
                device_type=detect_device_type(mount),
                is_removable=True,
            ))
        return devices

    def unmount(self, device: Device) -> None:
        drive = device.mount_path.rstrip("\\")
        script = f"(New-Object -comObject Shell.Application).Namespace(17).ParseName('{drive}').InvokeVerb('Eject')"
        result = self._run(["powershell", "-NoProfile", "-Command", script])
        if result.returncode != 0:
            raise self._classify_unmount_failure(device, result.stderr + result.stdout)

        # InvokeVerb returns before the shell finishes; confirm the volume left
        deadline = time.monotonic() + self.EJECT_SETTLE_SECONDS
        while time.monotonic() < deadline:
            if not self.is_mounted(device.mount_path):
                return
            time.sleep(0.25)
        raise DeviceError(DeviceError.BUSY, f"{drive} is still mounted (in use?)", device.mount_path)


class UnsupportedDeviceBackend(DeviceBackend):
    """Backend for platforms without removable-volume support."""

    def enumerate(self) -> List[Device]:
        return []

    def unmount(self, device: Device) -> None:
        raise DeviceError(DeviceError.UNSUPPORTED_PLATFORM,
                          f"Unmount is not supported on {platform.system()}", device.mount_path)


def create_backend(system: Optional[str] = None, config: Optional[DeviceConfig] = None) -> DeviceBackend:
    """Pick the backend for the running OS."""
    system = system or platform.system()
    backends = {
        "Linux": LinuxDeviceBackend,
        "Darwin": MacDeviceBackend,
        "Windows": WindowsDeviceBackend,
    }
    backend_cls = backends.get(system, UnsupportedDeviceBackend)
    return backend_cls(config)


class DeviceRegistry:
    """
    Lists removable devices and ejects them.

    Holds no handle on devices between calls: every list_devices() builds a
    fresh set, and callers must re-query after an unmount.
    """

    def __init__(self, backend: Optional[DeviceBackend] = None):
        self.backend = backend or create_backend()
        logger.info(f"[DeviceRegistry] Using {type(self.backend).__name__}")

    def list_devices(self) -> List[Device]:
        """
        Enumerate removable volumes mounted right now.

        Returns:
            Devices ordered by label then mount path

        Raises:
            DeviceError: enumeration_failed if the OS query fails
        """
        try:
            found = self.backend.enumerate()
        except DeviceError:
            raise
        except OSError as e:
            raise DeviceError(DeviceError.ENUMERATION_FAILED, f"Device enumeration failed: {e}")

        unique: Dict[str, Device] = {}
        for device in found:
            unique.setdefault(device.mount_path, device)
        devices = sorted(unique.values(), key=lambda d: (d.label.lower(), d.mount_path))
        logger.info(f"[DeviceRegistry] {len(devices)} removable device(s) found")
        return devices

    def unmount(self, device: Device) -> None:
        """
        Safely eject a device.

        Raises:
            DeviceError: vanished if it is no longer mounted, busy if in use,
                unmount_failed / unsupported_platform otherwise
        """
        if not self.backend.is_mounted(device.mount_path):
            raise DeviceError(DeviceError.VANISHED, f"{device.mount_path} is not mounted", device.mount_path)

        logger.info(f"[DeviceRegistry] Unmounting {device.label} at {device.mount_path}")
        self.backend.unmount(device)
        logger.info(f"[DeviceRegistry] Unmounted {device.mount_path}")


def list_removable_devices() -> List[Device]:
    """Convenience wrapper: enumerate with the platform backend."""
    return DeviceRegistry().list_devices()
