"""
FFmpeg/FFprobe discovery for video preview frames.

Resolution order for each tool:
1. Custom path from user settings ("ffmpeg_path" / "ffprobe_path")
2. Sibling of the other tool's custom path (same bin directory)
3. System PATH (shutil.which)
4. Common install folders (C:\\ffmpeg\\bin, application root, ./bin)
"""

import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from logging_config import get_logger

logger = get_logger(__name__)


def _exe(name: str) -> str:
    return f"{name}.exe" if os.name == 'nt' else name


def _common_locations() -> List[Path]:
    locations = []
    if os.name == 'nt':
        locations.extend([
            Path('C:/ffmpeg/bin'),
            Path('C:/ffmpeg'),
            Path('C:/Program Files/ffmpeg/bin'),
        ])
    app_root = Path(__file__).parent.parent
    locations.extend([app_root, app_root / 'bin', app_root / 'ffmpeg'])
    return locations


def _from_settings(key: str) -> str:
    from settings_manager_qt import get_settings
    return get_settings().get(key, '') or ''


def find_tool(name: str, settings_key: Optional[str] = None, sibling_key: Optional[str] = None) -> Optional[str]:
    """
    Locate an executable.

    Args:
        name: Tool name ("ffmpeg" or "ffprobe")
        settings_key: Settings key holding a custom path for this tool
        sibling_key: Settings key of a related tool whose folder is also searched

    Returns:
        Path to the executable, or None if not found
    """
    if settings_key:
        custom = _from_settings(settings_key)
        if custom and Path(custom).is_file():
            return custom
        if custom:
            logger.warning(f"{name} configured at '{custom}' but the file does not exist")

    if sibling_key:
        sibling = _from_settings(sibling_key)
        if sibling:
            candidate = Path(sibling).parent / _exe(name)
            if candidate.is_file():
                return str(candidate)

    found = shutil.which(name)
    if found:
        return found

    for location in _common_locations():
        candidate = location / _exe(name)
        if candidate.is_file():
            return str(candidate)
    return None


def find_ffmpeg() -> Optional[str]:
    return find_tool('ffmpeg', 'ffmpeg_path', 'ffprobe_path')


def find_ffprobe() -> Optional[str]:
    return find_tool('ffprobe', 'ffprobe_path', 'ffmpeg_path')


def _check_command(command: str) -> bool:
    """True if `command -version` runs and exits 0."""
    try:
        result = subprocess.run(
            [command, '-version'],
            capture_output=True,
            text=True,
            timeout=5
        )
        return result.returncode == 0
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        return False


def check_ffmpeg_availability() -> Tuple[bool, bool, str]:
    """
    Check whether FFmpeg and FFprobe are usable.

    Returns:
        Tuple[bool, bool, str]: (ffmpeg_available, ffprobe_available, message)
    """
    ffmpeg_path = find_ffmpeg()
    ffprobe_path = find_ffprobe()
    ffmpeg_ok = bool(ffmpeg_path) and _check_command(ffmpeg_path)
    ffprobe_ok = bool(ffprobe_path) and _check_command(ffprobe_path)

    if ffmpeg_ok and ffprobe_ok:
        message = f"FFmpeg and FFprobe detected ({Path(ffmpeg_path).parent}) - video previews enabled"
    elif ffmpeg_ok:
        message = "FFmpeg detected, FFprobe missing - video previews use a fixed frame offset"
    elif ffprobe_ok:
        message = "FFprobe detected, FFmpeg missing - video previews disabled"
    else:
        message = "FFmpeg not found - video previews disabled. " + _install_hint()

    logger.info(message)
    return ffmpeg_ok, ffprobe_ok, message


def _install_hint() -> str:
    if os.name == 'nt':
        return "Install with 'choco install ffmpeg' or from https://www.gyan.dev/ffmpeg/builds/"
    if Path('/usr/bin/apt-get').exists():
        return "Install with 'sudo apt install ffmpeg'"
    if Path('/usr/bin/dnf').exists():
        return "Install with 'sudo dnf install ffmpeg'"
    if Path('/usr/local/bin/brew').exists() or Path('/opt/homebrew/bin/brew').exists():
        return "Install with 'brew install ffmpeg'"
    return "Install FFmpeg from your package manager or https://ffmpeg.org/download.html"
