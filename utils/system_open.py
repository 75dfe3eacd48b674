"""
Open a folder in the system file manager (Explorer, Finder, xdg-open).
"""

import os
import platform
import subprocess
from typing import Optional, Tuple

from logging_config import get_logger

logger = get_logger(__name__)


def open_folder(path: str, system: Optional[str] = None) -> Tuple[bool, str]:
    """
    Show a folder in the platform file manager.

    Returns:
        (ok, message) - ok is False if the folder is missing or the launcher failed
    """
    if not path or not os.path.isdir(path):
        return False, "Destination folder does not exist"

    system = system or platform.system()
    if system == "Windows":
        cmd = ['explorer', os.path.normpath(path)]
    elif system == "Darwin":  # macOS
        cmd = ['open', path]
    else:  # Linux
        cmd = ['xdg-open', path]

    try:
        # Detached: the file manager outlives this call
        subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except OSError as e:
        logger.warning(f"Failed to open folder {path}: {e}")
        return False, f"Failed to open folder: {e}"

    logger.info(f"Opened folder: {path}")
    return True, f"Opened {path}"
