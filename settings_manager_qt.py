# settings_manager_qt.py
# Version 01.00.00.00 dated 20251018
#
# Key-value preference store (destination folder, tool paths, log level)

import json
import os
from pathlib import Path
from typing import Optional

from logging_config import get_logger

logger = get_logger(__name__)


SETTINGS_FILE = Path.home() / ".camporter" / "settings.json"

DESTINATION_PATH_KEY = "destination_path"

DEFAULT_SETTINGS = {
    "destination_path": "",     # Last used import destination
    "ffmpeg_path": "",          # Custom path to ffmpeg executable (empty = use system PATH)
    "ffprobe_path": "",         # Custom path to ffprobe executable (empty = use system PATH)
    "log_level": "INFO",
}


class SettingsManager:
    """
    JSON-backed preference store.

    load()/save() are the string-only interface used by the UI layer;
    get()/set() work with any JSON value and fall back to DEFAULT_SETTINGS.
    """

    def __init__(self, settings_file: Optional[str] = None):
        self.settings_file = Path(settings_file) if settings_file else SETTINGS_FILE
        self._data = DEFAULT_SETTINGS.copy()
        self._load()

    def _load(self):
        if not self.settings_file.exists():
            return
        try:
            with open(self.settings_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"[Settings] Could not read {self.settings_file}, using defaults: {e}")
            return
        if isinstance(data, dict):
            self._data.update(data)
        else:
            logger.warning(f"[Settings] Ignoring malformed settings file {self.settings_file}")

    def _write(self):
        self.settings_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.settings_file.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2)
        os.replace(tmp_path, self.settings_file)

    def get(self, key, default=None):
        return self._data.get(key, default)

    def set(self, key, value):
        self._data[key] = value
        self._write()

    def load(self, key: str) -> Optional[str]:
        """Return the stored string for key, or None when unset/empty."""
        value = self._data.get(key)
        if value is None or value == "":
            return None
        return str(value)

    def save(self, key: str, value: str):
        """Persist a string value; raises OSError if the file cannot be written."""
        self.set(key, value)
        logger.debug(f"[Settings] Saved {key}")

    def load_destination_path(self) -> str:
        return self.load(DESTINATION_PATH_KEY) or ""

    def save_destination_path(self, path: str):
        self.save(DESTINATION_PATH_KEY, path)


_settings: Optional[SettingsManager] = None


def get_settings() -> SettingsManager:
    """Get global SettingsManager instance."""
    global _settings
    if _settings is None:
        _settings = SettingsManager()
    return _settings
