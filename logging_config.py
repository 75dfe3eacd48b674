# logging_config.py
# Version 01.00.00.00 dated 20251018
# Centralized logging configuration for Camporter

import logging
import logging.handlers
import os
import sys
from collections import deque
from typing import List, Optional


# Logger that receives lines forwarded from the front-end
FRONTEND_LOGGER_NAME = "camporter.frontend"

FILE_FORMAT = '%(asctime)s [%(levelname)s] [%(name)s:%(lineno)d] %(message)s'
CONSOLE_FORMAT = '%(asctime)s [%(levelname)s] %(message)s'

_current_log_file: Optional[str] = None


class ColoredFormatter(logging.Formatter):
    """Console formatter that tints the level name when stdout is a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, fmt: str, use_colors: bool = True, stream=None):
        super().__init__(fmt)
        self.use_colors = use_colors and _stream_is_tty(stream or sys.stdout)

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno) if self.use_colors else None
        if color is None:
            return super().format(record)
        # Records are shared with the file handler; restore the plain name afterwards
        plain = record.levelname
        record.levelname = f"{color}{plain}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


def _stream_is_tty(stream) -> bool:
    if sys.platform == 'win32' and not (os.getenv('TERM') or 'ANSICON' in os.environ):
        return False
    isatty = getattr(stream, 'isatty', None)
    return bool(isatty and isatty())


def _level(name: str) -> int:
    name = name.upper()
    if name == "WARN":
        name = "WARNING"
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def default_log_file() -> str:
    """Per-user log location: ~/.camporter/logs/camporter.log"""
    return os.path.join(os.path.expanduser("~"), ".camporter", "logs", "camporter.log")


def _reset_handlers(root: logging.Logger):
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()


def _rotating_file_handler(path: str, max_bytes: int, backup_count: int) -> logging.Handler:
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    use_colors: bool = True
) -> logging.Logger:
    """
    Configure the root logger for the whole process.

    The console shows `log_level` and above; the rotating file always keeps
    DEBUG so that read_log_tail() can show full detail after the fact.
    Calling it again replaces the previous handlers.

    Args:
        log_level: Console threshold (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Log path; default_log_file() when None
        console: Attach a stdout handler
        max_bytes: Rotation size of the log file
        backup_count: Rotated files kept
        use_colors: Colour level names on a terminal

    Returns:
        The root logger
    """
    global _current_log_file

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    _reset_handlers(root)

    if console:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setLevel(_level(log_level))
        stream_handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, use_colors=use_colors))
        root.addHandler(stream_handler)

    log_file = log_file or default_log_file()
    root.addHandler(_rotating_file_handler(log_file, max_bytes, backup_count))
    _current_log_file = log_file

    root.info("-" * 72)
    root.info(f"Camporter started, console level {log_level.upper()}, log file {log_file}")
    return root


def get_logger(name: str) -> logging.Logger:
    """
    Module logger.

    Usage:
        from logging_config import get_logger
        logger = get_logger(__name__)
        logger.info("[MediaScanService] Scan complete")
    """
    return logging.getLogger(name)


def set_log_level(level: str):
    """Change the console threshold at runtime; the file keeps DEBUG."""
    numeric_level = _level(level)
    for handler in logging.getLogger().handlers:
        if not isinstance(handler, logging.FileHandler):
            handler.setLevel(numeric_level)
    logging.getLogger(__name__).info(f"Console log level set to {level.upper()}")


def disable_external_logging():
    """Quiet Pillow plugin chatter and Qt debug categories."""
    for name, level in (('PIL', logging.WARNING),
                        ('PIL.PngImagePlugin', logging.ERROR),
                        ('PIL.TiffImagePlugin', logging.ERROR)):
        logging.getLogger(name).setLevel(level)
    os.environ.setdefault("QT_LOGGING_RULES", "*.debug=false;qt.qpa.*=false")


def append_log(level: str, message: str):
    """
    Record a line sent by the front-end.

    Args:
        level: "debug", "info", "warn"/"warning" or "error"
        message: Text to record
    """
    logging.getLogger(FRONTEND_LOGGER_NAME).log(_level(level), message)


def read_log_tail(max_lines: int = 500, log_file: Optional[str] = None) -> List[str]:
    """
    Last lines of the log file, oldest first.

    Returns an empty list when the file does not exist yet.
    """
    path = log_file or _current_log_file or default_log_file()
    if max_lines <= 0 or not os.path.exists(path):
        return []

    for handler in logging.getLogger().handlers:
        handler.flush()

    with open(path, "r", encoding="utf-8", errors="replace") as f:
        tail = deque(f, maxlen=max_lines)
    return [line.rstrip("\n") for line in tail]
