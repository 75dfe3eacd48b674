# services/video_thumbnail_service.py
# Version 1.1.0 dated 2025-10-18
# Video preview frames using ffmpeg

import os
import subprocess
from typing import Optional

from config import ThumbnailConfig, get_import_config
from logging_config import get_logger
from services.errors import ThumbnailError
from services.image_thumbnailer import ImageThumbnailer
from utils.ffmpeg_check import find_ffmpeg, find_ffprobe

logger = get_logger(__name__)

# ffmpeg stderr fragments that mean "this build cannot decode the stream"
UNSUPPORTED_MARKERS = (
    "Decoder not found",
    "decoder not found",
    "Unknown decoder",
    "Invalid data found when processing input",
    "could not find codec parameters",
    "Unsupported codec",
    "does not contain any stream",
    "Output file is empty",
)


class VideoThumbnailService:
    """
    Extracts one representative frame from a video and encodes it like an
    image preview.

    The frame is taken at 10% of the clip duration (clamped to the configured
    min/max seek and to the clip length). ffmpeg writes the frame as PNG to a
    pipe; nothing is written to disk.
    """

    def __init__(self,
                 config: Optional[ThumbnailConfig] = None,
                 ffmpeg_path: Optional[str] = None,
                 ffprobe_path: Optional[str] = None,
                 thumbnailer: Optional[ImageThumbnailer] = None):
        self.config = config or get_import_config().thumbnail
        self._ffmpeg_path = ffmpeg_path or find_ffmpeg()
        self._ffprobe_path = ffprobe_path or find_ffprobe()
        self.thumbnailer = thumbnailer or ImageThumbnailer(self.config)

        if self._ffmpeg_path:
            logger.info(f"ffmpeg at '{self._ffmpeg_path}' - video previews enabled")
        else:
            logger.warning("ffmpeg not found - video previews disabled")

    def generate_thumbnail(self, video_path: str) -> str:
        """
        Preview data URI for a video file.

        Raises:
            ThumbnailError: extraction_unsupported (no ffmpeg), source_missing,
                unsupported_format, decode_failed or timeout
        """
        if not os.path.isfile(video_path):
            raise ThumbnailError(ThumbnailError.SOURCE_MISSING, f"File not found: {video_path}", video_path)
        if not self._ffmpeg_path:
            raise ThumbnailError(ThumbnailError.EXTRACTION_UNSUPPORTED,
                                 "Video frame extraction requires ffmpeg", video_path)

        timestamp = self.seek_position(self.probe_duration(video_path))
        frame = self._extract_frame(video_path, timestamp)
        if not frame and timestamp > 0:
            # Some containers report a duration longer than the decodable stream
            logger.debug(f"No frame at {timestamp:.2f}s for {video_path}, retrying at 0s")
            frame = self._extract_frame(video_path, 0.0)
        if not frame:
            raise ThumbnailError(ThumbnailError.DECODE_FAILED,
                                 "ffmpeg produced no frame", video_path)

        return self.thumbnailer.render_bytes(frame, video_path)

    def seek_position(self, duration: Optional[float]) -> float:
        """Frame offset in seconds for a clip of the given duration."""
        cfg = self.config
        if not duration or duration <= 0:
            return cfg.video_min_seek_seconds
        position = duration * cfg.video_seek_fraction
        position = max(cfg.video_min_seek_seconds, min(cfg.video_max_seek_seconds, position))
        # Very short clips: stay inside the stream
        return min(position, duration * 0.5)

    def probe_duration(self, video_path: str) -> Optional[float]:
        """Clip duration in seconds via ffprobe, or None if unknown."""
        if not self._ffprobe_path:
            return None
        cmd = [
            self._ffprobe_path,
            '-v', 'error',
            '-show_entries', 'format=duration',
            '-of', 'default=noprint_wrappers=1:nokey=1',
            video_path
        ]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.config.ffprobe_timeout_seconds
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.debug(f"ffprobe failed for {video_path}: {e}")
            return None

        if result.returncode != 0:
            logger.debug(f"ffprobe exited {result.returncode} for {video_path}: {result.stderr.strip()}")
            return None
        try:
            return float(result.stdout.strip())
        except ValueError:
            return None

    def _extract_frame(self, video_path: str, timestamp: float) -> bytes:
        cmd = [
            self._ffmpeg_path,
            '-v', 'error',
            '-ss', f"{timestamp:.3f}",  # Seek before input (fast seek)
            '-i', video_path,
            '-frames:v', '1',
            '-f', 'image2pipe',
            '-vcodec', 'png',
            'pipe:1'
        ]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                timeout=self.config.ffmpeg_timeout_seconds
            )
        except subprocess.TimeoutExpired:
            raise ThumbnailError(ThumbnailError.TIMEOUT,
                                 f"ffmpeg timed out after {self.config.ffmpeg_timeout_seconds}s", video_path)
        except OSError as e:
            raise ThumbnailError(ThumbnailError.EXTRACTION_UNSUPPORTED, f"Cannot run ffmpeg: {e}", video_path)

        stderr = result.stderr.decode('utf-8', errors='replace').strip()
        if result.returncode != 0:
            if any(marker in stderr for marker in UNSUPPORTED_MARKERS):
                raise ThumbnailError(ThumbnailError.UNSUPPORTED_FORMAT,
                                     f"Unsupported video: {stderr.splitlines()[-1]}", video_path)
            raise ThumbnailError(ThumbnailError.DECODE_FAILED,
                                 f"ffmpeg exited {result.returncode}: {stderr[-300:]}", video_path)
        return result.stdout
