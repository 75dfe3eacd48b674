# services/image_thumbnailer.py
# Version 01.00.00.00 dated 20251018
# Pillow-based preview encoding shared by image and video thumbnails

import base64
import io
import os
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from config import ThumbnailConfig, get_import_config
from logging_config import get_logger
from services.errors import ThumbnailError

logger = get_logger(__name__)

HEIF_EXTENSIONS = {"heic", "heif"}

_heif_support: Optional[bool] = None


def heif_support_enabled() -> bool:
    """Register the pillow-heif opener once; False if pillow-heif is not installed."""
    global _heif_support
    if _heif_support is None:
        try:
            from pillow_heif import register_heif_opener
            register_heif_opener()
            _heif_support = True
            logger.info("HEIC/HEIF support enabled (pillow-heif)")
        except ImportError:
            _heif_support = False
            logger.warning("pillow-heif not installed - HEIC previews unavailable")
    return _heif_support


def to_data_uri(payload: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(payload).decode('ascii')}"


class ImageThumbnailer:
    """
    Decodes an image, downscales it so the longest edge fits max_edge and
    re-encodes it as PNG (default) or JPEG.
    """

    def __init__(self, config: Optional[ThumbnailConfig] = None):
        self.config = config or get_import_config().thumbnail
        fmt = self.config.output_format.upper()
        self.output_format = "JPEG" if fmt in ("JPG", "JPEG") else "PNG"
        self.mime_type = "image/jpeg" if self.output_format == "JPEG" else "image/png"

    def render_file(self, path: str) -> str:
        """Preview data URI for an image file."""
        ext = os.path.splitext(path)[1][1:].lower()
        if ext in HEIF_EXTENSIONS and not heif_support_enabled():
            raise ThumbnailError(ThumbnailError.UNSUPPORTED_FORMAT,
                                 "HEIC/HEIF decoding requires pillow-heif", path)
        try:
            with Image.open(path) as img:
                return self.render_image(img, path)
        except FileNotFoundError:
            raise ThumbnailError(ThumbnailError.SOURCE_MISSING, f"File not found: {path}", path)
        except UnidentifiedImageError as e:
            raise ThumbnailError(ThumbnailError.UNSUPPORTED_FORMAT, f"Unrecognized image data: {e}", path)
        except (OSError, ValueError, SyntaxError) as e:
            # Pillow reports truncated/corrupt data as OSError or SyntaxError
            raise ThumbnailError(ThumbnailError.DECODE_FAILED, f"Cannot decode image: {e}", path)

    def render_bytes(self, data: bytes, path: str) -> str:
        """Preview data URI for an encoded frame held in memory."""
        try:
            with Image.open(io.BytesIO(data)) as img:
                return self.render_image(img, path)
        except UnidentifiedImageError as e:
            raise ThumbnailError(ThumbnailError.DECODE_FAILED, f"Unrecognized frame data: {e}", path)
        except (OSError, ValueError, SyntaxError) as e:
            raise ThumbnailError(ThumbnailError.DECODE_FAILED, f"Cannot decode frame: {e}", path)

    def render_image(self, img: Image.Image, path: str = "") -> str:
        img.load()
        # Honor camera orientation
        img = ImageOps.exif_transpose(img)
        img.thumbnail((self.config.max_edge, self.config.max_edge), Image.Resampling.LANCZOS)

        if self.output_format == "JPEG":
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
        elif img.mode not in ("RGB", "RGBA", "L", "LA", "P"):
            img = img.convert("RGBA")

        buffer = io.BytesIO()
        save_kwargs = {"quality": self.config.jpeg_quality} if self.output_format == "JPEG" else {"optimize": True}
        img.save(buffer, format=self.output_format, **save_kwargs)
        logger.debug(f"Rendered {img.width}x{img.height} preview for {path}")
        return to_data_uri(buffer.getvalue(), self.mime_type)
