"""
Contact Photo Processing

Photos arrive as raw bytes from a picker or a backup file. Before storage
they are:
1. Size-checked against the upload limit (pre-compression)
2. Decoded; bytes that are not an image are rejected
3. Downscaled so the longest edge fits max_image_dimension, aspect preserved
4. Re-encoded as JPEG at a fixed quality

DESIGN DECISION: Images already within the dimension limit are still
re-encoded, so every stored photo has the same format and quality.
"""

import warnings
from io import BytesIO
from typing import Optional

import structlog
from PIL import Image, ImageOps, UnidentifiedImageError

from money_conversations.config import AppSettings, get_settings
from money_conversations.errors import ImageProcessingError
from money_conversations.validation import check_image_size

logger = structlog.get_logger(__name__)


class ImageProcessor:
    """Normalizes contact photos before they are persisted."""

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _decode(self, data: bytes) -> Image.Image:
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("error", Image.DecompressionBombWarning)
                img = Image.open(BytesIO(data))
                img.load()
        except (Image.DecompressionBombError, Image.DecompressionBombWarning) as e:
            raise ImageProcessingError("Image dimensions are too large") from e
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise ImageProcessingError("Invalid image data") from e
        return img

    def resize(self, img: Image.Image) -> Image.Image:
        """Fit the longest edge within max_image_dimension."""
        limit = self._settings.max_image_dimension
        width, height = img.size
        if width <= limit and height <= limit:
            return img

        ratio = min(limit / width, limit / height)
        new_size = (max(1, round(width * ratio)), max(1, round(height * ratio)))
        return img.resize(new_size, Image.Resampling.LANCZOS)

    def process(self, data: bytes) -> bytes:
        """
        Validate and normalize a photo payload.

        Returns:
            JPEG bytes ready for storage

        Raises:
            ImageProcessingError: If the payload is too large or not an image
        """
        reason = check_image_size(data, self._settings.max_image_size_bytes)
        if reason:
            raise ImageProcessingError(reason)

        img = self._decode(data)
        original_size = img.size

        # Camera photos carry their rotation in EXIF
        img = ImageOps.exif_transpose(img)
        img = self.resize(img)
        if img.mode != "RGB":
            img = img.convert("RGB")

        out = BytesIO()
        img.save(
            out,
            format="JPEG",
            quality=self._settings.image_jpeg_quality,
            optimize=True,
        )
        encoded = out.getvalue()

        logger.debug(
            "photo_processed",
            original_bytes=len(data),
            original_size=list(original_size),
            stored_size=list(img.size),
            stored_bytes=len(encoded),
        )
        return encoded
