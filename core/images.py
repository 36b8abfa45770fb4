"""
core/images.py

Fundus image preparation before upload.

JPEG and PNG files are sent as-is. TIFF (common on fundus cameras) and any
other Pillow-readable format are converted to RGB PNG, since the backend
only accepts JPEG/PNG.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from core.errors import ValidationError
from core.validators import require, validate_image_file

logger = logging.getLogger(__name__)

_PASSTHROUGH = {"JPEG": "image/jpeg", "PNG": "image/png"}


@dataclass(frozen=True)
class PreparedImage:
    filename: str
    content: bytes
    mime_type: str

    def as_multipart(self) -> tuple[str, BytesIO, str]:
        return (self.filename, BytesIO(self.content), self.mime_type)


def prepare_image(path: str | Path, max_bytes: int) -> PreparedImage:
    """
    Validate and, where needed, convert an image for ``/detections/start``.

    Args:
        path:      Image file on disk.
        max_bytes: Upload size limit, checked before and after conversion.

    Returns:
        A :class:`PreparedImage` ready for a multipart upload.

    Raises:
        ValidationError: If the file is missing, too large, has an unsupported
            extension or cannot be decoded.
    """
    path = Path(path)
    require("image", validate_image_file(path, max_bytes))

    try:
        with Image.open(path) as img:
            img.load()
            fmt = img.format or ""
            if fmt in _PASSTHROUGH:
                return PreparedImage(path.name, path.read_bytes(), _PASSTHROUGH[fmt])

            # Step 1: Ensure RGB
            if img.mode != "RGB":
                logger.debug("Converting image from mode=%s to RGB.", img.mode)
                img = img.convert("RGB")

            # Step 2: Re-encode as PNG
            buf = BytesIO()
            img.save(buf, format="PNG")
    except (UnidentifiedImageError, OSError) as exc:
        raise ValidationError("image", "Image file could not be read") from exc

    content = buf.getvalue()
    if len(content) > max_bytes:
        raise ValidationError("image", "Converted image exceeds the upload size limit")
    logger.info("Converted %s (%s) to PNG, %d bytes", path.name, fmt, len(content))
    return PreparedImage(f"{path.stem}.png", content, "image/png")
