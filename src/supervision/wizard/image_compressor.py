"""
ImageCompressor - bounds captured evidence in size and dimensions.

Provides:
- ImageCompressor: JPEG re-encode with a descending quality loop
- CompressedImage: Result of a compression pass
- PreviewRegistry: Local thumbnail previews that must be released explicitly
"""

import io
import logging
import uuid
from dataclasses import dataclass
from pathlib import PurePath
from typing import Dict, Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from supervision.wizard.config import CompressionSettings, settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompressedImage:
    """Output of ImageCompressor.compress."""
    content: bytes
    filename: str
    content_type: str
    width: Optional[int] = None
    height: Optional[int] = None
    quality: Optional[int] = None
    original_size: int = 0
    passed_through: bool = False

    @property
    def size_bytes(self) -> int:
        return len(self.content)


def _jpeg_name(filename: str) -> str:
    stem = PurePath(filename or "photo").stem or "photo"
    return f"{stem}.jpg"


# =============================================================================
# Compressor
# =============================================================================

class ImageCompressor:
    """
    Normalizes an image to a bounded file size and maximum dimension.

    The image is downscaled (never upscaled) so its longest side fits the
    maximum dimension, then JPEG-encoded starting at the initial quality and
    lowering it one step at a time until the result fits the size budget or
    the quality floor is reached, whichever comes first.
    """

    def __init__(self, config: Optional[CompressionSettings] = None):
        self.config = config or settings.compression

    @property
    def max_size_bytes(self) -> int:
        return self.config.max_size_kb * 1024

    def _load(self, content: bytes) -> Image.Image:
        image = Image.open(io.BytesIO(content))
        image = ImageOps.exif_transpose(image)
        if image.mode != "RGB":
            image = image.convert("RGB")
        return image

    def _encode(self, image: Image.Image, quality: int) -> bytes:
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=quality)
        return buffer.getvalue()

    def compress(
        self,
        content: bytes,
        filename: str = "photo.jpg",
        content_type: str = "image/jpeg",
    ) -> CompressedImage:
        """
        Compress an image for upload.

        Args:
            content: Raw image bytes as captured
            filename: Original file name
            content_type: Original MIME type

        Returns:
            CompressedImage. Input that cannot be decoded is passed through
            unchanged, flagged with passed_through.
        """
        try:
            image = self._load(content)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            logger.warning(f"Could not decode {filename}, keeping original file: {e}")
            return CompressedImage(
                content=content,
                filename=filename,
                content_type=content_type,
                original_size=len(content),
                passed_through=True,
            )

        max_dim = self.config.max_dimension_px
        if image.width > max_dim or image.height > max_dim:
            image.thumbnail((max_dim, max_dim), Image.Resampling.LANCZOS)

        quality = self.config.initial_quality
        encoded = self._encode(image, quality)
        while len(encoded) > self.max_size_bytes and quality > self.config.min_quality:
            quality = max(quality - self.config.quality_step, self.config.min_quality)
            encoded = self._encode(image, quality)

        logger.debug(
            f"Compressed {filename}: {len(content)} -> {len(encoded)} bytes "
            f"({image.width}x{image.height}, q={quality})"
        )

        return CompressedImage(
            content=encoded,
            filename=_jpeg_name(filename),
            content_type="image/jpeg",
            width=image.width,
            height=image.height,
            quality=quality,
            original_size=len(content),
        )


# =============================================================================
# Preview Registry
# =============================================================================

class PreviewRegistry:
    """
    Holds local thumbnail previews for captured photos.

    Previews live until released; the controller releases them when a photo is
    removed, replaced, promoted to uploaded, or the visit is sealed.
    """

    def __init__(self, max_edge_px: Optional[int] = None):
        self.max_edge_px = max_edge_px or settings.compression.preview_max_px
        self._previews: Dict[str, bytes] = {}

    def create(self, content: bytes) -> Optional[str]:
        """Create a preview and return its id, or None if the image is undecodable."""
        try:
            image = Image.open(io.BytesIO(content))
            image = ImageOps.exif_transpose(image)
            if image.mode != "RGB":
                image = image.convert("RGB")
            image.thumbnail((self.max_edge_px, self.max_edge_px))
            buffer = io.BytesIO()
            image.save(buffer, format="JPEG", quality=70)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            logger.warning(f"Preview not generated: {e}")
            return None

        preview_id = f"preview-{uuid.uuid4().hex[:12]}"
        self._previews[preview_id] = buffer.getvalue()
        return preview_id

    def get(self, preview_id: str) -> Optional[bytes]:
        return self._previews.get(preview_id)

    def release(self, preview_id: Optional[str]) -> bool:
        if preview_id is None:
            return False
        return self._previews.pop(preview_id, None) is not None

    def release_all(self) -> int:
        count = len(self._previews)
        self._previews.clear()
        return count

    def __len__(self) -> int:
        return len(self._previews)

    def __contains__(self, preview_id: object) -> bool:
        return preview_id in self._previews
