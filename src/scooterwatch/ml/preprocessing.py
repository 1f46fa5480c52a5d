"""Image preprocessing pipeline.

Decodes raw upload bytes (any format Pillow understands), applies EXIF
orientation, converts to RGB, resizes to the fixed model input resolution
and produces the channel-planar, ImageNet-normalized float32 tensor that
both classification models consume.
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps

from scooterwatch.ml.errors import DecodeError

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

INPUT_SIZE: int = 224
INPUT_SHAPE: tuple[int, int, int, int] = (1, 3, INPUT_SIZE, INPUT_SIZE)

# ImageNet channel statistics, RGB order.
IMAGENET_MEAN = np.array([0.485, 0.456, 0.406], dtype=np.float32)
IMAGENET_STD = np.array([0.229, 0.224, 0.225], dtype=np.float32)

_DECODE_ERRORS = (OSError, EOFError, SyntaxError, ValueError, Image.DecompressionBombError)


class ImageNormalizer:
    """Turns encoded image bytes into a model-ready tensor."""

    def __init__(self, max_image_pixels: int = 16_777_216) -> None:
        self._max_image_pixels = max_image_pixels

    def normalize(self, image_bytes: bytes) -> NDArray[np.float32]:
        """Decode, resize and normalize an image.

        Args:
            image_bytes: Raw file bytes (any supported raster format).

        Returns:
            Read-only float32 array of shape (1, 3, 224, 224). Flattened in
            C order it is all red values, then all green, then all blue.

        Raises:
            DecodeError: If the bytes are not a decodable image or exceed size limits.
        """
        image = self.decode_image(image_bytes)
        return self.to_tensor(self.resize_to_input(image))

    def decode_image(self, image_bytes: bytes) -> NDArray[np.uint8]:
        """Decode raw image bytes into an HxWx3 RGB uint8 array."""
        if not image_bytes:
            raise DecodeError("Empty image payload")

        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                width, height = img.size
                if width * height > self._max_image_pixels:
                    raise DecodeError(
                        f"Image is {width}x{height} ({width * height} pixels), "
                        f"limit is {self._max_image_pixels}"
                    )
                img.load()
                oriented = ImageOps.exif_transpose(img)
                rgb = oriented.convert("RGB") if oriented.mode != "RGB" else oriented
                array = np.array(rgb, dtype=np.uint8)
        except DecodeError:
            raise
        except _DECODE_ERRORS as exc:
            raise DecodeError(f"Failed to decode image: {exc}") from exc

        logger.debug("Decoded image %dx%d", array.shape[1], array.shape[0])
        return array

    @staticmethod
    def resize_to_input(image: NDArray[np.uint8], size: int = INPUT_SIZE) -> NDArray[np.uint8]:
        """Bilinear resize to size x size, ignoring aspect ratio (no crop, no letterbox)."""
        if image.shape[0] == size and image.shape[1] == size:
            return image
        resized = Image.fromarray(image).resize((size, size), Image.Resampling.BILINEAR)
        return np.asarray(resized, dtype=np.uint8)

    @staticmethod
    def to_tensor(image: NDArray[np.uint8]) -> NDArray[np.float32]:
        """Convert an HxWx3 RGB image to a normalized (1, 3, H, W) float32 tensor."""
        if image.ndim != 3 or image.shape[2] != 3:
            raise DecodeError(f"Expected an HxWx3 RGB image, got shape {image.shape}")

        scaled = image.astype(np.float32) / np.float32(255.0)
        normalized = (scaled - IMAGENET_MEAN) / IMAGENET_STD
        # HWC -> CHW, then add the batch dimension.
        tensor = np.ascontiguousarray(normalized.transpose(2, 0, 1), dtype=np.float32)[np.newaxis, ...]
        tensor.flags.writeable = False
        return tensor
