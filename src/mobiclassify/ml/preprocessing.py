"""Image preprocessing: pixel buffer to MobileNetV2 input tensor.

Resizes the decoded buffer to the model's square input with Pillow's
bilinear filter, drops alpha, and maps every channel from ``[0, 255]`` to
``[-1, 1]`` with ``(v - 127.5) / 127.5``. The result is a C-contiguous
``float32`` array of shape ``(size, size, 3)``: rows outer, columns inner,
R, G, B interleaved per pixel.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import numpy as np
from PIL import Image

from mobiclassify.errors import InvalidImageError

if TYPE_CHECKING:
    from numpy.typing import NDArray

INPUT_SIZE = 224
PIXEL_SIZE = 3  # RGB channels

# Maps [0, 255] to [-1, 1]; 127.5 maps to 0.0.
IMAGE_MEAN = 127.5
IMAGE_STD = 127.5


class ImagePreprocessor(Protocol):
    """Protocol for image preprocessing."""

    @property
    def input_shape(self) -> tuple[int, int, int]:
        """Return the (height, width, channels) shape of produced tensors."""
        ...

    def preprocess(self, pixels: NDArray[np.generic]) -> NDArray[np.float32]:
        """Convert a decoded pixel buffer into a model input tensor."""
        ...


class Preprocessor:
    """Bilinear resize + [-1, 1] normalization for square RGB models."""

    def __init__(self, input_size: int = INPUT_SIZE) -> None:
        if input_size <= 0:
            raise ValueError(f"input_size must be positive, got {input_size}")
        self._input_size = input_size

    @property
    def input_shape(self) -> tuple[int, int, int]:
        return (self._input_size, self._input_size, PIXEL_SIZE)

    def preprocess(self, pixels: NDArray[np.generic]) -> NDArray[np.float32]:
        """Convert a decoded pixel buffer into a normalized input tensor.

        Args:
            pixels: Either an HxWx3 RGB / HxWx4 RGBA ``uint8`` array, or an
                HxW ``uint32`` array of packed ARGB_8888 values (``0xAARRGGBB``).

        Returns:
            ``float32`` array of shape ``(input_size, input_size, 3)``.

        Raises:
            InvalidImageError: If the buffer has zero width or height, or an
                unsupported dtype or channel layout.
        """
        rgb = _to_rgb(pixels)
        resized = self._resize(rgb)
        return normalize(resized)

    def _resize(self, rgb: NDArray[np.uint8]) -> NDArray[np.uint8]:
        size = (self._input_size, self._input_size)
        if rgb.shape[:2] == size:
            return rgb
        with Image.fromarray(rgb) as image:
            resized = image.resize(size, resample=Image.Resampling.BILINEAR)
            return np.asarray(resized, dtype=np.uint8)


def normalize(rgb: NDArray[np.uint8]) -> NDArray[np.float32]:
    """Map uint8 channel values to ``(v - IMAGE_MEAN) / IMAGE_STD`` as float32."""
    scaled = (rgb.astype(np.float32) - np.float32(IMAGE_MEAN)) / np.float32(IMAGE_STD)
    return np.ascontiguousarray(scaled, dtype=np.float32)


def to_tensor_bytes(tensor: NDArray[np.float32]) -> bytes:
    """Return the raw native-order float32 buffer the network consumes."""
    return np.ascontiguousarray(tensor, dtype=np.float32).tobytes(order="C")


def unpack_argb(packed: NDArray[np.uint32]) -> NDArray[np.uint8]:
    """Split packed ``0xAARRGGBB`` values into an HxWx3 RGB array."""
    red = (packed >> 16) & 0xFF
    green = (packed >> 8) & 0xFF
    blue = packed & 0xFF
    return np.stack([red, green, blue], axis=-1).astype(np.uint8)


def _to_rgb(pixels: NDArray[np.generic]) -> NDArray[np.uint8]:
    array = np.asarray(pixels)
    if array.ndim not in (2, 3):
        raise InvalidImageError(f"Expected a 2-D or 3-D pixel buffer, got {array.ndim} dimensions")
    height, width = array.shape[:2]
    if height == 0 or width == 0:
        raise InvalidImageError(f"Image has zero size ({width}x{height})")

    if array.ndim == 2:
        if array.dtype != np.uint32:
            raise InvalidImageError(f"Packed pixel buffers must be uint32, got {array.dtype}")
        return unpack_argb(array)

    if array.dtype != np.uint8:
        raise InvalidImageError(f"Channel pixel buffers must be uint8, got {array.dtype}")
    channels = array.shape[2]
    if channels not in (3, 4):
        raise InvalidImageError(f"Expected 3 (RGB) or 4 (RGBA) channels, got {channels}")
    return np.ascontiguousarray(array[:, :, :PIXEL_SIZE])
