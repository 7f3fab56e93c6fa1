"""Raster primitives — immutable RGBA pixel buffer, grayscale and luminance."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from PIL import Image

# Rec. 601 luma weights, the same weighting the capture layer uses for previews.
_LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114])

_OPAQUE = 255


def luminance_of(r: float, g: float, b: float) -> float:
    """Luma of a single RGB triple, 0..255."""
    return float(_LUMA_WEIGHTS[0] * r + _LUMA_WEIGHTS[1] * g + _LUMA_WEIGHTS[2] * b)


def _as_rgba(array: NDArray) -> NDArray[np.uint8]:
    """Normalise a grayscale, RGB or RGBA array to an (h, w, 4) uint8 buffer."""
    arr = np.asarray(array)
    if arr.dtype != np.uint8:
        if np.issubdtype(arr.dtype, np.floating) and arr.size and float(arr.max()) <= 1.0:
            arr = arr * 255.0
        arr = np.clip(np.rint(arr), 0, 255).astype(np.uint8)

    if arr.ndim == 2:
        rgb = np.repeat(arr[:, :, None], 3, axis=2)
        alpha = np.full(arr.shape + (1,), _OPAQUE, dtype=np.uint8)
        return np.concatenate([rgb, alpha], axis=2)
    if arr.ndim == 3 and arr.shape[2] == 3:
        alpha = np.full(arr.shape[:2] + (1,), _OPAQUE, dtype=np.uint8)
        return np.concatenate([arr, alpha], axis=2)
    if arr.ndim == 3 and arr.shape[2] == 4:
        return arr.copy()
    raise ValueError(f"Unsupported raster shape: {arr.shape}")


@dataclass(frozen=True)
class Raster:
    """Decoded RGBA image handed over by the capture layer.

    The pixel buffer is read-only; every derived map is a fresh array.
    """

    pixels: NDArray[np.uint8]

    def __post_init__(self) -> None:
        rgba = _as_rgba(self.pixels)
        if rgba.shape[0] == 0 or rgba.shape[1] == 0:
            raise ValueError("Raster must have non-zero width and height")
        rgba.flags.writeable = False
        object.__setattr__(self, "pixels", rgba)

    @classmethod
    def from_array(cls, array: NDArray) -> Raster:
        return cls(np.asarray(array))

    @classmethod
    def from_pil(cls, image: Image.Image) -> Raster:
        return cls(np.asarray(image.convert("RGBA")))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def shape(self) -> tuple[int, int]:
        """(height, width), matching numpy indexing."""
        return (self.height, self.width)

    def contains(self, x: float, y: float) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def pixel(self, x: int, y: int) -> tuple[int, int, int, int]:
        if not self.contains(x, y):
            raise IndexError(f"Pixel ({x}, {y}) outside {self.width}x{self.height} raster")
        r, g, b, a = self.pixels[y, x]
        return (int(r), int(g), int(b), int(a))

    def rgb(self) -> NDArray[np.float64]:
        return self.pixels[:, :, :3].astype(np.float64)

    def grayscale(self) -> NDArray[np.float64]:
        """Luma map in 0..255."""
        return self.rgb() @ _LUMA_WEIGHTS

    def luminance(self) -> NDArray[np.float64]:
        """Luma map normalised to 0..1."""
        return self.grayscale() / 255.0

    def to_pil(self) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self.pixels))

    def resized(self, scale: float) -> Raster:
        """Box-filtered rescale. Scale 1.0 returns the raster itself."""
        if scale == 1.0:
            return self
        w = max(1, int(round(self.width * scale)))
        h = max(1, int(round(self.height * scale)))
        return Raster.from_pil(self.to_pil().resize((w, h), Image.Resampling.BOX))
