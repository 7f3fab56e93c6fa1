"""Filtering — blur, histogram equalization, Sobel magnitude, thresholds.

All functions take a grayscale map in 0..255 and return a new array.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import ndimage
from skimage.exposure import equalize_hist
from skimage.filters import threshold_otsu

# Sobel responses above this are saturated so edge thresholds stay in 0..255.
_MAX_EDGE = 255.0

# Gaussian kernel reaches two standard deviations out to the blur radius.
_BLUR_TRUNCATE = 2.0


def _is_flat(gray: NDArray[np.float64]) -> bool:
    return gray.size == 0 or float(np.ptp(gray)) == 0.0


def gaussian_blur(gray: NDArray[np.float64], radius: int = 3) -> NDArray[np.float64]:
    """Gaussian blur whose kernel spans ``radius`` pixels each side."""
    if radius <= 0:
        return gray.astype(np.float64, copy=True)
    sigma = radius / _BLUR_TRUNCATE
    return ndimage.gaussian_filter(
        gray.astype(np.float64), sigma=sigma, truncate=_BLUR_TRUNCATE, mode="nearest"
    )


def equalize_histogram(gray: NDArray[np.float64]) -> NDArray[np.float64]:
    """Spread intensities over the full 0..255 range. Flat maps are returned unchanged."""
    if _is_flat(gray):
        return gray.astype(np.float64, copy=True)
    return equalize_hist(np.clip(gray, 0, 255) / 255.0, nbins=256) * 255.0


def sobel_magnitude(gray: NDArray[np.float64]) -> NDArray[np.float64]:
    """Gradient magnitude from 3×3 Sobel kernels, clipped to 0..255."""
    g = gray.astype(np.float64)
    gx = ndimage.sobel(g, axis=1, mode="nearest")
    gy = ndimage.sobel(g, axis=0, mode="nearest")
    return np.clip(np.hypot(gx, gy), 0.0, _MAX_EDGE)


def binary_threshold(
    gray: NDArray[np.float64],
    level: float,
    invert: bool = False,
) -> NDArray[np.bool_]:
    """``gray >= level`` (or ``gray < level`` when inverted)."""
    if invert:
        return gray < level
    return gray >= level


def otsu_threshold(gray: NDArray[np.float64]) -> float:
    """Global threshold maximising between-class variance.

    A flat map has no split; its single level is returned.
    """
    if _is_flat(gray):
        return float(gray.flat[0]) if gray.size else 0.0
    return float(threshold_otsu(np.clip(gray, 0, 255), nbins=256))


def adaptive_threshold(
    gray: NDArray[np.float64],
    block_size: int = 25,
    c: float = 5.0,
) -> NDArray[np.bool_]:
    """Mark pixels darker than their local mean minus ``c``."""
    block = max(3, block_size | 1)
    local_mean = ndimage.uniform_filter(gray.astype(np.float64), size=block, mode="nearest")
    return gray < (local_mean - c)
