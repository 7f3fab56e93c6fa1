"""Shared test fixtures — synthetic captures built in memory."""

from __future__ import annotations

import numpy as np
import pytest

from slabvision.engine.config import DetectionOptions
from slabvision.engine.coordinates import CoordinateSystem
from slabvision.utils.morphology import disk_mask
from slabvision.utils.raster import Raster

BACKGROUND = (225, 225, 225)
SLAB = (50, 40, 30)
MARKER = (0, 0, 0)

# Marker square centres on the 400x300 marker capture, one per corner region.
MARKER_CENTERS = {
    "origin": (60, 255),
    "x_axis": (340, 255),
    "scale": (60, 45),
    "top_right": (340, 45),
}
MARKER_HALF = 8

# Slab disk on the marker capture.
SLAB_CENTER = (200, 150)
SLAB_RADIUS = 60


def canvas(width: int, height: int, color=BACKGROUND) -> np.ndarray:
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[:, :] = color
    return img


def paint_disk(img: np.ndarray, center, radius, color=SLAB) -> np.ndarray:
    img[disk_mask(img.shape[:2], center, radius)] = color
    return img


def paint_square(img: np.ndarray, center, half, color=MARKER) -> np.ndarray:
    cx, cy = center
    img[cy - half : cy + half, cx - half : cx + half] = color
    return img


def disk_raster(width=200, height=200, center=(100, 100), radius=50, color=SLAB) -> Raster:
    return Raster.from_array(paint_disk(canvas(width, height), center, radius, color))


def marker_raster(with_slab: bool = True) -> Raster:
    img = canvas(400, 300, (255, 255, 255))
    for c in MARKER_CENTERS.values():
        paint_square(img, c, MARKER_HALF)
    if with_slab:
        paint_disk(img, SLAB_CENTER, SLAB_RADIUS)
    return Raster.from_array(img)


@pytest.fixture
def disk() -> Raster:
    """200x200 capture with a dark disk of radius 50 centred at (100, 100)."""
    return disk_raster()


@pytest.fixture
def markers_capture() -> Raster:
    return marker_raster()


@pytest.fixture
def uniform_black() -> Raster:
    return Raster.from_array(canvas(120, 120, (0, 0, 0)))


@pytest.fixture
def uniform_white() -> Raster:
    return Raster.from_array(canvas(120, 120, (255, 255, 255)))


@pytest.fixture
def circle_mask() -> np.ndarray:
    """Filled circle of radius 40 at (60, 60) on a 120x120 grid."""
    return disk_mask((120, 120), (60, 60), 40)


@pytest.fixture
def identity() -> CoordinateSystem:
    return CoordinateSystem.identity()


@pytest.fixture
def options() -> DetectionOptions:
    return DetectionOptions()
