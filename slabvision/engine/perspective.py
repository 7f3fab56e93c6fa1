"""Perspective correction from the four rectangular-layout markers.

A camera that is not square to the bed sees the marker rectangle as a
general quadrilateral, and the affine calibration then stretches one end of
the slab. ``rectify`` estimates the homography taking the four marker
centres onto an axis-aligned rectangle with the real-world proportions of the
marker layout and resamples the capture through it. The markers land on
their default positions in the rectified image.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from skimage.transform import ProjectiveTransform, estimate_transform, warp

from slabvision.engine.context import MarkerPoint, MarkerRole, MarkerSet, MarkerSystem
from slabvision.engine.errors import CalibrationError
from slabvision.engine.markers import MarkerDistances
from slabvision.utils.geometry import turning_angles
from slabvision.utils.raster import Raster

logger = logging.getLogger(__name__)

# Marker rectangle inset, as a fraction of the rectified image on each side.
_MARGIN = 0.2

# Quadrilateral order, counter-clockwise on screen starting at the Origin.
_QUAD_ROLES = (MarkerRole.ORIGIN, MarkerRole.X_AXIS, MarkerRole.TOP_RIGHT, MarkerRole.SCALE)


@dataclass(frozen=True)
class Rectification:
    raster: Raster
    markers: MarkerSet
    transform: ProjectiveTransform  # capture pixels → rectified pixels
    pixels_per_mm: float

    def to_rectified(self, points: NDArray[np.float64]) -> NDArray[np.float64]:
        return self.transform(np.asarray(points, dtype=np.float64).reshape(-1, 2))

    def to_capture(self, points: NDArray[np.float64]) -> NDArray[np.float64]:
        """Map rectified pixels (e.g. a detected contour) back onto the capture."""
        return self.transform.inverse(np.asarray(points, dtype=np.float64).reshape(-1, 2))


def marker_quad(markers: MarkerSet) -> NDArray[np.float64]:
    if markers.system is not MarkerSystem.RECTANGULAR:
        raise CalibrationError("Perspective correction needs the four-marker rectangular layout")
    quad = np.array([markers.get(role).position for role in _QUAD_ROLES], dtype=np.float64)
    turns = turning_angles(quad)
    if not (np.all(turns > 0) or np.all(turns < 0)):
        raise CalibrationError("Markers do not form a convex quadrilateral")
    return quad


def _edge_lengths(quad: NDArray[np.float64]) -> NDArray[np.float64]:
    return np.linalg.norm(np.roll(quad, -1, axis=0) - quad, axis=1)


def target_layout(
    quad: NDArray[np.float64], distances: MarkerDistances
) -> tuple[NDArray[np.float64], tuple[int, int], float]:
    """Rectified marker corners, output (height, width) and pixels per mm.

    The pixel density is the mean density along the four sides, so the
    rectified image keeps roughly the capture's resolution.
    """
    bottom, right, top, left = _edge_lengths(quad)
    density = ((bottom + top) / distances.x_mm + (right + left) / distances.y_mm) / 4
    rect_w = max(1, int(round(distances.x_mm * density)))
    rect_h = max(1, int(round(distances.y_mm * density)))

    width = int(round(rect_w / (1 - 2 * _MARGIN)))
    height = int(round(rect_h / (1 - 2 * _MARGIN)))
    x0 = int(round(_MARGIN * width))
    y0 = int(round(_MARGIN * height))
    corners = np.array(
        [
            [x0, y0 + rect_h],
            [x0 + rect_w, y0 + rect_h],
            [x0 + rect_w, y0],
            [x0, y0],
        ],
        dtype=np.float64,
    )
    return corners, (height, width), float(density)


def rectify(
    raster: Raster,
    markers: MarkerSet,
    distances: MarkerDistances | None = None,
) -> Rectification:
    """Warp ``raster`` so the marker quadrilateral becomes an upright rectangle."""
    distances = distances or MarkerDistances()
    src = marker_quad(markers)
    dst, shape, density = target_layout(src, distances)

    transform = estimate_transform("projective", src, dst)
    if not np.all(np.isfinite(transform.params)):
        raise CalibrationError("Marker homography is degenerate")

    warped = warp(
        raster.pixels,
        transform.inverse,
        output_shape=shape,
        order=1,
        mode="edge",
        preserve_range=True,
    )
    rectified = Raster.from_array(np.clip(np.rint(warped), 0, 255).astype(np.uint8))

    placed = MarkerSet(
        tuple(
            MarkerPoint(int(x), int(y), role, markers.get(role).confidence)
            for role, (x, y) in zip(_QUAD_ROLES, dst)
        ),
        MarkerSystem.RECTANGULAR,
    )
    logger.info(
        "Rectified %dx%d capture to %dx%d at %.3f px/mm",
        raster.width,
        raster.height,
        rectified.width,
        rectified.height,
        density,
    )
    return Rectification(raster=rectified, markers=placed, transform=transform, pixels_per_mm=density)
