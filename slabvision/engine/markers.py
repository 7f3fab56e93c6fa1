"""Marker locator and calibration.

Markers are found with a contrast-window search: inside a search region the
square sub-window whose mean luminance differs most from the region mean (in
the direction set by the region's overall brightness) is the marker.
Detected markers are assigned roles by position and turned into a
CoordinateSystem by ``calibrate``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from slabvision.engine.config import DetectionOptions
from slabvision.engine.context import MarkerPoint, MarkerRole, MarkerSet, MarkerSystem
from slabvision.engine.coordinates import CoordinateSystem, validate_ratio
from slabvision.engine.deadline import Deadline
from slabvision.engine.errors import CalibrationError, TimeoutExceeded
from slabvision.utils.raster import Raster

logger = logging.getLogger(__name__)

# Fractional (x1, y1, x2, y2) corner windows searched for each role.
_CORNER_REGIONS: dict[MarkerRole, tuple[float, float, float, float]] = {
    MarkerRole.ORIGIN: (0.05, 0.75, 0.30, 0.95),
    MarkerRole.X_AXIS: (0.70, 0.75, 0.95, 0.95),
    MarkerRole.SCALE: (0.05, 0.05, 0.30, 0.25),
    MarkerRole.TOP_RIGHT: (0.70, 0.05, 0.95, 0.25),
}

# Where a marker is assumed to be when the corner search finds nothing.
_DEFAULT_POSITIONS: dict[MarkerRole, tuple[float, float]] = {
    MarkerRole.ORIGIN: (0.2, 0.8),
    MarkerRole.X_AXIS: (0.8, 0.8),
    MarkerRole.SCALE: (0.2, 0.2),
    MarkerRole.TOP_RIGHT: (0.8, 0.2),
}
_DEFAULT_CONFIDENCE = 0.5

# Region brighter than mid-grey → looking for a dark marker.
_DARK_ON_LIGHT_LEVEL = 0.5
_MIN_WINDOW = 5
_WINDOW_DIVISOR = 6
_STRIDE_DIVISOR = 3

# Markers closer than this (pixels) cannot define a stable frame.
_MIN_MARKER_DISTANCE = 10.0

Region = tuple[int, int, int, int]


@dataclass(frozen=True)
class MarkerDistances:
    """Real-world marker separations in millimetres."""

    x_mm: float = 762.0  # Origin → XAxis
    y_mm: float = 762.0  # Origin → Scale (rectangular layout)
    scale_mm: float | None = None  # Origin → Scale (minimal layout), defaults to y_mm

    @property
    def origin_to_scale_mm(self) -> float:
        return self.y_mm if self.scale_mm is None else self.scale_mm


def corner_region(role: MarkerRole, width: int, height: int) -> Region:
    fx1, fy1, fx2, fy2 = _CORNER_REGIONS[role]
    return (int(fx1 * width), int(fy1 * height), int(fx2 * width), int(fy2 * height))


def default_marker(role: MarkerRole, width: int, height: int) -> MarkerPoint:
    fx, fy = _DEFAULT_POSITIONS[role]
    return MarkerPoint(int(fx * width), int(fy * height), role, _DEFAULT_CONFIDENCE)


def default_marker_set(width: int, height: int, system: MarkerSystem = MarkerSystem.RECTANGULAR) -> MarkerSet:
    return MarkerSet(tuple(default_marker(r, width, height) for r in system.roles), system)


def _clip_region(region: Region, width: int, height: int) -> Region:
    x1, y1, x2, y2 = region
    x1, x2 = sorted((x1, x2))
    y1, y2 = sorted((y1, y2))
    return (max(0, x1), max(0, y1), min(width, x2), min(height, y2))


def locate_in_region(
    luminance: NDArray[np.float64],
    region: Region,
    role: MarkerRole,
    min_contrast: float = 0.2,
) -> MarkerPoint | None:
    """Contrast-window search inside ``region`` of a 0..1 luminance map.

    Returns None when the best window scores below ``min_contrast``.
    """
    height, width = luminance.shape
    x1, y1, x2, y2 = _clip_region(region, width, height)
    patch = luminance[y1:y2, x1:x2]
    rows, cols = patch.shape
    if rows == 0 or cols == 0:
        return None

    region_mean = float(patch.mean())
    dark_on_light = region_mean > _DARK_ON_LIGHT_LEVEL

    window = min(max(_MIN_WINDOW, min(rows, cols) // _WINDOW_DIVISOR), rows, cols)
    stride = max(1, window // _STRIDE_DIVISOR)

    # Integral image: window sums at every top-left corner in O(1) each
    integral = np.pad(patch.cumsum(axis=0).cumsum(axis=1), ((1, 0), (1, 0)))
    sums = (
        integral[window:, window:]
        - integral[:-window, window:]
        - integral[window:, :-window]
        + integral[:-window, :-window]
    )
    means = sums[::stride, ::stride] / (window * window)

    scores = region_mean - means if dark_on_light else means - region_mean
    best = int(np.argmax(scores))
    by, bx = divmod(best, scores.shape[1])
    score = float(scores[by, bx])

    if score < min_contrast:
        logger.debug("%s: best contrast %.3f below %.3f", role.name, score, min_contrast)
        return None

    cx = x1 + bx * stride + window // 2
    cy = y1 + by * stride + window // 2
    return MarkerPoint(cx, cy, role, score)


def locate_near_tap(
    luminance: NDArray[np.float64],
    tap: tuple[int, int],
    radius: int,
    role: MarkerRole,
    min_contrast: float = 0.2,
) -> MarkerPoint:
    """Refine a user tap; keeps the raw tap with zero confidence if nothing stands out."""
    tx, ty = int(tap[0]), int(tap[1])
    region = (tx - radius, ty - radius, tx + radius + 1, ty + radius + 1)
    found = locate_in_region(luminance, region, role, min_contrast)
    if found is None:
        return MarkerPoint(tx, ty, role, 0.0)
    return found


def detect_markers(
    raster: Raster,
    system: MarkerSystem = MarkerSystem.RECTANGULAR,
    options: DetectionOptions | None = None,
    deadline: Deadline | None = None,
) -> MarkerSet:
    """Search each role's corner region; missing markers fall back to default positions."""
    options = options or DetectionOptions()
    deadline = deadline or Deadline(options.timeout_ms)
    w, h = raster.width, raster.height

    try:
        luminance = raster.luminance()
        found: list[MarkerPoint] = []
        for role in system.roles:
            deadline.check()
            marker = locate_in_region(luminance, corner_region(role, w, h), role, options.min_contrast)
            if marker is None:
                marker = default_marker(role, w, h)
                logger.warning("  %s marker not found, using default position (%d, %d)", role.name, marker.x, marker.y)
            found.append(marker)
    except TimeoutExceeded as e:
        logger.warning("Marker detection FAILED: %s; using default positions", e)
        return default_marker_set(w, h, system)

    return MarkerSet(tuple(found), system)


def assign_roles(
    candidates: Sequence[tuple[float, float] | tuple[float, float, float]],
    system: MarkerSystem = MarkerSystem.RECTANGULAR,
) -> MarkerSet:
    """Assign roles to unlabelled marker positions.

    The two lowest in the image are Origin (left) and XAxis (right); the
    rest, left to right, are Scale and TopRight. Optional third tuple
    element is a confidence; surplus candidates are dropped lowest
    confidence first.
    """
    needed = int(system)
    if len(candidates) < needed:
        raise CalibrationError(f"{system.name} marker system needs {needed} markers, got {len(candidates)}")

    pts = [(float(c[0]), float(c[1]), float(c[2]) if len(c) > 2 else 1.0) for c in candidates]
    if len(pts) > needed:
        pts = sorted(pts, key=lambda p: -p[2])[:needed]

    by_y = sorted(pts, key=lambda p: p[1], reverse=True)
    bottom = sorted(by_y[:2], key=lambda p: p[0])
    top = sorted(by_y[2:], key=lambda p: p[0])

    roles = [MarkerRole.ORIGIN, MarkerRole.X_AXIS] + list(system.roles[2:])
    ordered = bottom + top
    markers = tuple(
        MarkerPoint(int(round(x)), int(round(y)), role, conf)
        for (x, y, conf), role in zip(ordered, roles)
    )
    return MarkerSet(markers, system)


def markers_from_taps(
    raster: Raster,
    taps: Sequence[tuple[int, int]],
    system: MarkerSystem = MarkerSystem.RECTANGULAR,
    options: DetectionOptions | None = None,
) -> MarkerSet:
    """Refine user taps with the contrast search, then assign roles."""
    options = options or DetectionOptions()
    luminance = raster.luminance()
    refined = []
    for tap in taps:
        # Role is provisional until positions are compared
        m = locate_near_tap(luminance, tap, options.tap_search_radius, MarkerRole.ORIGIN, options.min_contrast)
        refined.append((m.x, m.y, m.confidence))
    return assign_roles(refined, system)


def _check_separation(a: MarkerPoint, b: MarkerPoint) -> float:
    d = a.distance_to(b)
    if d < _MIN_MARKER_DISTANCE:
        raise CalibrationError(
            f"Markers too close: {a.role.name}–{b.role.name} only {d:.1f}px apart"
        )
    return d


def calibrate(
    markers: MarkerSet,
    distances: MarkerDistances | None = None,
    anisotropic: bool = False,
) -> CoordinateSystem:
    """Derive the pixel → machine frame from a MarkerSet."""
    distances = distances or MarkerDistances()
    origin = markers.origin
    x_axis = markers.x_axis
    scale = markers.scale

    scale_px = _check_separation(origin, scale)
    x_px = _check_separation(origin, x_axis)
    angle = math.atan2(x_axis.y - origin.y, x_axis.x - origin.x)

    if markers.system is MarkerSystem.MINIMAL:
        ratio = validate_ratio(distances.origin_to_scale_mm / scale_px)
        ratio_x = ratio_y = ratio
    else:
        ratio_x = distances.x_mm / x_px
        ratio_y = distances.y_mm / scale_px
        if not anisotropic:
            ratio = validate_ratio((ratio_x + ratio_y) / 2)
            ratio_x = ratio_y = ratio

    coords = CoordinateSystem(origin=origin.position, angle=angle, ratio_x=ratio_x, ratio_y=ratio_y)
    logger.info(
        "Calibrated %s markers: angle %.4f rad, %.4f mm/px",
        markers.system.name,
        coords.angle,
        coords.ratio,
    )
    return coords
