"""Contour post-processing chain shared by every strategy.

corners → optional convex hull → Douglas-Peucker → circular smoothing → resampling
→ area restoration
"""

from __future__ import annotations

import logging

import numpy as np
from numpy.typing import NDArray

from slabvision.engine.config import DetectionOptions
from slabvision.utils.contour import (
    drop_repeats,
    gaussian_smooth_closed,
    resample_closed,
    restore_area,
    simplify_closed,
    subsample,
)
from slabvision.utils.geometry import convex_hull, polygon_area, turning_angles

logger = logging.getLogger(__name__)

# Neighbour offset used to measure the turn at a vertex. Pixel staircases
# turn by 45° between adjacent points, so the turn is taken over a wider span.
_CORNER_SPAN = 5

# Fraction of the pre-simplification area an outline must keep to be rescaled.
_MIN_AREA_KEPT = 0.5


def detect_corners(
    points: NDArray[np.float64],
    threshold: float = 0.5,
    span: int = _CORNER_SPAN,
) -> list[int]:
    """Indices of vertices turning by more than ``threshold`` radians.

    The turn at i is the signed angle between (p[i] - p[i-span]) and
    (p[i+span] - p[i]) around the closed contour. Each run of consecutive
    flagged vertices reports only its sharpest member.
    """
    n = len(points)
    if n < 4:
        return []
    k = max(1, min(span, (n - 1) // 2))
    turns = np.abs(turning_angles(points, k))

    flagged = turns > threshold
    if not flagged.any():
        return []
    if flagged.all():
        return [int(np.argmax(turns))]

    # Rotate so index 0 is unflagged; runs then never wrap around
    shift = int(np.argmin(flagged))
    corners: list[int] = []
    run: list[int] = []
    for j in range(n + 1):
        i = (shift + j) % n
        if j < n and flagged[i]:
            run.append(i)
        elif run:
            corners.append(max(run, key=lambda idx: turns[idx]))
            run = []
    return sorted(corners)


def resample_to_limits(
    points: NDArray[np.float64],
    original_count: int,
    options: DetectionOptions,
) -> NDArray[np.float64]:
    n = len(points)
    if n < options.min_points and original_count >= options.min_points and n >= 2:
        return resample_closed(points, options.min_points_after)
    if n > options.max_points:
        return subsample(points, options.max_points)
    return points


def postprocess_contour(
    points: NDArray[np.float64],
    options: DetectionOptions | None = None,
    epsilon: float | None = None,
    window: int | None = None,
) -> NDArray[np.float64]:
    """Clean a raw boundary trace into a compact closed outline."""
    options = options or DetectionOptions()
    epsilon = options.simplification_epsilon if epsilon is None else epsilon
    window = options.smoothing_window if window is None else window

    contour = drop_repeats(np.asarray(points, dtype=np.float64).reshape(-1, 2))
    original_count = len(contour)
    if original_count < 3:
        return contour

    corners = detect_corners(contour, options.corner_threshold)

    if options.use_convex_hull and not corners:
        hull = convex_hull(contour)
        if len(hull) >= 3:
            contour = hull
            corners = []

    # Chords and smoothing both cut inside convex stretches of the outline
    target_area = polygon_area(contour)

    contour = simplify_closed(contour, epsilon, keep=set(corners))
    # Densify sparse outlines so smoothing does not pull vertices inward
    if len(contour) < options.min_points and original_count >= options.min_points:
        contour = resample_closed(contour, options.min_points_after)
    contour = gaussian_smooth_closed(contour, window)
    contour = resample_to_limits(contour, original_count, options)
    # Collapsed outlines are left for the orchestrator to reject
    if polygon_area(contour) >= _MIN_AREA_KEPT * target_area:
        contour = restore_area(contour, target_area)

    logger.debug(
        "Post-processed contour: %d → %d points (%d corners)",
        original_count,
        len(contour),
        len(corners),
    )
    return contour
