"""Contour shaping — Douglas-Peucker simplification, circular smoothing, resampling."""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from slabvision.utils.geometry import arc_lengths, polygon_area, polygon_centroid


def _chord_distances(points: NDArray[np.float64]) -> NDArray[np.float64]:
    """Perpendicular distance of every point to the chord first→last."""
    start = points[0]
    end = points[-1]

    line_vec = end - start
    line_len = np.linalg.norm(line_vec)

    if line_len < 1e-10:
        # Closed chord: fall back to radial distance from the start
        return np.linalg.norm(points - start, axis=1)

    line_unit = line_vec / line_len
    vecs = points - start
    projections = np.dot(vecs, line_unit)
    closest = start + np.outer(projections, line_unit)
    return np.linalg.norm(points - closest, axis=1)


def douglas_peucker(
    points: NDArray[np.float64],
    epsilon: float,
    keep: set[int] | None = None,
) -> NDArray[np.float64]:
    """Ramer-Douglas-Peucker simplification of an open polyline.

    The first and last points always survive, as does every index in ``keep``.
    Spans are processed from an explicit stack so long traces cannot exhaust
    the interpreter's recursion limit.
    """
    n = len(points)
    if n <= 2:
        return points.copy()

    retained = np.zeros(n, dtype=bool)
    retained[0] = True
    retained[-1] = True
    if keep:
        for idx in keep:
            if 0 <= idx < n:
                retained[idx] = True

    # Forced points split the polyline into independent spans
    anchors = np.flatnonzero(retained)
    stack = [(int(a), int(b)) for a, b in zip(anchors[:-1], anchors[1:])]

    while stack:
        lo, hi = stack.pop()
        if hi - lo < 2:
            continue
        distances = _chord_distances(points[lo : hi + 1])[1:-1]
        max_idx = int(np.argmax(distances))
        if distances[max_idx] > epsilon:
            split = lo + 1 + max_idx
            retained[split] = True
            stack.append((lo, split))
            stack.append((split, hi))

    return points[retained]


def simplify_closed(
    points: NDArray[np.float64],
    epsilon: float,
    keep: set[int] | None = None,
) -> NDArray[np.float64]:
    """Douglas-Peucker over a closed contour.

    The ring is cut at point 0 and at the point farthest from it, and each
    half is simplified on its own.
    """
    n = len(points)
    if n <= 3:
        return points.copy()

    far = int(np.argmax(np.linalg.norm(points - points[0], axis=1)))
    if far == 0:
        return points[:1].copy()

    keep = keep or set()
    first = douglas_peucker(points[: far + 1], epsilon, {k for k in keep if k <= far})
    ring = np.vstack([points[far:], points[:1]])
    second_keep = {k - far for k in keep if k >= far}
    second = douglas_peucker(ring, epsilon, second_keep)
    return np.vstack([first[:-1], second[:-1]])


def gaussian_smooth_closed(points: NDArray[np.float64], window: int = 5) -> NDArray[np.float64]:
    """Circular Gaussian smoothing, σ = window / 6."""
    n = len(points)
    if n <= window or window < 2:
        return points.copy()

    half = min(window // 2, (n - 1) // 2)
    if half == 0:
        return points.copy()
    sigma = max(window / 6.0, 1e-6)
    offsets = np.arange(-half, half + 1)
    weights = np.exp(-(offsets**2) / (2 * sigma**2))
    weights /= weights.sum()

    smoothed = np.zeros_like(points, dtype=np.float64)
    for offset, weight in zip(offsets, weights):
        smoothed += weight * np.roll(points, -int(offset), axis=0)
    return smoothed


def resample_closed(points: NDArray[np.float64], count: int) -> NDArray[np.float64]:
    """Place ``count`` points at equal arc-length spacing around the ring."""
    n = len(points)
    if n == 0 or count <= 0:
        return np.empty((0, 2))
    if n == 1:
        return np.repeat(points, count, axis=0)

    ring = np.vstack([points, points[:1]])
    cumulative = arc_lengths(ring)
    total = cumulative[-1]
    if total < 1e-10:
        return np.repeat(points[:1], count, axis=0)

    targets = np.linspace(0.0, total, count, endpoint=False)
    xs = np.interp(targets, cumulative, ring[:, 0])
    ys = np.interp(targets, cumulative, ring[:, 1])
    return np.column_stack([xs, ys])


def restore_area(points: NDArray[np.float64], area: float) -> NDArray[np.float64]:
    """Scale the ring about its centroid so it encloses ``area``."""
    current = polygon_area(points)
    if current < 1e-9 or area <= 0:
        return points.copy()
    cx, cy = polygon_centroid(points)
    center = np.array([cx, cy])
    return center + (points - center) * np.sqrt(area / current)


def subsample(points: NDArray[np.float64], count: int) -> NDArray[np.float64]:
    """Keep ``count`` points picked at uniform index spacing."""
    n = len(points)
    if n <= count:
        return points.copy()
    indices = np.floor(np.linspace(0, n, count, endpoint=False)).astype(int)
    return points[indices]


def drop_repeats(points: NDArray[np.float64]) -> NDArray[np.float64]:
    """Remove consecutive duplicates, including a repeated closing point."""
    if len(points) < 2:
        return points.copy()
    step = np.any(np.diff(points, axis=0) != 0, axis=1)
    kept = points[np.concatenate([[True], step])]
    if len(kept) > 1 and np.array_equal(kept[0], kept[-1]):
        kept = kept[:-1]
    return kept


def circle_contour(center: tuple[float, float], radius: float, count: int = 37) -> NDArray[np.float64]:
    """``count`` points evenly spaced on a circle, without a repeated closing point."""
    angles = np.linspace(0.0, 2 * np.pi, count, endpoint=False)
    cx, cy = center
    return np.column_stack([cx + radius * np.cos(angles), cy + radius * np.sin(angles)])
