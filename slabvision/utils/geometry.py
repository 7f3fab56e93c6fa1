"""Leaf-node geometry helpers. No engine imports.

Polygons are (n, 2) arrays of (x, y) and are implicitly closed: the last
point connects back to the first without being repeated.
"""

from __future__ import annotations

import math

import numpy as np
from numpy.typing import NDArray

_EPS = 1e-10


def as_points(points: NDArray[np.float64] | list[tuple[float, float]]) -> NDArray[np.float64]:
    """Coerce a point list to an (n, 2) float array."""
    arr = np.asarray(points, dtype=np.float64)
    if arr.size == 0:
        return np.empty((0, 2))
    return arr.reshape(-1, 2)


def cross(o: NDArray[np.float64], a: NDArray[np.float64], b: NDArray[np.float64]) -> float:
    """Z component of (a - o) × (b - o). Positive = left turn in y-up axes."""
    return float((a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0]))


def signed_area(points: NDArray[np.float64]) -> float:
    """Shoelace formula for signed area of the closed polygon."""
    if len(points) < 3:
        return 0.0
    x = points[:, 0]
    y = points[:, 1]
    return float(0.5 * np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y))


def polygon_area(points: NDArray[np.float64]) -> float:
    return abs(signed_area(points))


def polygon_perimeter(points: NDArray[np.float64], closed: bool = True) -> float:
    if len(points) < 2:
        return 0.0
    pts = np.vstack([points, points[:1]]) if closed else points
    return float(np.sum(np.linalg.norm(np.diff(pts, axis=0), axis=1)))


def mean_point(points: NDArray[np.float64]) -> tuple[float, float]:
    """Vertex mean of a point set."""
    if len(points) == 0:
        return (0.0, 0.0)
    return (float(np.mean(points[:, 0])), float(np.mean(points[:, 1])))


def polygon_centroid(points: NDArray[np.float64]) -> tuple[float, float]:
    """Area-weighted centroid. Degenerate polygons fall back to the vertex mean."""
    a = signed_area(points)
    if abs(a) < _EPS:
        return mean_point(points)
    x = points[:, 0]
    y = points[:, 1]
    xn = np.roll(x, -1)
    yn = np.roll(y, -1)
    f = x * yn - xn * y
    cx = float(np.sum((x + xn) * f) / (6.0 * a))
    cy = float(np.sum((y + yn) * f) / (6.0 * a))
    return (cx, cy)


def bbox(points: NDArray[np.float64]) -> tuple[float, float, float, float]:
    """Compute (xmin, ymin, xmax, ymax) bounding box."""
    if len(points) == 0:
        return (0.0, 0.0, 0.0, 0.0)
    return (
        float(np.min(points[:, 0])),
        float(np.min(points[:, 1])),
        float(np.max(points[:, 0])),
        float(np.max(points[:, 1])),
    )


def arc_lengths(points: NDArray[np.float64]) -> NDArray[np.float64]:
    """Cumulative arc-length along a point sequence."""
    diffs = np.diff(points, axis=0)
    segment_lengths = np.sqrt(np.sum(diffs**2, axis=1))
    return np.concatenate([[0.0], np.cumsum(segment_lengths)])


def turning_angles(points: NDArray[np.float64], span: int = 1) -> NDArray[np.float64]:
    """Signed turn at every vertex of the closed polygon, in radians.

    Entry i is the angle between (p[i] - p[i-span]) and (p[i+span] - p[i]).
    """
    if len(points) < 3:
        return np.zeros(len(points))
    incoming = points - np.roll(points, span, axis=0)
    outgoing = np.roll(points, -span, axis=0) - points
    crs = incoming[:, 0] * outgoing[:, 1] - incoming[:, 1] * outgoing[:, 0]
    dot = incoming[:, 0] * outgoing[:, 0] + incoming[:, 1] * outgoing[:, 1]
    return np.arctan2(crs, dot)


def point_in_polygon(point: tuple[float, float], polygon_points: NDArray[np.float64]) -> bool:
    """Ray-casting parity test. Points exactly on an edge may land either side."""
    px, py = point
    n = len(polygon_points)
    if n < 3:
        return False

    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = polygon_points[i]
        xj, yj = polygon_points[j]
        if (yi > py) != (yj > py):
            x_cross = (xj - xi) * (py - yi) / (yj - yi) + xi
            if px < x_cross:
                inside = not inside
        j = i
    return inside


def perpendicular_distance(
    point: NDArray[np.float64],
    start: NDArray[np.float64],
    end: NDArray[np.float64],
) -> float:
    """Distance from ``point`` to the line through start/end (to start if they coincide)."""
    line = end - start
    length = math.hypot(line[0], line[1])
    if length < _EPS:
        return float(math.hypot(point[0] - start[0], point[1] - start[1]))
    return abs(cross(start, end, point)) / length


def segment_intersection(
    p1: tuple[float, float],
    p2: tuple[float, float],
    p3: tuple[float, float],
    p4: tuple[float, float],
) -> tuple[float, float] | None:
    """Intersection of segments p1-p2 and p3-p4, or None.

    Parallel (including collinear) segments return None.
    """
    x1, y1 = p1
    x2, y2 = p2
    x3, y3 = p3
    x4, y4 = p4

    det = (x1 - x2) * (y3 - y4) - (y1 - y2) * (x3 - x4)
    if abs(det) < _EPS:
        return None

    a = x1 * y2 - y1 * x2
    b = x3 * y4 - y3 * x4
    x = (a * (x3 - x4) - (x1 - x2) * b) / det
    y = (a * (y3 - y4) - (y1 - y2) * b) / det

    tol = 1e-9
    for (ax, ay), (bx, by) in (((x1, y1), (x2, y2)), ((x3, y3), (x4, y4))):
        if not (min(ax, bx) - tol <= x <= max(ax, bx) + tol):
            return None
        if not (min(ay, by) - tol <= y <= max(ay, by) + tol):
            return None
    return (x, y)


def self_intersects(points: NDArray[np.float64]) -> bool:
    """True if any two non-adjacent edges of the closed polygon cross."""
    n = len(points)
    if n < 4:
        return False
    edges = [(tuple(points[i]), tuple(points[(i + 1) % n])) for i in range(n)]
    for i in range(n):
        for j in range(i + 2, n):
            if i == 0 and j == n - 1:
                continue
            if segment_intersection(edges[i][0], edges[i][1], edges[j][0], edges[j][1]) is not None:
                return True
    return False


def convex_hull(points: NDArray[np.float64]) -> NDArray[np.float64]:
    """Graham scan.

    Pivot is the lowest-y point (leftmost on ties); the rest are sorted by
    polar angle around it, nearer first on equal angles. Non-left turns are
    popped, so collinear boundary points are dropped.
    """
    pts = np.unique(as_points(points), axis=0)
    if len(pts) < 3:
        return pts

    pivot_idx = int(np.lexsort((pts[:, 0], pts[:, 1]))[0])
    pivot = pts[pivot_idx]
    rest = np.delete(pts, pivot_idx, axis=0)

    d = rest - pivot
    angles = np.arctan2(d[:, 1], d[:, 0])
    dists = d[:, 0] ** 2 + d[:, 1] ** 2
    order = np.lexsort((dists, angles))

    closing = np.isclose(angles[order], angles[order[-1]], rtol=0.0, atol=1e-12)
    if closing.all():
        # All points on one ray from the pivot
        return np.array([pivot, rest[order[-1]]])
    # Farthest first on the closing ray so the scan ends on the extreme point
    k = int(np.argmax(closing))
    order = np.concatenate([order[:k], order[k:][::-1]])

    stack: list[NDArray[np.float64]] = [pivot]
    for idx in order:
        p = rest[idx]
        while len(stack) >= 2 and cross(stack[-2], stack[-1], p) <= 0:
            stack.pop()
        stack.append(p)

    while len(stack) >= 3 and cross(stack[-2], stack[-1], pivot) <= 0:
        stack.pop()

    return np.array(stack)
