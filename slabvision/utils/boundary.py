"""Boundary extraction — Moore neighbour tracing and angular ray casting."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol

import numpy as np
from numpy.typing import NDArray

from slabvision.utils.morphology import component_at

# Clockwise on screen (y down): E, SE, S, SW, W, NW, N, NE.
_DX = (1, 1, 0, -1, -1, -1, 0, 1)
_DY = (0, 1, 1, 1, 0, -1, -1, -1)

# Search restarts here after a move in direction d: one step past the pixel we came from.
_BACKTRACK = 5

_MAX_TRACE_STEPS = 10000


class _Checkpoint(Protocol):
    def check(self) -> None: ...


def first_foreground(mask: NDArray[np.bool_]) -> tuple[int, int] | None:
    """First set pixel in raster order, as (x, y)."""
    flat = np.flatnonzero(mask)
    if len(flat) == 0:
        return None
    y, x = divmod(int(flat[0]), mask.shape[1])
    return (x, y)


def moore_trace(
    mask: NDArray[np.bool_],
    start: tuple[int, int] | None = None,
    max_steps: int = _MAX_TRACE_STEPS,
) -> NDArray[np.float64]:
    """Walk the outer perimeter of the blob containing ``start``.

    ``start`` must be a boundary pixel reached from above-left, which the
    first foreground pixel in raster order always is. Tracing stops on
    returning to the start or after ``max_steps`` moves.
    """
    if start is None:
        start = first_foreground(mask)
    if start is None:
        return np.empty((0, 2))

    rows, cols = mask.shape
    x, y = start
    if not mask[y, x]:
        raise ValueError(f"Trace start ({x}, {y}) is not a foreground pixel")

    contour: list[tuple[int, int]] = [(x, y)]
    direction = 7
    for _ in range(max_steps):
        moved = False
        for i in range(8):
            check = (direction + i) % 8
            nx, ny = x + _DX[check], y + _DY[check]
            if 0 <= nx < cols and 0 <= ny < rows and mask[ny, nx]:
                x, y = nx, ny
                direction = (check + _BACKTRACK) % 8
                moved = True
                break
        if not moved or (x, y) == start:
            break
        contour.append((x, y))

    return np.array(contour, dtype=np.float64)


def trace_region(
    mask: NDArray[np.bool_],
    seed: tuple[int, int],
    connectivity: int = 8,
) -> NDArray[np.float64]:
    """Outer boundary of the connected component under ``seed``."""
    component = component_at(mask, seed, connectivity)
    return moore_trace(component, first_foreground(component))


@dataclass
class RayCastResult:
    points: NDArray[np.float64]
    # Rays that left the image before the mask ended
    border_hits: int
    rays: int

    @property
    def border_fraction(self) -> float:
        return self.border_hits / self.rays if self.rays else 0.0


def _cast_one(
    mask: NDArray[np.bool_],
    sx: float,
    sy: float,
    cos_t: float,
    sin_t: float,
    gap_allowed_min: int,
    gap_allowed_max: int,
    continue_search_distance: int,
) -> tuple[tuple[float, float], bool]:
    rows, cols = mask.shape

    def inside(r: int) -> bool | None:
        px = int(round(sx + r * cos_t))
        py = int(round(sy + r * sin_t))
        if px < 0 or px >= cols or py < 0 or py >= rows:
            return None
        return bool(mask[py, px])

    last = 0
    gap = 0
    r = 1
    while True:
        state = inside(r)
        if state is None:
            return (sx + last * cos_t, sy + last * sin_t), gap == 0
        if state:
            last = r
            gap = 0
        else:
            gap += 1
            if gap > gap_allowed_max:
                break
            if gap > gap_allowed_min:
                resumes = any(
                    inside(r + k) for k in range(1, continue_search_distance + 1)
                )
                if not resumes:
                    break
        r += 1

    return (sx + last * cos_t, sy + last * sin_t), False


def ray_cast(
    mask: NDArray[np.bool_],
    seed: tuple[float, float],
    angle_step_deg: float = 1.0,
    gap_allowed_min: int = 5,
    gap_allowed_max: int = 20,
    continue_search_distance: int = 30,
    deadline: _Checkpoint | None = None,
) -> RayCastResult:
    """Sweep rays from ``seed`` and record where the mask ends on each.

    Gaps of up to ``gap_allowed_min`` pixels are always crossed. Longer gaps,
    up to ``gap_allowed_max``, are crossed only if the mask resumes within
    ``continue_search_distance`` pixels. The point recorded per angle is the
    last confirmed inside pixel, so the output is ordered by angle.
    """
    sx, sy = seed
    steps = max(1, int(round(360.0 / angle_step_deg)))
    points = np.empty((steps, 2))
    border_hits = 0

    for i in range(steps):
        if deadline is not None:
            deadline.check()
        theta = 2 * math.pi * i / steps
        point, hit_border = _cast_one(
            mask,
            sx,
            sy,
            math.cos(theta),
            math.sin(theta),
            gap_allowed_min,
            gap_allowed_max,
            continue_search_distance,
        )
        points[i] = point
        if hit_border:
            border_hits += 1

    return RayCastResult(points=points, border_hits=border_hits, rays=steps)
