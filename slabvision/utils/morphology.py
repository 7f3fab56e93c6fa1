"""Binary mask operations — closing/opening, component labelling, region growing."""

from __future__ import annotations

from collections import deque
from typing import Protocol

import numpy as np
from numpy.typing import NDArray
from scipy import ndimage

# Queue pops between cancellation checks while growing a region.
_CHECK_INTERVAL = 4096

_NEIGHBOURS_8 = ((1, 0), (1, 1), (0, 1), (-1, 1), (-1, 0), (-1, -1), (0, -1), (1, -1))
_NEIGHBOURS_4 = ((1, 0), (0, 1), (-1, 0), (0, -1))


class _Checkpoint(Protocol):
    def check(self) -> None: ...


def _square(kernel_size: int) -> NDArray[np.bool_]:
    return np.ones((kernel_size, kernel_size), dtype=bool)


def _structure(connectivity: int) -> NDArray[np.bool_]:
    if connectivity not in (4, 8):
        raise ValueError(f"connectivity must be 4 or 8, got {connectivity}")
    return ndimage.generate_binary_structure(2, 2 if connectivity == 8 else 1)


def dilate(mask: NDArray[np.bool_], kernel_size: int = 3) -> NDArray[np.bool_]:
    """Binary dilation with square kernel."""
    if kernel_size <= 1:
        return mask.astype(bool, copy=True)
    return ndimage.binary_dilation(mask, structure=_square(kernel_size))


def erode(mask: NDArray[np.bool_], kernel_size: int = 3) -> NDArray[np.bool_]:
    """Binary erosion with square kernel. Pixels beyond the border count as set."""
    if kernel_size <= 1:
        return mask.astype(bool, copy=True)
    return ndimage.binary_erosion(mask, structure=_square(kernel_size), border_value=1)


def closing(mask: NDArray[np.bool_], kernel_size: int = 5) -> NDArray[np.bool_]:
    """Binary morphological close (dilate then erode) to bridge small gaps.

    The mask is padded first so regions touching the border are not eaten
    by the erosion.
    """
    if kernel_size <= 1:
        return mask.astype(bool, copy=True)
    pad = kernel_size
    padded = np.pad(mask.astype(bool), pad, mode="edge")
    closed = ndimage.binary_erosion(
        ndimage.binary_dilation(padded, structure=_square(kernel_size)),
        structure=_square(kernel_size),
        border_value=1,
    )
    return closed[pad:-pad, pad:-pad]


def opening(mask: NDArray[np.bool_], kernel_size: int = 3) -> NDArray[np.bool_]:
    """Binary morphological open (erode then dilate) to drop specks."""
    if kernel_size <= 1:
        return mask.astype(bool, copy=True)
    return dilate(erode(mask, kernel_size), kernel_size)


def fill_holes(mask: NDArray[np.bool_]) -> NDArray[np.bool_]:
    return ndimage.binary_fill_holes(mask)


def grow_into_band(region: NDArray[np.bool_], band: NDArray[np.bool_]) -> NDArray[np.bool_]:
    """Extend ``region`` over the band pixels nearer to it than to the rest of the image.

    Fills stopped by a thick edge band end on the band's inner side; this
    moves the boundary to the middle of the band.
    """
    if not region.any():
        return region.copy()
    outside = ~band & ~region
    if not outside.any():
        return region | band
    to_region = ndimage.distance_transform_edt(~region)
    to_outside = ndimage.distance_transform_edt(~outside)
    return region | (band & (to_region <= to_outside))


def connected_components(
    mask: NDArray[np.bool_],
    connectivity: int = 8,
) -> tuple[NDArray[np.int32], int]:
    """Label connected components. Background is 0."""
    labels, count = ndimage.label(mask, structure=_structure(connectivity))
    return labels.astype(np.int32), int(count)


def component_at(
    mask: NDArray[np.bool_],
    seed: tuple[int, int],
    connectivity: int = 8,
) -> NDArray[np.bool_]:
    """The component containing ``seed``; the nearest component if the seed is background."""
    labels, count = connected_components(mask, connectivity)
    if count == 0:
        return np.zeros_like(mask, dtype=bool)

    x, y = seed
    label = int(labels[y, x])
    if label == 0:
        ys, xs = np.nonzero(labels)
        nearest = int(np.argmin((xs - x) ** 2 + (ys - y) ** 2))
        label = int(labels[ys[nearest], xs[nearest]])
    return labels == label


def largest_component(mask: NDArray[np.bool_], connectivity: int = 8) -> NDArray[np.bool_]:
    labels, count = connected_components(mask, connectivity)
    if count == 0:
        return np.zeros_like(mask, dtype=bool)
    sizes = np.bincount(labels.ravel())
    sizes[0] = 0
    return labels == int(np.argmax(sizes))


def region_grow(
    admissible: NDArray[np.bool_],
    seed: tuple[int, int],
    connectivity: int = 8,
    deadline: _Checkpoint | None = None,
    max_pixels: int | None = None,
) -> NDArray[np.bool_]:
    """Breadth-first fill from ``seed`` through admissible pixels.

    The seed itself is always part of the region. The fill stops early once
    ``max_pixels`` pixels have been taken.
    """
    rows, cols = admissible.shape
    x0, y0 = seed
    if not (0 <= x0 < cols and 0 <= y0 < rows):
        raise ValueError(f"Seed ({x0}, {y0}) outside {cols}x{rows} mask")

    if connectivity not in (4, 8):
        raise ValueError(f"connectivity must be 4 or 8, got {connectivity}")
    neighbours = _NEIGHBOURS_8 if connectivity == 8 else _NEIGHBOURS_4

    visited = np.zeros((rows, cols), dtype=bool)
    region = np.zeros((rows, cols), dtype=bool)
    visited[y0, x0] = True
    region[y0, x0] = True
    taken = 1

    queue: deque[tuple[int, int]] = deque([(x0, y0)])
    pops = 0
    while queue:
        x, y = queue.popleft()
        pops += 1
        if deadline is not None and pops % _CHECK_INTERVAL == 0:
            deadline.check()

        for dx, dy in neighbours:
            nx, ny = x + dx, y + dy
            if nx < 0 or nx >= cols or ny < 0 or ny >= rows or visited[ny, nx]:
                continue
            visited[ny, nx] = True
            if admissible[ny, nx]:
                region[ny, nx] = True
                taken += 1
                queue.append((nx, ny))
                if max_pixels is not None and taken >= max_pixels:
                    return region
    return region


def disk_mask(shape: tuple[int, int], center: tuple[float, float], radius: float) -> NDArray[np.bool_]:
    """Filled disk on a (rows, cols) grid."""
    rows, cols = shape
    yy, xx = np.mgrid[0:rows, 0:cols]
    cx, cy = center
    return (xx - cx) ** 2 + (yy - cy) ** 2 <= radius**2


def touches_all_borders(mask: NDArray[np.bool_]) -> bool:
    return bool(mask[0, :].any() and mask[-1, :].any() and mask[:, 0].any() and mask[:, -1].any())


def perimeter(mask: NDArray[np.bool_]) -> NDArray[np.bool_]:
    """Set pixels with an unset 8-neighbour; the image edge counts as unset."""
    return mask & ~ndimage.binary_erosion(mask, structure=_square(3), border_value=0)
