"""Multi-tap detection — separate a slab from a similar-coloured spoilboard.

The user taps a few points on the slab and on the background. Each tap
averages the colour over a small square; a pixel belongs to the slab when it
is nearer the slab colour than the background colour and within a threshold
derived from the samples' separation and spread.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from slabvision.engine.config import DetectionOptions
from slabvision.engine.context import ContourResult
from slabvision.engine.coordinates import CoordinateSystem
from slabvision.engine.deadline import Deadline
from slabvision.engine.errors import TimeoutExceeded
from slabvision.engine.postprocess import postprocess_contour
from slabvision.utils.boundary import ray_cast
from slabvision.utils.contour import circle_contour, drop_repeats
from slabvision.utils.morphology import closing, opening
from slabvision.utils.raster import Raster

logger = logging.getLogger(__name__)

_SAMPLE_RADIUS = 5
_THRESHOLD_MULTIPLIER = 1.5
# Threshold when only slab taps exist: this many slab standard deviations.
_SLAB_ONLY_SPREAD = 3.0
_CLOSE_KERNEL = 3
_OPEN_KERNEL = 2
_SIMPLIFY_EPSILON = 5.0
_SMOOTHING_WINDOW = 7

STRATEGY_NAME = "multitap"


@dataclass(frozen=True)
class RegionSample:
    """Mean colour and RMS spread of the square around a tap."""

    x: int
    y: int
    color: tuple[float, float, float]
    spread: float

    @classmethod
    def from_tap(cls, rgb: NDArray[np.float64], tap: tuple[int, int], radius: int = _SAMPLE_RADIUS) -> RegionSample:
        rows, cols = rgb.shape[:2]
        # Taps off the image edge sample the nearest edge pixel
        x = min(max(int(round(tap[0])), 0), cols - 1)
        y = min(max(int(round(tap[1])), 0), rows - 1)
        patch = rgb[max(0, y - radius) : y + radius + 1, max(0, x - radius) : x + radius + 1].reshape(-1, 3)
        mean = patch.mean(axis=0)
        spread = float(np.sqrt(np.mean(np.sum((patch - mean) ** 2, axis=1))))
        return cls(x, y, (float(mean[0]), float(mean[1]), float(mean[2])), spread)


def _pooled(samples: Sequence[RegionSample]) -> tuple[NDArray[np.float64], float]:
    colors = np.array([s.color for s in samples])
    return colors.mean(axis=0), float(np.mean([s.spread for s in samples]))


def slab_mask(
    rgb: NDArray[np.float64],
    slab: Sequence[RegionSample],
    background: Sequence[RegionSample],
    multiplier: float = _THRESHOLD_MULTIPLIER,
) -> tuple[NDArray[np.bool_], float]:
    """Binary slab mask and the colour-distance threshold used to build it."""
    slab_color, slab_spread = _pooled(slab)
    dist_slab = np.linalg.norm(rgb - slab_color, axis=2)

    if not background:
        threshold = max(slab_spread, 1.0) * _SLAB_ONLY_SPREAD
        return dist_slab < threshold, threshold

    bg_color, bg_spread = _pooled(background)
    base = float(np.linalg.norm(slab_color - bg_color))
    threshold = (base * 0.5 + (slab_spread + bg_spread) / 2) * multiplier
    dist_bg = np.linalg.norm(rgb - bg_color, axis=2)
    return (dist_slab < dist_bg) & (dist_slab < threshold), threshold


def detect_from_samples(
    raster: Raster,
    slab_taps: Sequence[tuple[int, int]],
    background_taps: Sequence[tuple[int, int]],
    coords: CoordinateSystem,
    options: DetectionOptions | None = None,
) -> ContourResult:
    """Outline the slab from user colour samples; falls back to a disk on failure or timeout."""
    if not slab_taps:
        raise ValueError("At least one slab tap is required")
    options = options or DetectionOptions()
    deadline = Deadline(options.timeout_ms)

    rgb = raster.rgb()
    slab = [RegionSample.from_tap(rgb, t) for t in slab_taps]
    background = [RegionSample.from_tap(rgb, t) for t in background_taps]

    seed_x = int(round(np.mean([s.x for s in slab])))
    seed_y = int(round(np.mean([s.y for s in slab])))

    mask, threshold = slab_mask(rgb, slab, background)
    mask = opening(closing(mask, _CLOSE_KERNEL), _OPEN_KERNEL)
    logger.debug("Multi-tap threshold %.1f, %d slab pixels", threshold, int(mask.sum()))

    if not mask[seed_y, seed_x]:
        failure = "slab samples' centroid is not on the slab mask"
    else:
        try:
            cast = ray_cast(
                mask,
                (seed_x, seed_y),
                angle_step_deg=options.angle_step_deg,
                gap_allowed_min=options.gap_allowed_min,
                gap_allowed_max=options.gap_allowed_max,
                continue_search_distance=options.continue_search_distance,
                deadline=deadline,
            )
        except TimeoutExceeded as e:
            failure = str(e)
        else:
            contour = postprocess_contour(
                drop_repeats(cast.points), options, epsilon=_SIMPLIFY_EPSILON, window=_SMOOTHING_WINDOW
            )
            if len(contour) >= options.min_points:
                return ContourResult.build(
                    contour, coords, strategy=STRATEGY_NAME, confidence=1.0 - cast.border_fraction
                )
            failure = f"boundary of {len(contour)} points"

    logger.warning("  %s FAILED: %s", STRATEGY_NAME, failure)
    radius = options.fallback_radius_fraction * min(raster.width, raster.height)
    return ContourResult.build(
        circle_contour((seed_x, seed_y), radius, options.fallback_points),
        coords,
        strategy=STRATEGY_NAME,
        confidence=0.0,
        is_fallback=True,
        failure=failure,
    )
