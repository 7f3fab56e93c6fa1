"""Threshold strategy — Otsu split plus luminance/RGB region growing from the seed."""

from __future__ import annotations

import numpy as np

from slabvision.engine.deadline import Deadline
from slabvision.engine.strategies.base import (
    DetectionStrategy,
    Segmentation,
    check_region,
    contrast_confidence,
)
from slabvision.utils.boundary import trace_region
from slabvision.utils.contour import circle_contour
from slabvision.utils.filters import otsu_threshold
from slabvision.utils.morphology import closing, fill_holes, region_grow
from slabvision.utils.raster import Raster

# Tolerance multipliers on region_grow_threshold for the two similarity tests.
_LUMA_FACTOR = 2.0
_RGB_FACTOR = 3.5

# Stand-in disk radius, as a fraction of the shorter image side.
_SMALL_REGION_DISK = 1 / 6


class ThresholdStrategy(DetectionStrategy):
    name = "threshold"

    def _segment(self, raster: Raster, seed: tuple[int, int], deadline: Deadline) -> Segmentation:
        opts = self.options
        sx, sy = seed
        gray = raster.grayscale()
        rgb = raster.rgb()

        level = otsu_threshold(gray)
        seed_gray = gray[sy, sx]
        same_side = (gray > level) == (seed_gray > level)

        t = opts.region_grow_threshold
        luma_ok = np.abs(gray - seed_gray) <= _LUMA_FACTOR * t
        rgb_ok = np.linalg.norm(rgb - rgb[sy, sx], axis=2) <= _RGB_FACTOR * t
        admissible = same_side & (luma_ok | rgb_ok)

        region = region_grow(admissible, seed, opts.connectivity, deadline)
        deadline.check()

        size = int(region.sum())
        if size < opts.min_region_pixels:
            radius = _SMALL_REGION_DISK * min(raster.width, raster.height)
            return Segmentation(
                points=circle_contour(seed, radius, opts.fallback_points),
                confidence=0.0,
                substituted=True,
                note=f"region of {size} pixels below {opts.min_region_pixels}",
            )

        mask = fill_holes(closing(region, opts.threshold_close_kernel))
        check_region(mask, opts)

        boundary = trace_region(mask, seed, opts.connectivity)
        return Segmentation(points=boundary, confidence=contrast_confidence(gray, mask))
