"""Color strategy — region growing on weighted HSV distance from the seed colour."""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from skimage.color import rgb2hsv

from slabvision.engine.deadline import Deadline
from slabvision.engine.errors import SegmentationFailure
from slabvision.engine.strategies.base import (
    DetectionStrategy,
    Segmentation,
    check_region,
    contrast_confidence,
)
from slabvision.utils.boundary import trace_region
from slabvision.utils.morphology import closing, fill_holes, region_grow
from slabvision.utils.raster import Raster

# Channel weights on hue / saturation / value differences.
_HUE_WEIGHT = 0.5
_SAT_WEIGHT = 0.3
_VAL_WEIGHT = 0.2


def hsv_distance(hsv: NDArray[np.float64], reference: NDArray[np.float64]) -> NDArray[np.float64]:
    """Weighted HSV distance in 0..1; hue (degrees) is compared around the circle."""
    dh = np.abs(hsv[..., 0] - reference[0])
    dh = np.minimum(dh, 360.0 - dh) / 180.0
    ds = np.abs(hsv[..., 1] - reference[1])
    dv = np.abs(hsv[..., 2] - reference[2])
    return _HUE_WEIGHT * dh + _SAT_WEIGHT * ds + _VAL_WEIGHT * dv


def to_hsv(raster: Raster) -> NDArray[np.float64]:
    """HSV with hue in degrees and saturation/value in 0..1."""
    hsv = rgb2hsv(raster.rgb() / 255.0)
    hsv[..., 0] *= 360.0
    return hsv


class ColorStrategy(DetectionStrategy):
    name = "color"

    def _segment(self, raster: Raster, seed: tuple[int, int], deadline: Deadline) -> Segmentation:
        opts = self.options
        sx, sy = seed
        hsv = to_hsv(raster)
        admissible = hsv_distance(hsv, hsv[sy, sx]) < opts.color_threshold / 100.0

        region = region_grow(admissible, seed, opts.connectivity, deadline)
        deadline.check()
        size = int(region.sum())
        if size < opts.min_region_pixels:
            raise SegmentationFailure(f"colour region of {size} pixels below {opts.min_region_pixels}")

        mask = fill_holes(closing(region, opts.color_close_kernel))
        check_region(mask, opts)

        boundary = trace_region(mask, seed, opts.connectivity)
        return Segmentation(points=boundary, confidence=contrast_confidence(raster.grayscale(), mask))
