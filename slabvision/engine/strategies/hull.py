"""Hull strategy — convex hull of the seed's component across several binarisations.

Candidate masks are a ladder of fixed levels, nearest the Otsu split first,
each opened to drop specks, then the adaptive threshold. The first
candidate whose component under the seed does not flood the image is hulled.
"""

from __future__ import annotations

import logging

import numpy as np
from numpy.typing import NDArray

from slabvision.engine.deadline import Deadline
from slabvision.engine.errors import SegmentationFailure
from slabvision.engine.strategies.base import (
    DetectionStrategy,
    Segmentation,
    check_region,
    contrast_confidence,
)
from slabvision.utils.contour import resample_closed
from slabvision.utils.filters import adaptive_threshold, binary_threshold, gaussian_blur, otsu_threshold
from slabvision.utils.geometry import convex_hull
from slabvision.utils.morphology import component_at, fill_holes, opening, perimeter
from slabvision.utils.raster import Raster

logger = logging.getLogger(__name__)

# Hull vertices are spread to this many points before simplification.
_HULL_SAMPLES = 40


class HullStrategy(DetectionStrategy):
    name = "hull"

    def candidate_masks(self, gray: NDArray[np.float64]) -> list[tuple[str, NDArray[np.bool_]]]:
        opts = self.options
        split = otsu_threshold(gray)
        masks = []
        for level in sorted(opts.threshold_levels, key=lambda lv: abs(lv - split)):
            dark = opening(binary_threshold(gray, level, invert=True), opts.hull_open_kernel)
            masks.append((f"level {level}", dark))
            masks.append((f"level {level} inverted", ~dark))
        masks.append(("adaptive", adaptive_threshold(gray, opts.adaptive_block_size, opts.adaptive_c)))
        return masks

    def _segment(self, raster: Raster, seed: tuple[int, int], deadline: Deadline) -> Segmentation:
        opts = self.options
        sx, sy = seed
        gray = gaussian_blur(raster.grayscale(), opts.blur_radius)

        best: NDArray[np.bool_] | None = None
        best_label = ""
        for label, mask in self.candidate_masks(gray):
            deadline.check()
            if not mask[sy, sx]:
                continue
            component = fill_holes(component_at(mask, seed, opts.connectivity))
            size = int(component.sum())
            if size < opts.min_region_pixels:
                continue
            try:
                check_region(component, opts)
            except SegmentationFailure:
                continue
            best = component
            best_label = label
            break

        if best is None:
            raise SegmentationFailure("no binarisation isolates a region under the seed")

        logger.debug("  hull: using %s mask (%d pixels)", best_label, int(best.sum()))
        # Only perimeter pixels can be hull vertices
        ys, xs = np.nonzero(perimeter(best))
        hull = convex_hull(np.column_stack([xs, ys]).astype(np.float64))
        if len(hull) < 3:
            raise SegmentationFailure("degenerate hull")
        return Segmentation(
            points=resample_closed(hull, _HULL_SAMPLES),
            confidence=contrast_confidence(gray, best),
        )
