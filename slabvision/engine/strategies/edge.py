"""Edge strategy — Sobel edges sealed by closing, then a ray-cast walk from the seed."""

from __future__ import annotations

import logging

from slabvision.engine.deadline import Deadline
from slabvision.engine.errors import SegmentationFailure
from slabvision.engine.strategies.base import DetectionStrategy, Segmentation, check_region
from slabvision.utils.boundary import ray_cast
from slabvision.utils.contour import drop_repeats
from slabvision.utils.filters import binary_threshold, equalize_histogram, gaussian_blur, sobel_magnitude
from slabvision.utils.morphology import closing, grow_into_band, region_grow
from slabvision.utils.raster import Raster

logger = logging.getLogger(__name__)


class EdgeStrategy(DetectionStrategy):
    name = "edge"

    def edge_map(self, raster: Raster):
        gray = equalize_histogram(raster.grayscale())
        blurred = gaussian_blur(gray, self.options.blur_radius)
        return binary_threshold(sobel_magnitude(blurred), self.options.edge_threshold)

    def _kernels(self) -> list[int]:
        k = self.options.edge_close_kernel
        return [k, k + 2 * self.options.edge_kernel_step]

    def _segment(self, raster: Raster, seed: tuple[int, int], deadline: Deadline) -> Segmentation:
        opts = self.options
        sx, sy = seed
        edges = self.edge_map(raster)
        deadline.check()

        last_error = "no kernel tried"
        for kernel in self._kernels():
            sealed = closing(edges, kernel)
            if sealed[sy, sx]:
                last_error = f"seed lies on an edge (kernel {kernel})"
                continue

            region = region_grow(~sealed, seed, opts.connectivity, deadline)
            try:
                check_region(region, opts)
            except SegmentationFailure as e:
                last_error = f"{e} (kernel {kernel})"
                logger.debug("  edge kernel %d leaked: %s", kernel, e)
                continue
            region = grow_into_band(region, sealed)

            cast = ray_cast(
                region,
                (sx, sy),
                angle_step_deg=opts.angle_step_deg,
                gap_allowed_min=opts.gap_allowed_min,
                gap_allowed_max=opts.gap_allowed_max,
                continue_search_distance=opts.continue_search_distance,
                deadline=deadline,
            )
            if cast.border_fraction > opts.max_border_fraction:
                last_error = f"{cast.border_fraction:.0%} of rays ran off the image (kernel {kernel})"
                continue

            points = drop_repeats(cast.points)
            if len(points) >= opts.edge_min_points:
                return Segmentation(points=points, confidence=1.0 - cast.border_fraction)
            last_error = f"boundary of {len(points)} points below {opts.edge_min_points} (kernel {kernel})"

        raise SegmentationFailure(last_error)
