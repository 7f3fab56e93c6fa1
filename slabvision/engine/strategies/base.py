"""DetectionStrategy — shared detect() contract for every segmentation family.

Subclasses implement ``_segment`` and signal trouble by raising
SegmentationFailure. ``detect`` turns that into a fallback-flagged result,
so a strategy never raises for segmentation problems.
"""

from __future__ import annotations

import abc
import logging
import time
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from slabvision.engine.config import DetectionOptions
from slabvision.engine.context import ContourResult
from slabvision.engine.coordinates import CoordinateSystem
from slabvision.engine.deadline import Deadline
from slabvision.engine.errors import SegmentationFailure
from slabvision.engine.postprocess import postprocess_contour
from slabvision.utils.contour import circle_contour
from slabvision.utils.morphology import dilate, touches_all_borders
from slabvision.utils.raster import Raster

logger = logging.getLogger(__name__)

# Intensity gap (0..255) between region and surroundings that counts as full confidence.
_FULL_CONTRAST = 64.0
_RING_KERNEL = 7


@dataclass
class Segmentation:
    """Raw boundary produced by a strategy before post-processing."""

    points: NDArray[np.float64]
    confidence: float = 1.0
    # True when the strategy substituted a stand-in shape for a failed region
    substituted: bool = False
    note: str | None = None


def contrast_confidence(gray: NDArray[np.float64], mask: NDArray[np.bool_]) -> float:
    """How strongly the masked region stands out from a thin ring around it."""
    ring = dilate(mask, _RING_KERNEL) & ~mask
    if not mask.any() or not ring.any():
        return 0.0
    diff = abs(float(gray[mask].mean()) - float(gray[ring].mean()))
    return min(1.0, diff / _FULL_CONTRAST)


def check_region(mask: NDArray[np.bool_], options: DetectionOptions) -> None:
    """Reject regions that flooded into the background."""
    if touches_all_borders(mask):
        raise SegmentationFailure("region touches every image border")
    fraction = float(mask.mean())
    if fraction > options.max_region_fraction:
        raise SegmentationFailure(f"region covers {fraction:.0%} of the image")


class DetectionStrategy(abc.ABC):
    """One segmentation family, configured by DetectionOptions."""

    name: str = ""

    def __init__(self, options: DetectionOptions | None = None) -> None:
        self.options = options or DetectionOptions()

    @abc.abstractmethod
    def _segment(self, raster: Raster, seed: tuple[int, int], deadline: Deadline) -> Segmentation:
        """Produce a raw boundary around ``seed`` or raise SegmentationFailure."""

    def fallback_radius(self, raster: Raster) -> float:
        return self.options.fallback_radius_fraction * min(raster.width, raster.height)

    def fallback(
        self,
        raster: Raster,
        seed: tuple[int, int],
        coords: CoordinateSystem,
        failure: str,
    ) -> ContourResult:
        points = circle_contour(seed, self.fallback_radius(raster), self.options.fallback_points)
        return ContourResult.build(
            points,
            coords,
            strategy=self.name,
            confidence=0.0,
            is_fallback=True,
            failure=failure,
        )

    def detect(
        self,
        raster: Raster,
        seed: tuple[int, int],
        coords: CoordinateSystem,
        deadline: Deadline | None = None,
    ) -> ContourResult:
        deadline = deadline or Deadline.unlimited()
        sx, sy = int(seed[0]), int(seed[1])
        t0 = time.perf_counter()
        try:
            if not raster.contains(sx, sy):
                raise SegmentationFailure(f"seed ({sx}, {sy}) outside the image")
            seg = self._segment(raster, (sx, sy), deadline)
            # Stand-in shapes are already clean circles
            contour = seg.points if seg.substituted else postprocess_contour(seg.points, self.options)
            if len(contour) < 3:
                raise SegmentationFailure(f"boundary too short ({len(contour)} points)")
            result = ContourResult.build(
                contour,
                coords,
                strategy=self.name,
                confidence=0.0 if seg.substituted else seg.confidence,
                is_fallback=seg.substituted,
                failure=seg.note,
            )
        except SegmentationFailure as e:
            logger.warning("  %s FAILED: %s", self.name, e)
            return self.fallback(raster, (sx, sy), coords, str(e))

        elapsed = (time.perf_counter() - t0) * 1000
        logger.debug("  %s completed in %.1fms (%d points)", self.name, elapsed, result.point_count)
        return result
