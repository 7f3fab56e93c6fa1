"""Contour orchestrator — tries strategies in preference order and validates results."""

from __future__ import annotations

import logging
import time

from slabvision.engine.config import DetectionOptions
from slabvision.engine.context import ContourResult, DetectionReport
from slabvision.engine.coordinates import CoordinateSystem
from slabvision.engine.deadline import Deadline
from slabvision.engine.errors import CalibrationError, TimeoutExceeded
from slabvision.engine.registry import StrategyRegistry, create_default_registry
from slabvision.engine.strategies import DetectionStrategy
from slabvision.utils.contour import circle_contour
from slabvision.utils.raster import Raster

logger = logging.getLogger(__name__)

FALLBACK_STRATEGY = "fallback"


class ContourOrchestrator:
    """Runs the configured strategies until one yields an acceptable contour.

    ``detect`` never raises for segmentation trouble or timeouts; it returns
    the synthetic fallback disk instead. Only CalibrationError escapes.
    """

    def __init__(
        self,
        registry: StrategyRegistry | None = None,
        options: DetectionOptions | None = None,
    ) -> None:
        self.registry = registry or create_default_registry()
        self.options = options or DetectionOptions()
        # Fail fast on unknown names rather than on the first detect call
        self._specs = self.registry.resolve(self.options.strategy_order)
        self.last_report: DetectionReport | None = None

    def strategies(self) -> list[DetectionStrategy]:
        return [spec.create(self.options) for spec in self._specs]

    def detect(
        self,
        raster: Raster,
        seed: tuple[int, int] | None,
        coords: CoordinateSystem,
    ) -> ContourResult:
        """Detect the slab outline around ``seed`` (image centre when None)."""
        start = time.perf_counter()
        report = DetectionReport()
        self.last_report = report
        deadline = Deadline(self.options.timeout_ms)

        seed = self.clamp_seed(raster, seed)
        scale = self.downscale_factor(raster)
        work = raster.resized(scale)
        work_seed = self.clamp_seed(work, (seed[0] * scale, seed[1] * scale))
        report.downscale = scale

        logger.info(
            "Contour detection: %d strategies queued, seed (%d, %d), scale %.3f",
            len(self._specs),
            seed[0],
            seed[1],
            scale,
        )

        result: ContourResult | None = None
        try:
            for spec in self._specs:
                deadline.check()
                report.attempted.append(spec.name)
                t0 = time.perf_counter()
                try:
                    candidate = spec.create(self.options).detect(work, work_seed, coords, deadline)
                except (CalibrationError, TimeoutExceeded):
                    raise
                except Exception as e:
                    report.errors[spec.name] = str(e)
                    logger.warning("  %s FAILED: %s", spec.name, e)
                    continue
                finally:
                    report.timings_ms[spec.name] = (time.perf_counter() - t0) * 1000

                reason = self.rejection_reason(candidate, scale)
                if reason is None:
                    result = candidate if scale == 1.0 else candidate.scaled(1.0 / scale, coords)
                    logger.debug("  %s accepted in %.1fms", spec.name, report.timings_ms[spec.name])
                    break
                report.errors[spec.name] = reason
                logger.warning("  %s rejected: %s", spec.name, reason)
        except TimeoutExceeded as e:
            report.timed_out = True
            report.errors["timeout"] = str(e)
            logger.warning("Contour detection FAILED: %s", e)

        if result is None:
            result = self.fallback(raster, seed, coords)

        report.result = result
        report.elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Contour detection complete: %s, %d points in %.0fms",
            result.strategy,
            result.point_count,
            report.elapsed_ms,
        )
        return result

    def rejection_reason(self, candidate: ContourResult, scale: float = 1.0) -> str | None:
        """Why ``candidate`` is not good enough, or None if it is."""
        if candidate.is_fallback:
            return candidate.failure or "strategy returned its fallback shape"
        if candidate.point_count < self.options.min_points:
            return f"contour of {candidate.point_count} points below {self.options.min_points}"
        min_area = self.options.min_area_pixels * scale * scale
        if candidate.pixel_area < min_area:
            return f"contour area {candidate.pixel_area:.0f}px² below {min_area:.0f}px²"
        return None

    def fallback(self, raster: Raster, seed: tuple[int, int], coords: CoordinateSystem) -> ContourResult:
        """Deterministic disk around the seed, flagged for manual correction."""
        radius = self.options.fallback_radius_fraction * min(raster.width, raster.height)
        return ContourResult.build(
            circle_contour(seed, radius, self.options.fallback_points),
            coords,
            strategy=FALLBACK_STRATEGY,
            confidence=0.0,
            is_fallback=True,
            failure="all strategies failed",
        )

    def downscale_factor(self, raster: Raster) -> float:
        longest = max(raster.width, raster.height)
        if self.options.max_image_size and longest > self.options.max_image_size:
            return self.options.max_image_size / longest
        return 1.0

    @staticmethod
    def clamp_seed(raster: Raster, seed: tuple[float, float] | None) -> tuple[int, int]:
        if seed is None:
            return (raster.width // 2, raster.height // 2)
        x = min(max(int(round(seed[0])), 0), raster.width - 1)
        y = min(max(int(round(seed[1])), 0), raster.height - 1)
        return (x, y)
