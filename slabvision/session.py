"""Workpiece scan session — owns the calibration cache for one captured image."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from slabvision.config import Settings, load_settings
from slabvision.engine.context import ContourResult, DetectionReport, MarkerSet
from slabvision.engine.coordinates import CoordinateSystem
from slabvision.engine.errors import CalibrationError
from slabvision.engine.markers import calibrate, detect_markers, markers_from_taps
from slabvision.engine.multitap import detect_from_samples
from slabvision.engine.orchestrator import ContourOrchestrator
from slabvision.engine.perspective import Rectification, rectify
from slabvision.engine.registry import StrategyRegistry, create_default_registry
from slabvision.utils.raster import Raster

logger = logging.getLogger(__name__)


class ScanSession:
    """Image → markers → coordinate system → contour, for one workpiece.

    The MarkerSet and CoordinateSystem are cached together and replaced
    wholesale; loading a new image drops both.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        registry: StrategyRegistry | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.options = self.settings.detection_options()
        self.orchestrator = ContourOrchestrator(registry or create_default_registry(), self.options)
        self._raster: Raster | None = None
        self._calibration: tuple[MarkerSet, CoordinateSystem] | None = None

    @property
    def raster(self) -> Raster | None:
        return self._raster

    @property
    def markers(self) -> MarkerSet | None:
        return self._calibration[0] if self._calibration else None

    @property
    def coordinate_system(self) -> CoordinateSystem | None:
        return self._calibration[1] if self._calibration else None

    @property
    def last_report(self) -> DetectionReport | None:
        return self.orchestrator.last_report

    def load_image(self, raster: Raster) -> None:
        self._raster = raster
        if self._calibration is not None:
            logger.info("New image loaded, calibration invalidated")
        self._calibration = None

    def _require_raster(self) -> Raster:
        if self._raster is None:
            raise CalibrationError("No image loaded")
        return self._raster

    def _require_coords(self) -> CoordinateSystem:
        if self._calibration is None:
            raise CalibrationError("Session is not calibrated")
        return self._calibration[1]

    def calibrate(
        self,
        markers: MarkerSet | None = None,
        taps: Sequence[tuple[int, int]] | None = None,
    ) -> CoordinateSystem:
        """Calibrate from explicit markers, refined taps, or an automatic corner search."""
        raster = self._require_raster()
        system = self.settings.marker_system
        if markers is None and taps is not None:
            markers = markers_from_taps(raster, taps, system, self.options)
        elif markers is None:
            markers = detect_markers(raster, system, self.options)

        coords = calibrate(markers, self.settings.marker_distances, self.settings.anisotropic_scale)
        self._calibration = (markers, coords)
        return coords

    def rectify(self, markers: MarkerSet | None = None) -> Rectification:
        """Replace the image with its perspective-corrected version and recalibrate on it.

        Uses ``markers``, else the cached calibration's markers, else an
        automatic corner search. Contours detected afterwards are in rectified
        pixels; ``Rectification.to_capture`` maps them back.
        """
        raster = self._require_raster()
        if markers is None:
            markers = self.markers or detect_markers(raster, self.settings.marker_system, self.options)
        result = rectify(raster, markers, self.settings.marker_distances)
        self._raster = result.raster
        coords = calibrate(result.markers, self.settings.marker_distances, self.settings.anisotropic_scale)
        self._calibration = (result.markers, coords)
        return result

    def detect_contour(self, seed: tuple[int, int] | None = None) -> ContourResult:
        raster = self._require_raster()
        coords = self._require_coords()
        return self.orchestrator.detect(raster, seed, coords)

    def detect_with_samples(
        self,
        slab_taps: Sequence[tuple[int, int]],
        background_taps: Sequence[tuple[int, int]] = (),
    ) -> ContourResult:
        raster = self._require_raster()
        coords = self._require_coords()
        return detect_from_samples(raster, slab_taps, background_taps, coords, self.options)
