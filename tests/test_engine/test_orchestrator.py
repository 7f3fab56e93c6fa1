"""Tests for the contour orchestrator."""

import math

import numpy as np
import pytest

from slabvision.engine.config import DetectionOptions
from slabvision.engine.context import ContourResult
from slabvision.engine.coordinates import CoordinateSystem
from slabvision.engine.errors import CalibrationError, TimeoutExceeded
from slabvision.engine.orchestrator import FALLBACK_STRATEGY, ContourOrchestrator
from slabvision.engine.registry import StrategyKind, StrategySpec, create_default_registry
from slabvision.engine.strategies import DetectionStrategy, Segmentation
from slabvision.utils.contour import circle_contour
from slabvision.utils.geometry import polygon_centroid
from tests.conftest import disk_raster


class _Raises(DetectionStrategy):
    """Strategy whose detect raises ``error``."""

    error: Exception = RuntimeError("boom")

    def _segment(self, raster, seed, deadline):
        raise AssertionError("not reached")

    def detect(self, raster, seed, coords, deadline=None):
        raise self.error


class _TinyCircle(DetectionStrategy):
    name = "tiny"

    def _segment(self, raster, seed, deadline):
        return Segmentation(points=circle_contour(seed, 4, 40))


class _BigCircle(DetectionStrategy):
    name = "big"

    def _segment(self, raster, seed, deadline):
        return Segmentation(points=circle_contour(seed, 30, 60), confidence=0.4)


def _orchestrator(*specs, order=None, **option_changes):
    reg = create_default_registry()
    for name, factory in specs:
        reg.register(StrategySpec(name=name, kind=StrategyKind.THRESHOLD, factory=factory))
    names = order or [name for name, _ in specs]
    return ContourOrchestrator(reg, DetectionOptions(strategy_order=names, **option_changes))


def _raising(error):
    return type("Raising", (_Raises,), {"error": error, "name": "raising"})


class TestDetect:
    def test_disk_found_by_first_strategy(self, disk, identity):
        orch = ContourOrchestrator()
        result = orch.detect(disk, (100, 100), identity)

        assert result.strategy == "threshold"
        assert not result.is_fallback
        assert result.is_valid
        assert polygon_centroid(result.pixel_contour) == pytest.approx((100.0, 100.0), abs=4.0)
        assert orch.last_report.attempted == ["threshold"]
        assert not orch.last_report.used_fallback

    @pytest.mark.parametrize("fixture", ["uniform_black", "uniform_white"])
    def test_uniform_image_returns_fallback(self, fixture, request, identity):
        raster = request.getfixturevalue(fixture)
        orch = ContourOrchestrator()
        result = orch.detect(raster, (60, 60), identity)

        assert result.is_fallback
        assert result.strategy == FALLBACK_STRATEGY
        assert result.confidence == 0.0
        assert result.point_count == 37
        radii = np.linalg.norm(result.pixel_contour - [60, 60], axis=1)
        assert np.allclose(radii, 36.0)

        report = orch.last_report
        assert report.attempted == ["threshold", "edge", "color"]
        assert set(report.errors) == {"threshold", "edge", "color"}
        assert report.used_fallback

    def test_seed_defaults_to_centre(self, uniform_white, identity):
        result = ContourOrchestrator().detect(uniform_white, None, identity)
        assert polygon_centroid(result.pixel_contour) == pytest.approx((60.0, 60.0), abs=1e-6)

    def test_machine_contour_uses_coordinates(self, disk):
        coords = CoordinateSystem.isotropic((0, 200), 0.0, 0.5)
        result = ContourOrchestrator().detect(disk, (100, 100), coords)
        assert np.allclose(result.machine_contour, coords.pixels_to_machine(result.pixel_contour))
        assert result.area == pytest.approx(result.pixel_area * 0.25)

    def test_downscaled_result_in_original_pixels(self, identity):
        raster = disk_raster(400, 400, (200, 200), 100)
        orch = ContourOrchestrator(options=DetectionOptions(max_image_size=200))
        result = orch.detect(raster, (200, 200), identity)

        assert orch.last_report.downscale == pytest.approx(0.5)
        assert not result.is_fallback
        assert polygon_centroid(result.pixel_contour) == pytest.approx((200.0, 200.0), abs=6.0)
        assert 0.9 * math.pi * 100**2 < result.pixel_area < 1.05 * math.pi * 100**2

    def test_timings_recorded(self, disk, identity):
        orch = ContourOrchestrator()
        orch.detect(disk, (100, 100), identity)
        assert orch.last_report.timings_ms["threshold"] >= 0.0
        assert orch.last_report.elapsed_ms >= orch.last_report.timings_ms["threshold"]


class TestPolicy:
    def test_small_contour_rejected_then_next_tried(self, disk, identity):
        orch = _orchestrator(("tiny", _TinyCircle), ("big", _BigCircle))
        result = orch.detect(disk, (100, 100), identity)
        assert result.strategy == "big"
        assert "below" in orch.last_report.errors["tiny"]

    def test_first_accepted_wins_over_confidence(self, disk, identity):
        orch = _orchestrator(("big", _BigCircle), order=["big", "threshold"])
        result = orch.detect(disk, (100, 100), identity)
        assert result.strategy == "big"
        assert result.confidence == pytest.approx(0.4)

    def test_strategy_exception_recorded(self, disk, identity):
        orch = _orchestrator(("raising", _raising(RuntimeError("boom"))), order=["raising", "threshold"])
        result = orch.detect(disk, (100, 100), identity)
        assert result.strategy == "threshold"
        assert orch.last_report.errors["raising"] == "boom"

    def test_timeout_returns_fallback(self, disk, identity):
        orch = _orchestrator(("raising", _raising(TimeoutExceeded(10, 12))), order=["raising", "threshold"])
        result = orch.detect(disk, (100, 100), identity)
        assert result.is_fallback
        assert orch.last_report.timed_out
        assert orch.last_report.attempted == ["raising"]

    def test_expired_budget_returns_fallback(self, disk, identity):
        orch = ContourOrchestrator(options=DetectionOptions(timeout_ms=-1.0))
        result = orch.detect(disk, (100, 100), identity)
        assert result.is_fallback
        assert orch.last_report.timed_out

    def test_calibration_error_escapes(self, disk, identity):
        orch = _orchestrator(("raising", _raising(CalibrationError("bad frame"))))
        with pytest.raises(CalibrationError):
            orch.detect(disk, (100, 100), identity)

    def test_unknown_strategy_fails_at_construction(self):
        with pytest.raises(KeyError):
            ContourOrchestrator(options=DetectionOptions(strategy_order=["threshold", "magic"]))

    def test_rejection_reasons(self, identity):
        orch = ContourOrchestrator()
        good = ContourResult.build(circle_contour((50, 50), 20, 30), identity, strategy="x")
        few = ContourResult.build(circle_contour((50, 50), 20, 5), identity, strategy="x")
        small = ContourResult.build(circle_contour((50, 50), 3, 30), identity, strategy="x")
        flagged = ContourResult.build(
            circle_contour((50, 50), 20, 30), identity, strategy="x", is_fallback=True, failure="nope"
        )
        assert orch.rejection_reason(good) is None
        assert "points" in orch.rejection_reason(few)
        assert "area" in orch.rejection_reason(small)
        assert orch.rejection_reason(flagged) == "nope"


def test_clamp_seed(disk):
    assert ContourOrchestrator.clamp_seed(disk, None) == (100, 100)
    assert ContourOrchestrator.clamp_seed(disk, (-5, 500)) == (0, 199)
    assert ContourOrchestrator.clamp_seed(disk, (10.6, 20.2)) == (11, 20)


def test_strategies_follow_order():
    orch = ContourOrchestrator(options=DetectionOptions(strategy_order=["edge", "threshold"]))
    assert [s.name for s in orch.strategies()] == ["edge", "threshold"]
