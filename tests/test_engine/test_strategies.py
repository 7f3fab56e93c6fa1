"""Tests for the Threshold, Edge, Color and Hull strategies."""

import math

import numpy as np
import pytest

from slabvision.engine.config import DetectionOptions
from slabvision.engine.deadline import Deadline
from slabvision.engine.errors import SegmentationFailure, TimeoutExceeded
from slabvision.engine.strategies import ColorStrategy, EdgeStrategy, HullStrategy, ThresholdStrategy
from slabvision.engine.strategies.base import check_region, contrast_confidence
from slabvision.engine.strategies.color import hsv_distance, to_hsv
from slabvision.utils.filters import otsu_threshold
from slabvision.utils.geometry import polygon_centroid
from slabvision.utils.morphology import disk_mask
from slabvision.utils.raster import Raster
from tests.conftest import SLAB, canvas, disk_raster, paint_square

DISK_AREA = math.pi * 50**2

ALL_STRATEGIES = [ThresholdStrategy, EdgeStrategy, ColorStrategy, HullStrategy]


def _assert_found_disk(result, name):
    assert result.strategy == name
    assert not result.is_fallback
    assert result.failure is None
    assert result.point_count >= 10
    assert polygon_centroid(result.pixel_contour) == pytest.approx((100.0, 100.0), abs=4.0)
    assert 0.9 * DISK_AREA < result.pixel_area < 1.05 * DISK_AREA


@pytest.mark.parametrize("cls", ALL_STRATEGIES)
def test_strategy_finds_disk(cls, disk, identity):
    result = cls().detect(disk, (100, 100), identity)
    _assert_found_disk(result, cls.name)
    assert result.confidence > 0.5


@pytest.mark.parametrize("cls", ALL_STRATEGIES)
def test_large_disk_area_kept(cls, identity):
    raster = disk_raster(400, 400, (200, 200), 100)
    result = cls().detect(raster, (200, 200), identity)
    assert not result.is_fallback
    assert result.pixel_area == pytest.approx(math.pi * 100**2, rel=0.05)


@pytest.mark.parametrize("cls", ALL_STRATEGIES)
def test_rectangle_area_kept(cls, identity):
    img = canvas(200, 200)
    img[60:140, 40:160] = SLAB
    result = cls().detect(Raster.from_array(img), (100, 100), identity)
    assert not result.is_fallback
    assert result.pixel_area == pytest.approx(120 * 80, rel=0.05)
    assert polygon_centroid(result.pixel_contour) == pytest.approx((99.5, 99.5), abs=1.5)


@pytest.mark.parametrize("cls", ALL_STRATEGIES)
def test_uniform_image_gives_fallback(cls, uniform_white, identity):
    result = cls().detect(uniform_white, (60, 60), identity)
    assert result.is_fallback
    assert result.confidence == 0.0
    assert result.failure
    assert result.point_count == 37


@pytest.mark.parametrize("cls", ALL_STRATEGIES)
def test_seed_outside_image(cls, disk, identity):
    result = cls().detect(disk, (500, 5), identity)
    assert result.is_fallback
    assert "outside" in result.failure


def test_strategies_propagate_timeout(disk, identity):
    with pytest.raises(TimeoutExceeded):
        ThresholdStrategy().detect(disk, (100, 100), identity, Deadline(-1.0))


def test_fallback_disk_geometry(uniform_white, identity):
    result = ThresholdStrategy().detect(uniform_white, (60, 60), identity)
    radii = np.linalg.norm(result.pixel_contour - [60, 60], axis=1)
    assert np.allclose(radii, 0.3 * 120)


class TestThreshold:
    def test_small_region_substitutes_disk(self, identity):
        img = canvas(120, 120)
        paint_square(img, (60, 60), 3)
        result = ThresholdStrategy().detect(Raster.from_array(img), (60, 60), identity)
        assert result.is_fallback
        assert "below" in result.failure
        radii = np.linalg.norm(result.pixel_contour - [60, 60], axis=1)
        assert radii.max() <= 120 / 6 + 1e-6

    def test_leak_reported(self, uniform_black, identity):
        result = ThresholdStrategy().detect(uniform_black, (60, 60), identity)
        assert result.is_fallback
        assert "border" in result.failure

    def test_light_slab_on_dark_bed(self, identity):
        img = canvas(200, 200, (30, 30, 30))
        img[disk_mask((200, 200), (100, 100), 50)] = (230, 220, 200)
        result = ThresholdStrategy().detect(Raster.from_array(img), (100, 100), identity)
        _assert_found_disk(result, "threshold")

    def test_four_connectivity(self, disk, identity):
        result = ThresholdStrategy(DetectionOptions(connectivity=4)).detect(disk, (100, 100), identity)
        _assert_found_disk(result, "threshold")


class TestEdge:
    def test_edge_map_outlines_disk(self, disk):
        edges = EdgeStrategy().edge_map(disk)
        assert edges[100, 50]
        assert not edges[100, 100]
        assert not edges[10, 10]

    def test_kernel_retry_sequence(self):
        assert EdgeStrategy(DetectionOptions(edge_close_kernel=3, edge_kernel_step=2))._kernels() == [3, 7]


class TestColor:
    def test_hue_distance_is_circular(self):
        hsv = np.array([[[350.0, 0.5, 0.5]]])
        d = hsv_distance(hsv, np.array([10.0, 0.5, 0.5]))
        assert d[0, 0] == pytest.approx(0.5 * 20 / 180)

    def test_weights(self):
        hsv = np.array([[[0.0, 1.0, 1.0]]])
        d = hsv_distance(hsv, np.array([180.0, 0.0, 0.0]))
        assert d[0, 0] == pytest.approx(1.0)

    def test_to_hsv_degrees(self):
        img = np.zeros((1, 2, 3), dtype=np.uint8)
        img[0, 0] = (0, 255, 0)
        img[0, 1] = (0, 0, 255)
        hsv = to_hsv(Raster.from_array(img))
        assert hsv[0, 0, 0] == pytest.approx(120.0)
        assert hsv[0, 1, 0] == pytest.approx(240.0)
        assert hsv[0, 0, 1] == pytest.approx(1.0)

    def test_separates_equal_brightness_colours(self, identity):
        # Red slab on a green bed of nearly the same luma
        img = canvas(200, 200, (40, 150, 40))
        img[disk_mask((200, 200), (100, 100), 50)] = (220, 60, 60)
        result = ColorStrategy().detect(Raster.from_array(img), (100, 100), identity)
        _assert_found_disk(result, "color")


class TestHull:
    def test_candidate_masks(self, disk):
        strategy = HullStrategy()
        masks = strategy.candidate_masks(disk.grayscale())
        assert len(masks) == 1 + 2 * len(strategy.options.threshold_levels)
        assert masks[-1][0] == "adaptive"

    def test_levels_start_nearest_otsu(self, disk):
        gray = disk.grayscale()
        split = otsu_threshold(gray)
        labels = [label for label, _ in HullStrategy().candidate_masks(gray)]
        first = int(labels[0].split()[1])
        assert all(abs(first - split) <= abs(level - split) for level in HullStrategy().options.threshold_levels)
        assert labels[1] == f"level {first} inverted"


class TestRegionChecks:
    def test_check_region_rejects_flood(self, options):
        with pytest.raises(SegmentationFailure):
            check_region(np.ones((20, 20), dtype=bool), options)

    def test_check_region_rejects_large_fraction(self, options):
        mask = np.ones((20, 20), dtype=bool)
        mask[0, :] = False
        with pytest.raises(SegmentationFailure, match="covers"):
            check_region(mask, options)

    def test_check_region_accepts_island(self, options):
        check_region(disk_mask((50, 50), (25, 25), 10), options)

    def test_contrast_confidence(self, disk):
        gray = disk.grayscale()
        mask = disk_mask(gray.shape, (100, 100), 50)
        assert contrast_confidence(gray, mask) == pytest.approx(1.0)
        assert contrast_confidence(gray, np.zeros_like(mask)) == 0.0
