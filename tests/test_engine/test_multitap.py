"""Tests for detection from user colour samples."""

import math

import numpy as np
import pytest

from slabvision.engine.multitap import STRATEGY_NAME, RegionSample, detect_from_samples, slab_mask
from slabvision.utils.geometry import polygon_centroid
from slabvision.utils.raster import Raster
from tests.conftest import SLAB, canvas, paint_disk

SLAB_TAPS = [(95, 95), (110, 100), (100, 112)]
BED_TAPS = [(15, 15), (185, 20), (20, 180)]


def _similar_colours() -> Raster:
    # Slab only slightly darker than the bed, as with a light board on MDF
    img = canvas(200, 200, (200, 180, 150))
    paint_disk(img, (100, 100), 50, (170, 150, 125))
    return Raster.from_array(img)


class TestRegionSample:
    def test_mean_and_spread(self):
        rgb = np.zeros((20, 20, 3))
        rgb[:, :10] = 100.0
        rgb[:, 10:] = 200.0
        flat = RegionSample.from_tap(rgb, (4, 10), radius=2)
        assert flat.color == (100.0, 100.0, 100.0)
        assert flat.spread == 0.0
        mixed = RegionSample.from_tap(rgb, (10, 10), radius=2)
        assert mixed.spread > 0.0

    def test_tap_outside_image_is_clamped(self):
        rgb = np.zeros((10, 10, 3))
        rgb[:, 9] = 50.0
        sample = RegionSample.from_tap(rgb, (14, -3), radius=0)
        assert (sample.x, sample.y) == (9, 0)
        assert sample.color == (50.0, 50.0, 50.0)


def test_slab_mask_with_background(disk):
    rgb = disk.rgb()
    slab = [RegionSample.from_tap(rgb, t) for t in SLAB_TAPS]
    bed = [RegionSample.from_tap(rgb, t) for t in BED_TAPS]
    mask, threshold = slab_mask(rgb, slab, bed)
    base = np.linalg.norm(np.subtract(SLAB, (225, 225, 225)))
    assert threshold == pytest.approx(base * 0.5 * 1.5)
    assert mask[100, 100]
    assert not mask[10, 10]


def test_slab_mask_without_background(disk):
    rgb = disk.rgb()
    mask, threshold = slab_mask(rgb, [RegionSample.from_tap(rgb, (100, 100))], [])
    assert threshold == pytest.approx(3.0)
    assert mask[100, 100]
    assert not mask[10, 10]


def test_detect_from_samples(identity):
    result = detect_from_samples(_similar_colours(), SLAB_TAPS, BED_TAPS, identity)
    assert result.strategy == STRATEGY_NAME
    assert not result.is_fallback
    assert result.point_count >= 10
    assert polygon_centroid(result.pixel_contour) == pytest.approx((100.0, 100.0), abs=4.0)
    assert 0.9 * math.pi * 50**2 < result.pixel_area <= 1.05 * math.pi * 50**2


def test_detect_without_background_samples(disk, identity):
    result = detect_from_samples(disk, SLAB_TAPS, [], identity)
    assert not result.is_fallback


def test_centroid_off_slab_falls_back(identity):
    img = canvas(200, 200)
    paint_disk(img, (50, 100), 20)
    paint_disk(img, (150, 100), 20)
    raster = Raster.from_array(img)
    result = detect_from_samples(raster, [(50, 100), (150, 100)], [(100, 20)], identity)
    assert result.is_fallback
    assert result.confidence == 0.0
    assert result.point_count == 37


def test_requires_slab_taps(disk, identity):
    with pytest.raises(ValueError):
        detect_from_samples(disk, [], BED_TAPS, identity)


def test_taps_off_image_do_not_raise(identity):
    result = detect_from_samples(_similar_colours(), SLAB_TAPS, [(-10, 15), (185, 260)], identity)
    assert result.strategy == STRATEGY_NAME
    assert not result.is_fallback
