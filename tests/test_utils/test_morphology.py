"""Tests for mask operations and region growing."""

import numpy as np
import pytest

from slabvision.engine.errors import TimeoutExceeded
from slabvision.utils.morphology import (
    closing,
    component_at,
    connected_components,
    dilate,
    disk_mask,
    erode,
    fill_holes,
    grow_into_band,
    largest_component,
    opening,
    perimeter,
    region_grow,
    touches_all_borders,
)


class _TripAfter:
    """Checkpoint that raises after ``n`` checks."""

    def __init__(self, n: int) -> None:
        self.n = n
        self.calls = 0

    def check(self) -> None:
        self.calls += 1
        if self.calls > self.n:
            raise TimeoutExceeded(1, 2)


def _diagonal_pair():
    mask = np.zeros((10, 10), dtype=bool)
    mask[2:5, 2:5] = True
    mask[5:8, 5:8] = True
    return mask


class TestRegionGrow:
    def test_fills_component(self):
        mask = np.zeros((20, 20), dtype=bool)
        mask[5:15, 5:15] = True
        region = region_grow(mask, (10, 10))
        assert np.array_equal(region, mask)

    def test_connectivity(self):
        mask = _diagonal_pair()
        assert region_grow(mask, (3, 3), connectivity=8).sum() == 18
        assert region_grow(mask, (3, 3), connectivity=4).sum() == 9

    def test_seed_always_included(self):
        mask = np.zeros((5, 5), dtype=bool)
        region = region_grow(mask, (2, 3))
        assert region.sum() == 1
        assert region[3, 2]

    def test_seed_outside_raises(self):
        with pytest.raises(ValueError):
            region_grow(np.ones((5, 5), dtype=bool), (5, 0))

    def test_bad_connectivity_raises(self):
        with pytest.raises(ValueError):
            region_grow(np.ones((5, 5), dtype=bool), (0, 0), connectivity=6)

    def test_max_pixels_stops_early(self):
        region = region_grow(np.ones((50, 50), dtype=bool), (25, 25), max_pixels=100)
        assert region.sum() == 100

    def test_deadline_checked(self):
        trip = _TripAfter(0)
        with pytest.raises(TimeoutExceeded):
            region_grow(np.ones((100, 100), dtype=bool), (50, 50), deadline=trip)
        assert trip.calls == 1


class TestMorphology:
    def test_closing_bridges_gap(self):
        mask = np.zeros((20, 20), dtype=bool)
        mask[5:15, 5:9] = True
        mask[5:15, 10:15] = True
        closed = closing(mask, 3)
        assert closed[10, 9]
        assert connected_components(closed)[1] == 1

    def test_closing_keeps_border_region(self):
        mask = np.zeros((20, 20), dtype=bool)
        mask[:, :8] = True
        closed = closing(mask, 5)
        assert closed[:, 0].all()
        assert np.array_equal(closed, mask)

    def test_opening_drops_specks(self):
        mask = np.zeros((20, 20), dtype=bool)
        mask[5:15, 5:15] = True
        mask[1, 1] = True
        opened = opening(mask, 3)
        assert not opened[1, 1]
        assert opened[10, 10]

    def test_dilate_erode(self):
        mask = np.zeros((9, 9), dtype=bool)
        mask[4, 4] = True
        grown = dilate(mask, 3)
        assert grown.sum() == 9
        assert np.array_equal(erode(grown, 3), mask)

    def test_fill_holes(self):
        ring = disk_mask((30, 30), (15, 15), 10) & ~disk_mask((30, 30), (15, 15), 5)
        filled = fill_holes(ring)
        assert filled[15, 15]
        assert np.array_equal(filled, disk_mask((30, 30), (15, 15), 10))


class TestComponents:
    def test_component_at_seed(self):
        mask = _diagonal_pair()
        comp = component_at(mask, (6, 6), connectivity=4)
        assert comp.sum() == 9
        assert comp[6, 6]

    def test_component_at_background_takes_nearest(self):
        mask = np.zeros((20, 20), dtype=bool)
        mask[1:3, 1:3] = True
        mask[15:19, 15:19] = True
        comp = component_at(mask, (13, 13))
        assert comp.sum() == 16

    def test_empty_mask(self):
        empty = np.zeros((5, 5), dtype=bool)
        assert not component_at(empty, (2, 2)).any()
        assert not largest_component(empty).any()

    def test_largest_component(self):
        mask = np.zeros((20, 20), dtype=bool)
        mask[1:3, 1:3] = True
        mask[10:15, 10:15] = True
        assert largest_component(mask).sum() == 25


def test_touches_all_borders():
    assert touches_all_borders(np.ones((5, 5), dtype=bool))
    mask = np.zeros((5, 5), dtype=bool)
    mask[0, :] = True
    mask[:4, 0] = True
    assert not touches_all_borders(mask)


def test_perimeter_counts_image_edge():
    mask = np.ones((6, 6), dtype=bool)
    edge = perimeter(mask)
    assert edge.sum() == 20
    assert not edge[2:4, 2:4].any()


def test_disk_mask_area():
    disk = disk_mask((200, 200), (100, 100), 50)
    assert disk.sum() == pytest.approx(np.pi * 50**2, rel=0.01)


class TestGrowIntoBand:
    def test_stops_mid_band(self):
        inner = disk_mask((120, 120), (60, 60), 40)
        band = disk_mask((120, 120), (60, 60), 50) & ~inner
        grown = grow_into_band(inner, band)
        assert grown.sum() == pytest.approx(np.pi * 45**2, rel=0.05)
        assert not grown[60, 60 + 48]
        assert grown[60, 60 + 43]

    def test_empty_region(self):
        band = np.ones((10, 10), dtype=bool)
        assert not grow_into_band(np.zeros((10, 10), dtype=bool), band).any()

    def test_band_without_outside_is_taken(self):
        region = np.zeros((10, 10), dtype=bool)
        region[4:6, 4:6] = True
        assert grow_into_band(region, ~region).all()
