"""
Tests for gtg.components.

Component statistics are checked against direct per-label computations, and
the criteria filter against its truth table.
"""

import dataclasses

import numpy as np
import pytest

from gtg import Component, ShapeMismatch, accepts, extract_components, label_grid


def make_component(area, min_value, max_value):
    return Component(frame=0, label=1, area=area, min_value=min_value, max_value=max_value,
                     bbox=(0, 0, 1, 1), centroid=(0.0, 0.0))


class TestExtractComponents:
    """Tests for extract_components."""

    def test_two_regions(self):
        mask = np.array([[1, 1, 0, 0],
                         [1, 1, 0, 0],
                         [0, 0, 0, 1],
                         [0, 0, 1, 1]], dtype=float)
        original = np.array([[210., 220., 300., 300.],
                             [215., 205., 300., 300.],
                             [300., 300., 300., 230.],
                             [300., 300., 240., 235.]])
        labels, max_label = label_grid(mask)
        components = extract_components(original, labels, max_label, frame_id=3)

        assert [c.label for c in components] == [1, 2]
        first, second = components

        assert first.key == (3, 1)
        assert first.area == 4
        assert first.min_value == 205.
        assert first.max_value == 220.
        assert first.diff == 15.
        assert first.bbox == (0, 0, 2, 2)
        assert first.centroid == pytest.approx((0.5, 0.5))

        assert second.key == (3, 2)
        assert second.area == 3
        assert second.min_value == 230.
        assert second.max_value == 240.
        assert second.bbox == (2, 2, 4, 4)

    def test_no_components(self):
        labels, max_label = label_grid(np.zeros((4, 4)))
        assert extract_components(np.full((4, 4), 290.), labels, max_label, 0) == []

    @pytest.mark.parametrize('seed', range(4))
    def test_area_conservation_and_min_max(self, seed):
        rng = np.random.default_rng(seed)
        original = rng.uniform(190., 300., size=(30, 40))
        mask = (original <= 241.).astype(float)
        labels, max_label = label_grid(mask)
        components = extract_components(original, labels, max_label, 0)

        assert len(components) == max_label
        assert sum(c.area for c in components) == int(mask.sum())

        for c in components:
            cell_values = original[labels == c.label]
            assert c.area == cell_values.size
            assert cell_values.min() == c.min_value
            assert cell_values.max() == c.max_value

    def test_shape_mismatch(self):
        labels, max_label = label_grid(np.ones((3, 3)))
        with pytest.raises(ShapeMismatch):
            extract_components(np.ones((3, 4)), labels, max_label, 0)

    def test_inconsistent_max_label(self):
        labels, _ = label_grid([[1, 0, 1]])
        with pytest.raises(ValueError, match='max_label'):
            extract_components([[200., 300., 200.]], labels, 3, 0)

    def test_components_are_immutable(self):
        labels, max_label = label_grid([[1]])
        component = extract_components([[200.]], labels, max_label, 0)[0]
        with pytest.raises(dataclasses.FrozenInstanceError):
            component.area = 10


class TestAccepts:
    """Tests for the criteria filter: area >= T or (max - min) > D."""

    def test_large_area_accepted_regardless_of_diff(self):
        assert accepts(make_component(60, 230., 230.), area_threshold=60, diff_threshold=10)
        assert accepts(make_component(500, 200., 240.), area_threshold=60, diff_threshold=10)

    def test_large_diff_accepted_regardless_of_area(self):
        assert accepts(make_component(1, 200., 215.), area_threshold=60, diff_threshold=10)
        assert accepts(make_component(59, 200., 210.5), area_threshold=60, diff_threshold=10)

    def test_small_and_flat_rejected(self):
        assert not accepts(make_component(59, 230., 240.), area_threshold=60, diff_threshold=10)
        assert not accepts(make_component(1, 230., 230.), area_threshold=60, diff_threshold=10)

    def test_defaults(self):
        assert accepts(make_component(60, 230., 230.))
        assert not accepts(make_component(40, 230., 235.))

    def test_returns_bool(self):
        assert accepts(make_component(100, 0., 0.)) is True
        assert accepts(make_component(1, 0., 0.)) is False
