"""
Tests for sequence ordering strategies.

Covers timestamp priority, frame-number tokens, natural name order, the
greedy spatial walk fallback and determinism under shuffled input.
"""

import random

import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from panograph.models import Point
from panograph.ordering import (
    STRATEGY_CAPPED,
    STRATEGY_NATURAL,
    STRATEGY_NUMERIC,
    STRATEGY_SPATIAL,
    STRATEGY_TIMESTAMP,
    STRATEGY_TRIVIAL,
    group_by_sequence,
    natural_key,
    numeric_token,
    order_sequence,
    spatial_walk,
)
from conftest import STEP_DEG, line_of_points, make_point

# Name numbers for points p0..p9 along the line; name order jumps around
SCRAMBLED = [5, 9, 2, 7, 1, 10, 3, 8, 4, 6]


def ids(points):
    return [p.id for p in points]


def scrambled_names():
    return [
        make_point(f"p{i}", 0.0, i * STEP_DEG, name=f"img{SCRAMBLED[i]}")
        for i in range(10)
    ]


class TestTokens:
    """Tests for numeric tokens and natural sort keys."""

    def test_numeric_token_first_long_run(self):
        assert numeric_token("IMG_20230101_0042.jpg") == 20230101

    def test_numeric_token_ignores_short_runs(self):
        assert numeric_token("a12b") is None
        assert numeric_token("") is None

    def test_natural_key_orders_digits_numerically(self):
        names = ["img10", "img2", "img1"]
        assert sorted(names, key=natural_key) == ["img1", "img2", "img10"]

    def test_natural_key_case_insensitive(self):
        assert natural_key("IMG2") == natural_key("img2")

    def test_group_by_sequence_normalizes_tags(self):
        points = [make_point("a", 0, 0, "Seq A "), make_point("b", 0, 0, "seq a"),
                  make_point("c", 0, 0, "")]
        groups = group_by_sequence(points)
        assert set(groups) == {"seq a", "default"}
        assert ids(groups["seq a"]) == ["a", "b"]


class TestStrategies:
    """Tests for strategy selection."""

    def test_single_point_is_trivial(self):
        result = order_sequence([make_point("only", 1, 1)])
        assert result.strategy == STRATEGY_TRIVIAL
        assert ids(result.points) == ["only"]

    def test_timestamp_priority(self):
        """Ascending capture time wins over numbering and geometry."""
        points = [
            make_point("point1", 0, 0, captured_at=300, image_ref="pano_0001.jpg"),
            make_point("point2", 0, 0.01, captured_at=100, image_ref="pano_0002.jpg"),
            make_point("point3", 0, 0.02, captured_at=200, image_ref="pano_0003.jpg"),
        ]
        result = order_sequence(points)
        assert result.strategy == STRATEGY_TIMESTAMP
        assert ids(result.points) == ["point2", "point3", "point1"]

    def test_partial_timestamps_fall_through(self):
        points = [
            make_point("a", 0, 0, captured_at=300, image_ref="f_0200.jpg"),
            make_point("b", 0, 0.001, image_ref="f_0100.jpg"),
        ]
        result = order_sequence(points)
        assert result.strategy == STRATEGY_NUMERIC
        assert ids(result.points) == ["b", "a"]

    def test_numeric_tokens_from_image_ref(self):
        points = [
            make_point("x", 0, 0.002, image_ref="Panos/frame_0030.jpg"),
            make_point("y", 0, 0.000, image_ref="Panos/frame_0010.jpg"),
            make_point("z", 0, 0.001, image_ref="Panos/frame_0020.jpg"),
        ]
        result = order_sequence(points)
        assert result.strategy == STRATEGY_NUMERIC
        assert ids(result.points) == ["y", "z", "x"]

    def test_numeric_tokens_fall_back_to_id(self):
        points = [make_point("cap-300", 0, 0), make_point("cap-100", 0, 1),
                  make_point("cap-200", 0, 2)]
        result = order_sequence(points)
        assert result.strategy == STRATEGY_NUMERIC
        assert ids(result.points) == ["cap-100", "cap-200", "cap-300"]

    def test_natural_order_when_names_track_the_path(self):
        points = [
            make_point(f"p{i}", 0.0, i * STEP_DEG, name=f"img{i + 1}")
            for i in range(10)
        ]
        result = order_sequence(list(reversed(points)))
        assert result.strategy == STRATEGY_NATURAL
        assert ids(result.points) == [f"p{i}" for i in range(10)]

    def test_spatial_walk_when_names_jump_around(self):
        result = order_sequence(scrambled_names())
        assert result.strategy == STRATEGY_SPATIAL
        assert ids(result.points) == [f"p{i}" for i in range(10)]

    def test_spread_ratio_is_configurable(self):
        """A generous ratio trusts even scrambled names."""
        result = order_sequence(scrambled_names(), spread_ratio=1.0)
        assert result.strategy == STRATEGY_NATURAL
        assert ids(result.points)[:2] == ["p4", "p2"]

    def test_size_ceiling_keeps_natural_order(self):
        result = order_sequence(scrambled_names(), size_ceiling=5)
        assert result.strategy == STRATEGY_CAPPED
        assert ids(result.points)[0] == "p4"  # img1
        assert len(result.points) == 10


class TestDeterminism:
    """Ordering must not depend on input order."""

    @pytest.mark.parametrize("factory", [
        lambda: line_of_points(12),
        scrambled_names,
        lambda: [make_point(f"t{i}", 0, i * 0.001, captured_at=float(i % 4)) for i in range(8)],
        lambda: [make_point(f"c{i}", 0.0, 0.0) for i in range(6)],
    ])
    def test_shuffled_input_same_order(self, factory):
        points = factory()
        expected = order_sequence(points)
        rng = random.Random(42)
        for _ in range(10):
            shuffled = list(points)
            rng.shuffle(shuffled)
            result = order_sequence(shuffled)
            assert ids(result.points) == ids(expected.points)
            assert result.strategy == expected.strategy


class TestSpatialWalk:
    """Tests for the greedy nearest-neighbor walk."""

    def test_does_not_mutate_input(self):
        points = line_of_points(5)[::-1]
        before = list(points)
        spatial_walk(points)
        assert points == before

    def test_short_inputs_returned_as_is(self):
        points = line_of_points(2)[::-1]
        assert ids(spatial_walk(points)) == ["p1", "p0"]

    def test_starts_at_south_west_and_walks(self):
        points = [
            make_point("ne", 0.002, 0.002),
            make_point("sw", 0.0, 0.0),
            make_point("mid", 0.001, 0.001),
        ]
        assert ids(spatial_walk(points)) == ["sw", "mid", "ne"]

    def test_visits_every_point_once(self):
        rng = random.Random(7)
        points = [make_point(f"r{i}", rng.uniform(0, 0.01), rng.uniform(0, 0.01)) for i in range(50)]
        walked = spatial_walk(points)
        assert sorted(ids(walked)) == sorted(ids(points))
