"""
Tests for splitting ordered sequences into drawable polylines.
"""

import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from panograph.config import hop_threshold_for_zoom
from panograph.segments import build_segments, split_runs, split_segments
from conftest import STEP_DEG, line_of_points, make_point


def gappy_sequence():
    """a-b-c close together, a 500 m jump, then d-e, another jump, then lone f"""
    return [
        make_point("a", 0.0, 0.0),
        make_point("b", 0.0, STEP_DEG),
        make_point("c", 0.0, 2 * STEP_DEG),
        make_point("d", 0.0, 0.0047),
        make_point("e", 0.0, 0.0047 + STEP_DEG),
        make_point("f", 0.0, 0.01),
    ]


class TestZoomThresholds:
    """Tests for the zoom -> max hop table."""

    @pytest.mark.parametrize("zoom,expected", [
        (25, 60),
        (30, 60),
        (16, 75),
        (24.9, 75),
        (15, 90),
        (15.5, 90),
        (14, 110),
        (13.9, 140),
        (3, 140),
    ])
    def test_table(self, zoom, expected):
        assert hop_threshold_for_zoom(zoom) == expected


class TestSplitRuns:
    """Tests for run splitting."""

    def test_runs_concatenate_back_to_input(self):
        points = gappy_sequence()
        runs = split_runs(points, 75)
        flattened = [p for run in runs for p in run]
        assert flattened == points

    def test_breaks_at_gaps(self):
        runs = split_runs(gappy_sequence(), 75)
        assert [[p.id for p in run] for run in runs] == [["a", "b", "c"], ["d", "e"], ["f"]]

    def test_no_gaps_single_run(self):
        points = line_of_points(6)
        assert split_runs(points, 75) == [points]

    def test_empty(self):
        assert split_runs([], 75) == []

    def test_hop_exactly_at_threshold_stays_joined(self):
        points = line_of_points(2)
        hop = 6371000 * 3.141592653589793 / 180 * STEP_DEG
        assert len(split_runs(points, hop + 1e-6)) == 1
        assert len(split_runs(points, hop - 1e-3)) == 2


class TestSegments:
    """Tests for polyline segments."""

    def test_singletons_not_drawn(self):
        segments = split_segments(gappy_sequence(), 75)
        assert [[p.id for p in s] for s in segments] == [["a", "b", "c"], ["d", "e"]]

    def test_round_trip_without_singletons(self):
        points = gappy_sequence()[:5]
        segments = build_segments("seq", points, 75)
        assert [pid for s in segments for pid in s.point_ids] == [p.id for p in points]

    def test_segment_carries_coords(self):
        segments = build_segments("seq", line_of_points(3), 75)
        assert len(segments) == 1
        segment = segments[0]
        assert segment.sequence_id == "seq"
        assert segment.point_ids == ("p0", "p1", "p2")
        assert segment.coords[1] == (0.0, STEP_DEG)
        assert len(segment) == 3

    def test_zoomed_out_joins_more(self):
        points = [make_point("a", 0, 0), make_point("b", 0, 0.001)]  # ~111 m
        assert build_segments("seq", points, hop_threshold_for_zoom(16)) == []
        assert len(build_segments("seq", points, hop_threshold_for_zoom(13))) == 1
