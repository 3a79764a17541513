"""
Tests for record parsing, bounding boxes, reports and configuration.
"""

from datetime import datetime, timezone

import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from panograph.config import hop_threshold_for_zoom, resolve_config
from panograph.models import (
    BoundingBox,
    InvalidPointError,
    MergeReport,
    Point,
    normalize_sequence_tag,
)


class TestPointFromDict:
    """Tests for the record shapes data sources emit."""

    def test_api_shape(self):
        point = Point.from_dict({
            "id": 42, "latitude": "48.1", "longitude": 11.5,
            "sequenceTag": "Route A", "imagePath": "Panos/a_0042.jpg",
        })
        assert point.id == "42"
        assert point.lat == pytest.approx(48.1)
        assert point.sequence_id == "route a"
        assert point.image_ref == "Panos/a_0042.jpg"
        assert point.order_key_source == "Panos/a_0042.jpg"

    def test_short_keys(self):
        point = Point.from_dict({"id": "a", "lat": 1, "lng": 2, "name": "img7"})
        assert (point.lat, point.lon) == (1.0, 2.0)
        assert point.sequence_id == "default"
        assert point.order_key_source == "img7"

    def test_timestamps(self):
        moment = datetime(2024, 5, 1, tzinfo=timezone.utc)
        assert Point.from_dict({"id": "a", "lat": 0, "lon": 0, "capturedAt": moment}).captured_at == moment.timestamp()
        assert Point.from_dict({"id": "a", "lat": 0, "lon": 0, "captured_at": 12}).captured_at == 12.0
        assert Point.from_dict({"id": "a", "lat": 0, "lon": 0, "capturedAt": "soon"}).captured_at is None

    @pytest.mark.parametrize("record", [
        {"lat": 0, "lon": 0},
        {"id": "  ", "lat": 0, "lon": 0},
        {"id": True, "lat": 0, "lon": 0},
        {"id": "a", "lon": 0},
        {"id": "a", "lat": "north", "lon": 0},
        {"id": "a", "lat": 91, "lon": 0},
        {"id": "a", "lat": 0, "lon": float("nan")},
        {"id": "a", "lat": True, "lon": 0},
        ["a", 0, 0],
    ])
    def test_rejected(self, record):
        with pytest.raises(InvalidPointError):
            Point.from_dict(record)


class TestSequenceTags:
    def test_normalize(self):
        assert normalize_sequence_tag("  Loop B ") == "loop b"
        assert normalize_sequence_tag("") == "default"
        assert normalize_sequence_tag(None) == "default"


class TestBoundingBox:
    """Tests for box parsing and tiling."""

    def test_parse(self):
        box = BoundingBox.parse("11.0,48.0,11.5,48.5")
        assert box == BoundingBox(11.0, 48.0, 11.5, 48.5)
        assert box.center == pytest.approx((48.25, 11.25))

    def test_parse_errors(self):
        with pytest.raises(ValueError):
            BoundingBox.parse("1,2,3")
        with pytest.raises(ValueError):
            BoundingBox.parse("a,b,c,d")

    def test_tiles_cover_box(self):
        tiles = BoundingBox(0.0, 0.0, 1.0, 0.75).tiles(0.5)
        assert len(tiles) == 4
        assert max(t.max_lat for t in tiles) == 0.75
        assert {(t.min_lon, t.min_lat) for t in tiles} == {(0.0, 0.0), (0.0, 0.5), (0.5, 0.0), (0.5, 0.5)}

    def test_no_sliver_tiles(self):
        tiles = BoundingBox(11.0, 48.0, 11.3, 48.1).tiles(0.1)
        assert len(tiles) == 3
        assert all(t.max_lon - t.min_lon > 0.099 for t in tiles)
        assert max(t.max_lon for t in tiles) == 11.3

    def test_tile_size_positive(self):
        with pytest.raises(ValueError):
            BoundingBox(0, 0, 1, 1).tiles(0)


class TestMergeReport:
    def test_summary(self):
        report = MergeReport(inserted=["a"], unchanged=["b"], dirty_sequences={"y", "x"})
        assert report.changed
        assert report.summary() == {
            "inserted": 1, "updated": 0, "unchanged": 1, "removed": 0,
            "skipped": 0, "dirty_sequences": ["x", "y"],
        }

    def test_removal_is_a_change(self):
        assert not MergeReport(unchanged=["a"]).changed
        assert MergeReport(removed=["a"]).changed


class TestConfig:
    """Tests for configuration overrides."""

    def test_defaults(self):
        config = resolve_config()
        assert config["sequence_rebuild_debounce_ms"] == 300
        assert config["pick_dead_band"] == 0.08

    def test_unknown_key(self):
        with pytest.raises(KeyError):
            resolve_config({"lru_capacty": 4})

    def test_invalid_values(self):
        with pytest.raises(ValueError):
            resolve_config({"lru_capacity": 0})
        with pytest.raises(ValueError):
            resolve_config({"sequence_rebuild_debounce_ms": -1})

    def test_defaults_untouched(self):
        resolve_config({"lru_capacity": 3})
        assert resolve_config()["lru_capacity"] == 10

    @pytest.mark.parametrize("zoom,hop", [(25, 60), (18, 75), (16, 75), (15.5, 90), (14, 110), (3, 140)])
    def test_hop_table(self, zoom, hop):
        assert hop_threshold_for_zoom(zoom) == hop
