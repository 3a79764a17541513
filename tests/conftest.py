"""
Pytest configuration and fixtures for Panograph tests.

Provides point factories laid out along simple geometries, and an index
that rebuilds synchronously.
"""

import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from panograph import IncrementalIndex, Logger, Point

# ~11.1 m per step at the equator
STEP_DEG = 0.0001


def make_point(point_id, lat, lon, sequence="seq", **kwargs) -> Point:
    return Point(id=point_id, lat=lat, lon=lon, sequence_tag=sequence, **kwargs)


def line_of_points(count, sequence="seq", prefix="p", lat=0.0, lon=0.0, step=STEP_DEG):
    """Points heading due east, one step apart, ids p0..p{count-1}"""
    return [
        make_point(f"{prefix}{i}", lat, lon + i * step, sequence=sequence)
        for i in range(count)
    ]


def line_records(count, sequence="seq", prefix="p", lat=0.0, lon=0.0, step=STEP_DEG):
    """Raw API-shaped records for line_of_points"""
    return [
        {
            "id": f"{prefix}{i}",
            "latitude": lat,
            "longitude": lon + i * step,
            "sequence": sequence,
            "imagePath": f"Panos/{prefix}_{i}.jpg",
        }
        for i in range(count)
    ]


class LogCollector:
    """Logger callback that keeps every message"""

    def __init__(self):
        self.messages = []

    def __call__(self, message, data):
        self.messages.append((message, data))

    def texts(self):
        return [m for m, _ in self.messages]


@pytest.fixture
def make():
    """Fixture providing the point factory."""
    return make_point


@pytest.fixture
def line():
    """Fixture providing ten points along a line heading east."""
    return line_of_points(10)


@pytest.fixture
def log_collector():
    return LogCollector()


@pytest.fixture
def index(log_collector):
    """Fixture providing an index that rebuilds as soon as it changes."""
    idx = IncrementalIndex(
        config={"sequence_rebuild_debounce_ms": 0},
        logger=Logger(callback=log_collector, echo=False),
    )
    yield idx
    idx.close()
