"""Split ordered sequences into drawable polylines at implausible gaps."""

from .geo import haversine_distance
from .models import Point, Segment


def split_runs(points: list[Point], max_hop: float) -> list[list[Point]]:
    """Break an ordered sequence wherever a hop exceeds max_hop meters.

    Every point lands in exactly one run, singletons included, so the runs
    concatenate back to the input.
    """
    runs: list[list[Point]] = []
    current: list[Point] = []
    for point in points:
        if current:
            prev = current[-1]
            if haversine_distance(prev.lat, prev.lon, point.lat, point.lon) > max_hop:
                runs.append(current)
                current = []
        current.append(point)
    if current:
        runs.append(current)
    return runs


def split_segments(points: list[Point], max_hop: float) -> list[list[Point]]:
    """Runs that can be drawn as a line (two points or more)"""
    return [run for run in split_runs(points, max_hop) if len(run) >= 2]


def to_segment(sequence_id: str, run: list[Point]) -> Segment:
    return Segment(
        sequence_id=sequence_id,
        point_ids=tuple(p.id for p in run),
        coords=tuple((p.lat, p.lon) for p in run),
    )


def build_segments(sequence_id: str, points: list[Point], max_hop: float) -> list[Segment]:
    """Polyline segments for one ordered sequence"""
    return [to_segment(sequence_id, run) for run in split_segments(points, max_hop)]
