"""Deterministic visiting order for the points of one sequence."""

import math
import re
from collections import defaultdict
from typing import Iterable, NamedTuple, Optional

from .config import CONFIG
from .geo import project_mercator
from .models import Point

STRATEGY_TRIVIAL = "trivial"
STRATEGY_TIMESTAMP = "timestamp"
STRATEGY_NUMERIC = "numeric"
STRATEGY_NATURAL = "natural"
STRATEGY_SPATIAL = "spatial"
STRATEGY_CAPPED = "capped"  # natural order kept because the group is too big to walk

_NUMERIC_TOKEN = re.compile(r"(\d{3,})")
_DIGIT_RUNS = re.compile(r"(\d+)")


class OrderResult(NamedTuple):
    points: list[Point]
    strategy: str


def group_by_sequence(points: Iterable[Point]) -> dict[str, list[Point]]:
    """Bucket points by normalized sequence id, keeping input order within a bucket"""
    groups: dict[str, list[Point]] = defaultdict(list)
    for point in points:
        groups[point.sequence_id].append(point)
    return dict(groups)


def numeric_token(text: str) -> Optional[int]:
    """First run of 3+ digits in text (frame numbers), or None"""
    match = _NUMERIC_TOKEN.search(text or "")
    return int(match.group(1)) if match else None


def natural_key(text: str) -> tuple:
    """Sort key comparing digit runs numerically: 'img2' < 'img10'.

    Digit runs sort before text at the same position.
    """
    if not text:
        return ((1, 0, ""),)
    key = []
    for piece in _DIGIT_RUNS.split(text.lower()):
        if piece.isdigit():
            key.append((0, int(piece), ""))
        else:
            key.append((1, 0, piece))
    return tuple(key)


def median(values: list[float]) -> float:
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def spatial_walk(points: list[Point]) -> list[Point]:
    """Greedy nearest-neighbor walk over a Web Mercator projection.

    Starts at the point with the smallest x + y and repeatedly hops to the
    closest unvisited point. Ties go to the earlier point in the input. The
    input list is never modified. O(n^2).
    """
    if len(points) <= 2:
        return list(points)

    projected = [project_mercator(p.lat, p.lon) for p in points]

    start = 0
    best_sum = math.inf
    for i, (x, y) in enumerate(projected):
        if x + y < best_sum:
            best_sum = x + y
            start = i

    visited = [False] * len(points)
    order = []
    current = start
    while current != -1:
        visited[current] = True
        order.append(points[current])
        cx, cy = projected[current]
        nearest = -1
        best_dist2 = math.inf
        for k, (x, y) in enumerate(projected):
            if visited[k]:
                continue
            dist2 = (x - cx) ** 2 + (y - cy) ** 2
            if dist2 < best_dist2:
                best_dist2 = dist2
                nearest = k
        current = nearest
    return order


def _planar_hop(a: Point, b: Point) -> float:
    return math.hypot(b.lon - a.lon, b.lat - a.lat)


def _spread(points: list[Point]) -> float:
    lons = [p.lon for p in points]
    lats = [p.lat for p in points]
    return math.hypot(max(lons) - min(lons), max(lats) - min(lats)) or 1e-6


def names_follow_path(natural: list[Point], spread_ratio: float) -> bool:
    """Whether consecutive names are close together relative to the cloud size"""
    hops = [_planar_hop(a, b) for a, b in zip(natural, natural[1:])]
    median_hop = median(hops) if hops else 0.0
    return median_hop <= _spread(natural) * spread_ratio


def order_sequence(
    points: Iterable[Point],
    spread_ratio: Optional[float] = None,
    size_ceiling: Optional[int] = None,
) -> OrderResult:
    """Order one sequence's points, first applicable strategy wins:

    1. capture timestamps, when every point has one
    2. frame numbers (first 3+ digit run of image ref / name / id), when every point has one
    3. natural name order if names track the geometry, otherwise a greedy spatial walk

    The group is put in id order first so the result never depends on the
    order points arrived in.
    """
    if spread_ratio is None:
        spread_ratio = CONFIG["natural_order_spread_ratio"]
    if size_ceiling is None:
        size_ceiling = CONFIG["spatial_walk_size_ceiling"]

    group = sorted(points, key=lambda p: p.id)
    if len(group) <= 1:
        return OrderResult(group, STRATEGY_TRIVIAL)

    if all(p.captured_at is not None for p in group):
        return OrderResult(sorted(group, key=lambda p: p.captured_at), STRATEGY_TIMESTAMP)

    tokens = {p.id: numeric_token(p.order_key_source) for p in group}
    if all(token is not None for token in tokens.values()):
        return OrderResult(sorted(group, key=lambda p: tokens[p.id]), STRATEGY_NUMERIC)

    natural = sorted(group, key=lambda p: natural_key(p.order_key_source))
    if names_follow_path(natural, spread_ratio):
        return OrderResult(natural, STRATEGY_NATURAL)
    if len(group) > size_ceiling:
        return OrderResult(natural, STRATEGY_CAPPED)
    return OrderResult(spatial_walk(group), STRATEGY_SPATIAL)
