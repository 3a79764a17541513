"""Resolve which link 'forward' and 'back' mean from where the viewer looks."""

import math
from typing import Iterable, NamedTuple, Optional

from .config import CONFIG
from .geo import (
    local_offset_meters,
    norm360,
    signed_angle_delta,
    vector_to_bearing,
)
from .models import Link, LastPick, PickResult, ROLE_NEXT, ROLE_PREV


class _Scored(NamedTuple):
    link: Link
    projection: float  # cosine between link bearing and the reference direction

    @property
    def rank_distance(self) -> float:
        return self.link.distance if self.link.distance is not None else math.inf


def _ahead_key(s: _Scored):
    return (-s.projection, s.rank_distance, s.link.to_id)


def _behind_key(s: _Scored):
    return (s.projection, s.rank_distance, s.link.to_id)


def pick_link_by_yaw(links: Iterable[Link], yaw: float, max_delta: Optional[float] = None) -> Optional[Link]:
    """The link whose bearing is closest to yaw, if within max_delta degrees"""
    if max_delta is None:
        max_delta = CONFIG["pick_max_delta"]
    best = None
    best_abs = math.inf
    for link in links:
        delta = abs(signed_angle_delta(link.bearing, yaw))
        if delta < best_abs:
            best_abs = delta
            best = link
    return best if best_abs <= max_delta else None


def decide_by_yaw(yaw: float, has_next: bool, has_prev: bool) -> Optional[str]:
    """Button fallback: the right half of the view is forward, the left half back"""
    want = "forward" if norm360(yaw) < 180 else "back"
    if want == "forward" and has_next:
        return "forward"
    if want == "back" and has_prev:
        return "back"
    if has_next:
        return "forward"
    if has_prev:
        return "back"
    return None


class TravelHint:
    """Exponentially smoothed direction of travel, as a unit (east, north) vector"""

    def __init__(self, smoothing: Optional[float] = None,
                 flip_angle: Optional[float] = None,
                 flip_min_step: Optional[float] = None):
        self.smoothing = CONFIG["hint_smoothing"] if smoothing is None else smoothing
        self.flip_angle = CONFIG["hint_flip_angle"] if flip_angle is None else flip_angle
        self.flip_min_step = CONFIG["hint_flip_min_step"] if flip_min_step is None else flip_min_step
        self.vector: Optional[tuple[float, float]] = None
        self._last_position: Optional[tuple[float, float]] = None

    @property
    def bearing(self) -> Optional[float]:
        if self.vector is None:
            return None
        return vector_to_bearing(*self.vector)

    def reset(self):
        self.vector = None
        self._last_position = None

    def update(self, lat: float, lon: float) -> bool:
        """Feed the next position; returns True if the hint moved"""
        previous = self._last_position
        self._last_position = (lat, lon)
        if previous is None:
            return False

        east, north = local_offset_meters(previous[0], previous[1], lat, lon)
        step = math.hypot(east, north)
        if step < 1e-3:
            return False
        nx, ny = east / step, north / step

        old = self.vector
        if old is not None:
            dot = max(-1.0, min(1.0, old[0] * nx + old[1] * ny))
            angle = math.degrees(math.acos(dot))
            # A sharp reversal over a tiny step snaps instead of blending
            if not (angle > self.flip_angle and step < self.flip_min_step):
                nx = self.smoothing * old[0] + (1 - self.smoothing) * nx
                ny = self.smoothing * old[1] + (1 - self.smoothing) * ny
                length = math.hypot(nx, ny) or 1.0
                nx, ny = nx / length, ny / length

        self.vector = (nx, ny)
        return old is None or abs(old[0] - nx) + abs(old[1] - ny) > 1e-4


class DirectionPicker:
    """Chooses the forward and backward target among a point's candidate links.

    Role-tagged sequence links are authoritative. Free-form candidates are
    projected onto the travel hint (or the viewer's heading when there is no
    hint): positive projections are ahead, negative ones behind. Projections
    inside the dead band around zero are ambiguous; they only win when
    nothing clearer exists, and the previous pick is kept while its
    projection stays inside the band.
    """

    def __init__(self, dead_band: Optional[float] = None, yaw_offset: Optional[float] = None):
        self.dead_band = CONFIG["pick_dead_band"] if dead_band is None else dead_band
        self.yaw_offset = CONFIG["yaw_offset_deg"] if yaw_offset is None else yaw_offset

    def reference_bearing(self, yaw: float, hint: Optional[tuple[float, float]] = None) -> float:
        if hint is not None and (hint[0] or hint[1]):
            return vector_to_bearing(hint[0], hint[1])
        return norm360(yaw + self.yaw_offset)

    def pick(self, links: Iterable[Link], yaw: float,
             hint: Optional[tuple[float, float]] = None,
             last_pick: Optional[LastPick] = None) -> PickResult:
        links = list(links)
        if not links:
            return PickResult()

        tagged_next = next((l for l in links if l.role == ROLE_NEXT), None)
        tagged_prev = next((l for l in links if l.role == ROLE_PREV), None)
        if tagged_next or tagged_prev:
            if tagged_next and tagged_prev and tagged_next.to_id == tagged_prev.to_id:
                tagged_prev = None
            return PickResult(forward=tagged_next, backward=tagged_prev)

        reference = self.reference_bearing(yaw, hint)
        scored = [
            _Scored(link, math.cos(math.radians(signed_angle_delta(link.bearing, reference))))
            for link in links
        ]
        by_id = {s.link.to_id: s for s in scored}
        band = self.dead_band

        forward = self._best_ahead(scored)
        backward = self._best_behind(scored)
        kept_forward = kept_backward = False

        if forward is None and last_pick and last_pick.forward_id in by_id:
            candidate = by_id[last_pick.forward_id]
            if candidate.projection > -band:
                forward, kept_forward = candidate, True
        if backward is None and last_pick and last_pick.backward_id in by_id:
            candidate = by_id[last_pick.backward_id]
            if candidate.projection < band:
                backward, kept_backward = candidate, True

        if forward is None:
            forward = self._best_ahead(scored, strict=False)
        if backward is None:
            backward = self._best_behind(scored, strict=False)

        if forward and backward and forward.link.to_id == backward.link.to_id:
            shared = forward.link.to_id
            if kept_forward != kept_backward:
                forward_wins = kept_forward
            else:
                forward_wins = forward.projection >= 0
            if forward_wins:
                backward = (self._best_behind(scored, exclude=shared)
                            or self._best_behind(scored, strict=False, exclude=shared))
            else:
                forward = (self._best_ahead(scored, exclude=shared)
                           or self._best_ahead(scored, strict=False, exclude=shared))

        return PickResult(
            forward=forward.link if forward else None,
            backward=backward.link if backward else None,
        )

    def _best_ahead(self, scored: list[_Scored], strict: bool = True,
                    exclude: Optional[str] = None) -> Optional[_Scored]:
        floor = self.dead_band if strict else 0.0
        ahead = [s for s in scored if s.projection > floor and s.link.to_id != exclude]
        return min(ahead, key=_ahead_key) if ahead else None

    def _best_behind(self, scored: list[_Scored], strict: bool = True,
                     exclude: Optional[str] = None) -> Optional[_Scored]:
        ceiling = -self.dead_band if strict else 0.0
        behind = [s for s in scored if s.projection < ceiling and s.link.to_id != exclude]
        return min(behind, key=_behind_key) if behind else None
