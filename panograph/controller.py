"""Input edge detection and the navigation session that drives an index."""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .geo import norm360
from .models import LastPick, Link, NavigationState, PickResult, ROLE_PREV
from .picker import TravelHint


class EdgeState(Enum):
    UP = "up"
    DOWN = "down"


class ButtonEdge:
    """Fires once per press: only the UP -> DOWN transition counts"""

    def __init__(self):
        self.state = EdgeState.UP

    def update(self, pressed: bool) -> bool:
        if pressed:
            fired = self.state is EdgeState.UP
            self.state = EdgeState.DOWN
            return fired
        self.state = EdgeState.UP
        return False


class StickEdge:
    """Turns an analog axis into discrete pushes.

    update() returns +1 or -1 when the axis crosses the threshold from
    neutral, 0 otherwise. The stick must come back inside the release band
    before it can fire again.
    """

    def __init__(self, threshold: float = 0.6, release: float = 0.3):
        if release > threshold:
            raise ValueError("release band must not exceed the threshold")
        self.threshold = threshold
        self.release = release
        self.held = 0

    def update(self, value: float) -> int:
        if self.held:
            if abs(value) < self.release:
                self.held = 0
            return 0
        if value >= self.threshold:
            self.held = 1
        elif value <= -self.threshold:
            self.held = -1
        return self.held


@dataclass(frozen=True)
class NavigationEvent:
    from_id: Optional[str]
    to_id: Optional[str]


class NavigateNext(NavigationEvent):
    pass


class NavigatePrev(NavigationEvent):
    pass


class PointVanished(NavigationEvent):
    """The current point left the index; to_id is the failover target (or None)"""


class NavigationSession:
    """One viewer walking through an index"""

    def __init__(self, index, start_id: Optional[str] = None,
                 on_event: Optional[Callable[[NavigationEvent], None]] = None,
                 free_form: bool = False):
        self.index = index
        self.on_event = on_event
        self.free_form = free_form
        self.state = NavigationState()
        cfg = index.config
        self.hint = TravelHint(smoothing=cfg["hint_smoothing"],
                               flip_angle=cfg["hint_flip_angle"],
                               flip_min_step=cfg["hint_flip_min_step"])
        self.next_button = ButtonEdge()
        self.prev_button = ButtonEdge()
        self.stick = StickEdge()
        self._position: Optional[tuple[float, float]] = None
        index.add_vanish_listener(self._on_vanished)
        if start_id is not None:
            self.jump_to(start_id)

    @property
    def current_id(self) -> Optional[str]:
        return self.state.current_point_id

    def close(self):
        self.index.remove_vanish_listener(self._on_vanished)

    def set_yaw(self, yaw: float):
        self.state.current_yaw = norm360(yaw)

    def jump_to(self, point_id: str, face_forward: bool = True) -> bool:
        """Teleport to a point, optionally turning towards its sequence"""
        point = self.index.get_point(point_id)
        if point is None:
            return False
        self._arrive(point_id, point.lat, point.lon)
        self.hint.reset()
        self.hint.update(point.lat, point.lon)
        if face_forward:
            bearing = self.index.forward_bearing_for(point_id)
            self.state.current_yaw = norm360(bearing - self.index.config["yaw_offset_deg"])
        return True

    def options(self) -> PickResult:
        if self.current_id is None:
            return PickResult()
        return self.index.pick_direction(self.current_id, self.state.current_yaw,
                                         hint=self.hint.vector, state=self.state,
                                         free_form=self.free_form)

    def step(self, direction: str = "forward") -> Optional[NavigationEvent]:
        """Move one panorama forward or back; None at a dead end"""
        if direction not in ("forward", "back"):
            raise ValueError(f"direction must be 'forward' or 'back', got {direction!r}")
        result = self.options()
        link = result.forward if direction == "forward" else result.backward
        return self._follow(link, NavigateNext if direction == "forward" else NavigatePrev)

    def gaze_target(self) -> Optional[Link]:
        """The link the viewer is looking straight at (narrow gaze cone), if any"""
        if self.current_id is None:
            return None
        return self.index.pick_by_yaw(self.current_id, self.state.current_yaw,
                                      max_delta=self.index.config["gaze_max_delta"],
                                      free_form=self.free_form)

    def follow_gaze(self) -> Optional[NavigationEvent]:
        """Dwell selection: move to the gazed-at panorama"""
        link = self.gaze_target()
        if link is None:
            return None
        return self._follow(link, NavigatePrev if link.role == ROLE_PREV else NavigateNext)

    def _follow(self, link: Optional[Link], event_type) -> Optional[NavigationEvent]:
        if link is None:
            return None
        target = self.index.get_point(link.to_id)
        if target is None:
            return None
        self._arrive(target.id, target.lat, target.lon)
        self.hint.update(target.lat, target.lon)
        return self._emit(event_type(link.from_id, link.to_id))

    def handle_buttons(self, next_pressed: bool, prev_pressed: bool) -> list[NavigationEvent]:
        """Feed raw button levels; a held button moves only once"""
        events = []
        if self.next_button.update(next_pressed):
            event = self.step("forward")
            if event is not None:
                events.append(event)
        if self.prev_button.update(prev_pressed):
            event = self.step("back")
            if event is not None:
                events.append(event)
        return events

    def handle_stick(self, value: float) -> Optional[NavigationEvent]:
        """Feed the forward/back stick axis (positive is forward)"""
        push = self.stick.update(value)
        if push > 0:
            return self.step("forward")
        if push < 0:
            return self.step("back")
        return None

    def _arrive(self, point_id: Optional[str], lat: Optional[float] = None,
                lon: Optional[float] = None):
        self.state.current_point_id = point_id
        self.state.last_pick = LastPick()
        self._position = (lat, lon) if point_id is not None else None

    def _emit(self, event: NavigationEvent) -> NavigationEvent:
        if self.on_event is not None:
            self.on_event(event)
        return event

    def _on_vanished(self, point_id: str):
        if point_id != self.current_id or self._position is None:
            return
        lat, lon = self._position
        target = self.index.find_nearest(lat, lon, exclude=point_id)
        if target is None:
            self._arrive(None)
            self.hint.reset()
        else:
            point = self.index.get_point(target)
            self._arrive(target, point.lat, point.lon)
        self._emit(PointVanished(point_id, target))
