"""Incrementally maintained panorama index."""

import threading
from typing import Any, Callable, Iterable, Optional

from .cache import LRUCache, bucket_key
from .config import resolve_config
from .geo import bearing_between
from .graph import PanoGraph, SequenceEntry
from .links import nearby_links
from .logger import Logger
from .models import (
    InvalidPointError,
    LastPick,
    Link,
    MergeReport,
    NavigationState,
    PickResult,
    Point,
    Segment,
    SequenceLinks,
    SkippedRecord,
    normalize_sequence_tag,
)
from .ordering import STRATEGY_CAPPED, order_sequence
from .picker import DirectionPicker, pick_link_by_yaw
from .scheduler import CancellationToken, RebuildScheduler
from .spatial import SpatialIndex


def _normalize_path(path: Optional[str]) -> str:
    return (path or "").strip().lower().replace("\\", "/")


class IncrementalIndex:
    """The known panoramas of one dataset and the graph derived from them.

    merge() and remove() only touch the raw point set and mark the affected
    sequences dirty. Dirty sequences are re-ordered and re-linked by a
    debounced rebuild that publishes a new PanoGraph snapshot in one swap;
    every read goes through the current snapshot, so readers see either the
    old graph or the new one, never a mix.

    Each instance owns its caches. Keep separate instances for separate
    datasets (for example on-screen points vs. background coverage).
    """

    def __init__(self, config: Optional[dict] = None, logger: Optional[Logger] = None,
                 name: str = "points"):
        self.config = resolve_config(config)
        self.name = name
        self.logger = logger or Logger(echo=False)
        self.picker = DirectionPicker(dead_band=self.config["pick_dead_band"],
                                      yaw_offset=self.config["yaw_offset_deg"])
        self.bbox_cache = LRUCache(self.config["lru_capacity"])
        self.image_cache = LRUCache(self.config["image_cache_capacity"])

        self._lock = threading.RLock()
        self._points: dict[str, Point] = {}
        self._members: dict[str, set[str]] = {}  # sequence_id -> point ids
        self._dirty: set[str] = set()
        self._entries: dict[str, SequenceEntry] = {}
        self._spatial = SpatialIndex(self.config["spatial_cell_meters"])
        self._snapshot = PanoGraph.empty()
        self._vanish_listeners: list[Callable[[str], None]] = []
        self._scheduler = RebuildScheduler(
            self._rebuild, delay_ms=self.config["sequence_rebuild_debounce_ms"]
        )

    # ------------------------------------------------------------------
    # Writes

    def merge(self, records: Iterable[Any]) -> MergeReport:
        """Upsert a batch of raw records (or Points) by id.

        Malformed records are skipped and reported; the rest of the batch
        still goes in.
        """
        return self._apply(records, prune=False)

    def replace_all(self, records: Iterable[Any]) -> MergeReport:
        """Make the point set match a batch: upsert it and drop everything else"""
        return self._apply(records, prune=True)

    def remove(self, point_id: str) -> bool:
        """Forget a point. Vanish listeners hear about it so navigation can fail over."""
        with self._lock:
            point = self._forget(point_id)
            if point is None:
                return False
            self._dirty.add(point.sequence_id)
        self._scheduler.request()
        self._notify_vanished(point_id)
        return True

    def _apply(self, records: Iterable[Any], prune: bool) -> MergeReport:
        report = MergeReport()
        with self._lock:
            for i, record in enumerate(records):
                try:
                    point = record if isinstance(record, Point) else Point.from_dict(record)
                except InvalidPointError as e:
                    report.skipped.append(SkippedRecord(index=i, record=record, reason=str(e)))
                    continue
                self._upsert(point, report)
            if prune:
                fresh = set(report.inserted) | set(report.updated) | set(report.unchanged)
                for point_id in sorted(pid for pid in self._points if pid not in fresh):
                    point = self._forget(point_id)
                    report.removed.append(point_id)
                    report.dirty_sequences.add(point.sequence_id)
            self._dirty |= report.dirty_sequences

        if report.skipped:
            self.logger.log(f"Skipped {len(report.skipped)} malformed point record(s)", {
                "index": self.name,
                "reasons": [s.reason for s in report.skipped[:5]],
            })
        if report.changed:
            self._scheduler.request()
        for point_id in report.removed:
            self._notify_vanished(point_id)
        return report

    def _upsert(self, point: Point, report: MergeReport):
        existing = self._points.get(point.id)
        if existing == point:
            report.unchanged.append(point.id)
            return
        if existing is None:
            report.inserted.append(point.id)
        else:
            report.updated.append(point.id)
            if existing.sequence_id != point.sequence_id:
                self._drop_member(existing)
                report.dirty_sequences.add(existing.sequence_id)
        self._points[point.id] = point
        self._members.setdefault(point.sequence_id, set()).add(point.id)
        self._spatial.insert(point.id, point.lat, point.lon)
        report.dirty_sequences.add(point.sequence_id)

    def _forget(self, point_id: str) -> Optional[Point]:
        point = self._points.pop(point_id, None)
        if point is not None:
            self._drop_member(point)
            self._spatial.remove(point_id)
        return point

    def _drop_member(self, point: Point):
        members = self._members.get(point.sequence_id)
        if members is None:
            return
        members.discard(point.id)
        if not members:
            del self._members[point.sequence_id]

    def add_vanish_listener(self, listener: Callable[[str], None]):
        self._vanish_listeners.append(listener)

    def remove_vanish_listener(self, listener: Callable[[str], None]):
        if listener in self._vanish_listeners:
            self._vanish_listeners.remove(listener)

    def _notify_vanished(self, point_id: str):
        for listener in list(self._vanish_listeners):
            listener(point_id)

    # ------------------------------------------------------------------
    # Rebuild

    @property
    def rebuild_state(self):
        return self._scheduler.state

    @property
    def is_dirty(self) -> bool:
        with self._lock:
            return bool(self._dirty)

    def flush(self):
        """Rebuild pending sequences now instead of waiting for the debounce"""
        self._scheduler.flush()

    def close(self):
        """Cancel any scheduled rebuild"""
        self._scheduler.cancel()

    def _rebuild(self, token: CancellationToken):
        with self._lock:
            dirty = set(self._dirty)
            if not dirty:
                return
            self._dirty.clear()
            groups = {
                seq: [self._points[pid] for pid in self._members.get(seq, ())]
                for seq in dirty
            }
            points = dict(self._points)
            entries = dict(self._entries)
            previous = self._snapshot

        try:
            strategies = {}
            for sequence_id, group in groups.items():
                if token.cancelled:
                    with self._lock:
                        self._dirty |= dirty
                    return
                if not group:
                    entries.pop(sequence_id, None)
                    continue
                result = order_sequence(
                    group,
                    spread_ratio=self.config["natural_order_spread_ratio"],
                    size_ceiling=self.config["spatial_walk_size_ceiling"],
                )
                if result.strategy == STRATEGY_CAPPED:
                    self.logger.log("Sequence too large for spatial ordering, keeping name order", {
                        "index": self.name,
                        "sequence": sequence_id,
                        "points": len(group),
                        "ceiling": self.config["spatial_walk_size_ceiling"],
                    })
                entries[sequence_id] = SequenceEntry.from_order(result)
                strategies[sequence_id] = result.strategy
            snapshot = PanoGraph(points, entries, previous=previous, changed=groups)
        except Exception:
            with self._lock:
                self._dirty |= dirty
            raise

        with self._lock:
            self._entries = entries
            self._snapshot = snapshot

        self.logger.log("Rebuilt sequences", {
            "index": self.name,
            "rebuilt": len(groups),
            "sequences": len(entries),
            "points": len(points),
            "strategies": strategies,
        })

    # ------------------------------------------------------------------
    # Reads (always against one snapshot)

    @property
    def snapshot(self) -> PanoGraph:
        with self._lock:
            return self._snapshot

    def __len__(self) -> int:
        return len(self.snapshot)

    def __contains__(self, point_id: str) -> bool:
        return point_id in self.snapshot

    def get_point(self, point_id: str) -> Optional[Point]:
        return self.snapshot.get_point(point_id)

    def sequences(self) -> list[str]:
        return sorted(self.snapshot.sequences)

    def strategy_for(self, sequence_id: str) -> Optional[str]:
        return self.snapshot.strategy(normalize_sequence_tag(sequence_id))

    def get_sequence_order(self, sequence_id: str) -> list[str]:
        """Ordered point ids of a sequence (raw tags are normalized)"""
        return self.snapshot.sequence_order(normalize_sequence_tag(sequence_id))

    def max_hop_for(self, zoom: Optional[float] = None) -> float:
        if zoom is None:
            zoom = self.config["default_zoom"]
        return self.config["hop_threshold_by_zoom"](zoom)

    def get_segments(self, sequence_id: Optional[str] = None, zoom: Optional[float] = None,
                     max_hop: Optional[float] = None) -> list[Segment]:
        """Polylines for one sequence, or for all of them"""
        snapshot = self.snapshot
        if max_hop is None:
            max_hop = self.max_hop_for(zoom)
        if sequence_id is None:
            sequence_ids = sorted(snapshot.sequences)
        else:
            sequence_ids = [normalize_sequence_tag(sequence_id)]
        segments = []
        for seq in sequence_ids:
            segments.extend(snapshot.segments(seq, max_hop))
        return segments

    def get_links(self, point_id: str) -> SequenceLinks:
        return self.snapshot.get_links(point_id)

    def candidate_links(self, point_id: str, free_form: bool = False) -> list[Link]:
        """Sequence links, or every nearby panorama when free_form is set"""
        if free_form:
            return self.nearby_links(point_id)
        return self.get_links(point_id).as_list()

    def pick_direction(self, point_id: str, yaw: float,
                       hint: Optional[tuple[float, float]] = None,
                       state: Optional[NavigationState] = None,
                       free_form: bool = False) -> PickResult:
        """Forward/backward targets from a point given the viewer's yaw.

        When a NavigationState is passed its last pick feeds the hysteresis
        and is updated with this result.
        """
        links = self.candidate_links(point_id, free_form=free_form)
        last_pick = state.last_pick if state is not None else None
        result = self.picker.pick(links, yaw, hint=hint, last_pick=last_pick)
        if state is not None:
            state.current_yaw = yaw
            if not result.is_empty:
                state.last_pick = LastPick.from_result(result)
        return result

    def pick_by_yaw(self, point_id: str, yaw: float, max_delta: Optional[float] = None,
                    free_form: bool = False) -> Optional[Link]:
        """The candidate closest to where the viewer looks, within max_delta degrees"""
        if max_delta is None:
            max_delta = self.config["pick_max_delta"]
        links = self.candidate_links(point_id, free_form=free_form)
        return pick_link_by_yaw(links, yaw + self.config["yaw_offset_deg"], max_delta)

    def nearby_links(self, point_id: str, radius: Optional[float] = None,
                     limit: Optional[int] = None) -> list[Link]:
        """Links to every panorama within radius meters, nearest first"""
        snapshot = self.snapshot
        origin = snapshot.get_point(point_id)
        if origin is None:
            return []
        if radius is None:
            radius = self.config["nearby_radius"]
        with self._lock:
            hits = self._spatial.within(origin.lat, origin.lon, radius)
        candidates = [snapshot.points[pid] for pid, _ in hits if pid in snapshot]
        return nearby_links(origin, candidates, radius=radius, limit=limit)

    def find_nearest(self, lat: float, lon: float,
                     sequence_id: Optional[str] = None,
                     exclude: Optional[str] = None) -> Optional[str]:
        """Closest known panorama to a location, optionally within one sequence"""
        snapshot = self.snapshot
        seq = normalize_sequence_tag(sequence_id) if sequence_id is not None else None

        def accept(point_id: str) -> bool:
            if point_id == exclude or point_id not in snapshot:
                return False
            return seq is None or snapshot.sequence_of(point_id) == seq

        with self._lock:
            hit = self._spatial.nearest(lat, lon, accept=accept)
        return hit[0] if hit else None

    def find_by_image_ref(self, image_ref: str) -> Optional[str]:
        """Id of the panorama whose image ref matches (or ends with) the given path"""
        needle = _normalize_path(image_ref)
        if not needle:
            return None
        snapshot = self.snapshot
        suffix_match = None
        for point_id in sorted(snapshot.points):
            ref = _normalize_path(snapshot.points[point_id].image_ref)
            if ref == needle:
                return point_id
            if suffix_match is None and ref.endswith(needle):
                suffix_match = point_id
        return suffix_match

    def forward_bearing_for(self, point_id: str) -> float:
        """Initial facing: towards the nearest point of the same sequence, else the nearest overall"""
        snapshot = self.snapshot
        point = snapshot.get_point(point_id)
        if point is None:
            return 0.0
        nearest = (self.find_nearest(point.lat, point.lon, sequence_id=point.sequence_id,
                                     exclude=point_id)
                   or self.find_nearest(point.lat, point.lon, exclude=point_id))
        if nearest is None:
            return 0.0
        target = snapshot.points[nearest]
        return bearing_between(point.lat, point.lon, target.lat, target.lon)

    def prefetch_candidates(self, point_id: str, count: Optional[int] = None) -> list[str]:
        """Image refs worth buffering: next, prev, then the nearest panoramas"""
        snapshot = self.snapshot
        if point_id not in snapshot:
            return []
        if count is None:
            count = self.config["prefetch_count"]
        links = snapshot.get_links(point_id)
        ordered = [link.to_id for link in links.as_list()]
        ordered += [link.to_id for link in self.nearby_links(point_id, limit=count)]
        refs = []
        for target in ordered:
            ref = snapshot.points[target].image_ref
            if ref and ref not in refs:
                refs.append(ref)
        return refs

    # ------------------------------------------------------------------
    # Query caches

    def cache_key_for(self, lat: float, lon: float, zoom: float) -> str:
        return bucket_key(lat, lon, zoom, self.config["bucket_grid_meters"])

    def cached_batch(self, key: str) -> Optional[list]:
        return self.bbox_cache.get(key)

    def remember_batch(self, key: str, items: list):
        self.bbox_cache.put(key, items)

    def cached_image(self, image_ref: str) -> Optional[Any]:
        return self.image_cache.get(_normalize_path(image_ref))

    def remember_image(self, image_ref: str, blob: Any):
        self.image_cache.put(_normalize_path(image_ref), blob)
