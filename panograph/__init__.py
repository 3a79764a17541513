"""Panograph - panorama sequence ordering, linking and navigation."""

from .config import CONFIG, hop_threshold_for_zoom, resolve_config
from .models import (
    Point,
    Link,
    SequenceLinks,
    Segment,
    PickResult,
    LastPick,
    NavigationState,
    BoundingBox,
    MergeReport,
    SkippedRecord,
    InvalidPointError,
    normalize_sequence_tag,
)
from .logger import Logger
from .geo import (
    haversine_distance,
    bearing_between,
    norm360,
    signed_angle_delta,
)
from .ordering import order_sequence, spatial_walk
from .segments import split_segments, build_segments
from .links import build_sequence_links, nearby_links
from .graph import PanoGraph
from .picker import DirectionPicker, TravelHint, pick_link_by_yaw, decide_by_yaw
from .cache import LRUCache, bucket_key
from .spatial import SpatialIndex
from .scheduler import RebuildScheduler, RebuildState, CancellationToken
from .index import IncrementalIndex
from .fetcher import PanoramaFetcher, ViewportLoader, CoveragePrefetcher, FetchError
from .controller import (
    ButtonEdge,
    StickEdge,
    NavigationSession,
    NavigateNext,
    NavigatePrev,
    PointVanished,
)
from .__main__ import main

__all__ = [
    "CONFIG",
    "hop_threshold_for_zoom",
    "resolve_config",
    "Point",
    "Link",
    "SequenceLinks",
    "Segment",
    "PickResult",
    "LastPick",
    "NavigationState",
    "BoundingBox",
    "MergeReport",
    "SkippedRecord",
    "InvalidPointError",
    "normalize_sequence_tag",
    "Logger",
    "haversine_distance",
    "bearing_between",
    "norm360",
    "signed_angle_delta",
    "order_sequence",
    "spatial_walk",
    "split_segments",
    "build_segments",
    "build_sequence_links",
    "nearby_links",
    "PanoGraph",
    "DirectionPicker",
    "TravelHint",
    "pick_link_by_yaw",
    "decide_by_yaw",
    "LRUCache",
    "bucket_key",
    "SpatialIndex",
    "RebuildScheduler",
    "RebuildState",
    "CancellationToken",
    "IncrementalIndex",
    "PanoramaFetcher",
    "ViewportLoader",
    "CoveragePrefetcher",
    "FetchError",
    "ButtonEdge",
    "StickEdge",
    "NavigationSession",
    "NavigateNext",
    "NavigatePrev",
    "PointVanished",
    "main",
]
