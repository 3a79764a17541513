"""Configuration settings for Panograph."""

from typing import Optional

# (minimum zoom, max hop meters), checked top to bottom
HOP_THRESHOLDS = [
    (25, 60),
    (16, 75),
    (15, 90),
    (14, 110),
]
DEFAULT_MAX_HOP = 140  # meters - anything zoomed out further than the table


def hop_threshold_for_zoom(zoom: float) -> float:
    """Max hop distance (meters) drawn as one polyline at a map zoom level"""
    for min_zoom, max_hop in HOP_THRESHOLDS:
        if zoom >= min_zoom:
            return max_hop
    return DEFAULT_MAX_HOP


CONFIG = {
    "hop_threshold_by_zoom": hop_threshold_for_zoom,
    "default_zoom": 16,
    "sequence_rebuild_debounce_ms": 300,  # coalesce bursts of merges
    "spatial_walk_size_ceiling": 3000,  # points - beyond this, pre-partition the sequence
    "natural_order_spread_ratio": 1 / 8,  # median hop / spread below which names are trusted
    "lru_capacity": 10,  # bbox query responses
    "image_cache_capacity": 8,  # panorama blobs
    # Direction picking
    "pick_dead_band": 0.08,  # projection (cosine) band treated as neither ahead nor behind
    "pick_max_delta": 60,  # degrees - look-left/look-right button taps
    "gaze_max_delta": 15,  # degrees - dwell selection
    "yaw_offset_deg": 0,  # viewer yaw + offset = compass bearing
    "hint_smoothing": 0.85,  # weight of the previous travel direction
    "hint_flip_angle": 60,  # degrees
    "hint_flip_min_step": 0.5,  # meters - sharper turns over shorter steps reset the hint
    # Spatial lookups
    "nearby_radius": 60,  # meters - free-form hotspot candidates
    "prefetch_count": 5,  # nearest panoramas buffered beyond next/prev
    "spatial_cell_meters": 50,
    "bucket_grid_meters": 64,  # bbox cache key resolution (Web Mercator meters)
    # Fetching
    "coverage_tile_deg": 0.5,
    "coverage_concurrency": 6,
    "fetch_page_size": 1000,
    "fetch_min_page_size": 200,
    "fetch_timeout": 30,  # seconds
    "fetch_retries": 2,  # total attempts = retries + 1
    "fetch_backoff": 0.4,  # seconds, grows x1.6 per attempt
}


def resolve_config(overrides: Optional[dict] = None) -> dict:
    """Merge caller overrides over the defaults.

    Unknown keys raise KeyError so a typo never silently falls back to a
    default.
    """
    config = dict(CONFIG)
    if not overrides:
        return config
    unknown = sorted(set(overrides) - set(CONFIG))
    if unknown:
        raise KeyError(f"Unknown config option(s): {', '.join(unknown)}")
    config.update(overrides)
    for key in ("lru_capacity", "image_cache_capacity", "spatial_walk_size_ceiling"):
        if int(config[key]) < 1:
            raise ValueError(f"{key} must be at least 1, got {config[key]}")
    if config["sequence_rebuild_debounce_ms"] < 0:
        raise ValueError("sequence_rebuild_debounce_ms must not be negative")
    return config
