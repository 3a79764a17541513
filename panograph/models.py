"""Data classes for Panograph."""

import math
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Optional

DEFAULT_SEQUENCE = "default"

ROLE_NEXT = "next"
ROLE_PREV = "prev"

# Accepted spellings for each canonical field, first match wins
_ID_KEYS = ("id",)
_LAT_KEYS = ("lat", "latitude")
_LON_KEYS = ("lon", "lng", "longitude")
_SEQUENCE_KEYS = ("sequence", "sequenceTag", "sequence_tag")
_IMAGE_KEYS = ("imageRef", "imagePath", "image_ref", "image_path")
_TIME_KEYS = ("capturedAt", "captured_at")


class InvalidPointError(ValueError):
    """A raw record that cannot become a Point"""


def normalize_sequence_tag(tag: Optional[str]) -> str:
    """Case/whitespace-normalize a sequence tag; blank means the default sequence"""
    normalized = (tag or "").strip().lower()
    return normalized or DEFAULT_SEQUENCE


def _first(record: dict, keys: tuple) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def _coordinate(value: Any, name: str, limit: float) -> float:
    if value is None:
        raise InvalidPointError(f"missing {name}")
    if isinstance(value, bool):
        raise InvalidPointError(f"{name} is not a number: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidPointError(f"{name} is not a number: {value!r}")
    if not math.isfinite(number):
        raise InvalidPointError(f"{name} is not finite: {value!r}")
    if abs(number) > limit:
        raise InvalidPointError(f"{name} out of range: {number}")
    return number


def _timestamp(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, (int, float)) and math.isfinite(value):
        return float(value)
    return None


@dataclass(frozen=True)
class Point:
    """One panorama capture location"""
    id: str
    lat: float
    lon: float
    sequence_tag: str = ""
    captured_at: Optional[float] = None
    image_ref: str = ""
    name: Optional[str] = None

    @property
    def sequence_id(self) -> str:
        return normalize_sequence_tag(self.sequence_tag)

    @property
    def order_key_source(self) -> str:
        """Text the orderer mines for frame numbers: image ref, else name, else id"""
        return self.image_ref or self.name or self.id

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, record: dict) -> "Point":
        """Build a Point from any of the record shapes the data sources emit.

        Raises InvalidPointError for records without a usable id or
        coordinates.
        """
        if not isinstance(record, dict):
            raise InvalidPointError(f"record is not a mapping: {type(record).__name__}")

        raw_id = _first(record, _ID_KEYS)
        if isinstance(raw_id, bool) or raw_id is None:
            raise InvalidPointError("missing id")
        point_id = str(raw_id).strip()
        if not point_id:
            raise InvalidPointError("empty id")

        lat = _coordinate(_first(record, _LAT_KEYS), "latitude", 90.0)
        lon = _coordinate(_first(record, _LON_KEYS), "longitude", 180.0)

        sequence = _first(record, _SEQUENCE_KEYS)
        image_ref = _first(record, _IMAGE_KEYS)
        name = record.get("name")

        return cls(
            id=point_id,
            lat=lat,
            lon=lon,
            sequence_tag=str(sequence) if sequence is not None else "",
            captured_at=_timestamp(_first(record, _TIME_KEYS)),
            image_ref=str(image_ref) if image_ref is not None else "",
            name=str(name) if name is not None else None,
        )


@dataclass(frozen=True)
class Link:
    """Directed navigation edge from one panorama to another"""
    from_id: str
    to_id: str
    bearing: float  # degrees clockwise from north
    role: Optional[str] = None  # "next", "prev" or None for free-form neighbors
    distance: Optional[float] = None  # meters

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SequenceLinks:
    """The formal next/prev links of one point (absent at sequence ends)"""
    next: Optional[Link] = None
    prev: Optional[Link] = None

    def as_list(self) -> list[Link]:
        return [link for link in (self.next, self.prev) if link is not None]

    def to_dict(self) -> dict:
        return {
            "next": self.next.to_dict() if self.next else None,
            "prev": self.prev.to_dict() if self.prev else None,
        }


@dataclass(frozen=True)
class Segment:
    """A gap-free run of an ordered sequence, drawable as one polyline"""
    sequence_id: str
    point_ids: tuple[str, ...]
    coords: tuple[tuple[float, float], ...]  # (lat, lon)

    def __len__(self) -> int:
        return len(self.point_ids)


@dataclass(frozen=True)
class PickResult:
    """Outcome of a direction pick; either side may be a dead end"""
    forward: Optional[Link] = None
    backward: Optional[Link] = None

    @property
    def is_empty(self) -> bool:
        return self.forward is None and self.backward is None

    def to_dict(self) -> dict:
        result = {}
        if self.forward:
            result["forward"] = self.forward.to_dict()
        if self.backward:
            result["backward"] = self.backward.to_dict()
        return result


@dataclass
class LastPick:
    """Targets chosen last time, used to resist flicker"""
    forward_id: Optional[str] = None
    backward_id: Optional[str] = None

    @classmethod
    def from_result(cls, result: PickResult) -> "LastPick":
        return cls(
            forward_id=result.forward.to_id if result.forward else None,
            backward_id=result.backward.to_id if result.backward else None,
        )


@dataclass
class NavigationState:
    """Per-viewer navigation state (never persisted)"""
    current_point_id: Optional[str] = None
    current_yaw: float = 0.0
    last_pick: LastPick = field(default_factory=LastPick)


@dataclass(frozen=True)
class BoundingBox:
    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @property
    def center(self) -> tuple[float, float]:
        """(lat, lon) of the box center"""
        return (self.min_lat + self.max_lat) / 2, (self.min_lon + self.max_lon) / 2

    def to_query(self) -> dict:
        return {
            "minLatitude": self.min_lat,
            "maxLatitude": self.max_lat,
            "minLongitude": self.min_lon,
            "maxLongitude": self.max_lon,
        }

    def tiles(self, tile_deg: float) -> list["BoundingBox"]:
        """Split into tile_deg squares (edge tiles are clipped to the box)"""
        if tile_deg <= 0:
            raise ValueError("tile_deg must be positive")
        # Rounded so float noise in the span never adds a sliver tile
        cols = math.ceil(round((self.max_lon - self.min_lon) / tile_deg, 9))
        rows = math.ceil(round((self.max_lat - self.min_lat) / tile_deg, 9))
        tiles = []
        for col in range(cols):
            lon = self.min_lon + col * tile_deg
            for row in range(rows):
                lat = self.min_lat + row * tile_deg
                tiles.append(BoundingBox(
                    min_lon=lon,
                    min_lat=lat,
                    max_lon=self.max_lon if col == cols - 1 else lon + tile_deg,
                    max_lat=self.max_lat if row == rows - 1 else lat + tile_deg,
                ))
        return tiles

    @classmethod
    def parse(cls, text: str) -> "BoundingBox":
        """Parse 'min_lon,min_lat,max_lon,max_lat'"""
        parts = [float(p) for p in text.split(",")]
        if len(parts) != 4:
            raise ValueError(f"expected 4 comma-separated numbers, got {text!r}")
        return cls(*parts)


@dataclass(frozen=True)
class SkippedRecord:
    """A rejected input record and why"""
    index: int
    record: Any
    reason: str


@dataclass
class MergeReport:
    """What one merge() call did to the known point set"""
    inserted: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    skipped: list[SkippedRecord] = field(default_factory=list)
    dirty_sequences: set[str] = field(default_factory=set)

    @property
    def changed(self) -> bool:
        return bool(self.inserted or self.updated or self.removed)

    def summary(self) -> dict:
        return {
            "inserted": len(self.inserted),
            "updated": len(self.updated),
            "unchanged": len(self.unchanged),
            "removed": len(self.removed),
            "skipped": len(self.skipped),
            "dirty_sequences": sorted(self.dirty_sequences),
        }
