"""Directional links between panoramas."""

from typing import Iterable, Optional

from .geo import bearing_between, haversine_distance
from .models import Link, Point, SequenceLinks, ROLE_NEXT, ROLE_PREV


def link_between(origin: Point, target: Point, role: Optional[str] = None) -> Link:
    """Link from origin to target carrying the bearing and hop length"""
    return Link(
        from_id=origin.id,
        to_id=target.id,
        bearing=bearing_between(origin.lat, origin.lon, target.lat, target.lon),
        role=role,
        distance=haversine_distance(origin.lat, origin.lon, target.lat, target.lon),
    )


def build_sequence_links(ordered: list[Point]) -> dict[str, SequenceLinks]:
    """next/prev links for every point of one ordered sequence.

    Sequence ends lack the corresponding link; a lone point has none.
    """
    links: dict[str, SequenceLinks] = {}
    last = len(ordered) - 1
    for i, point in enumerate(ordered):
        prev_link = link_between(point, ordered[i - 1], ROLE_PREV) if i > 0 else None
        next_link = link_between(point, ordered[i + 1], ROLE_NEXT) if i < last else None
        links[point.id] = SequenceLinks(next=next_link, prev=prev_link)
    return links


def nearby_links(
    origin: Point,
    candidates: Iterable[Point],
    radius: Optional[float] = None,
    limit: Optional[int] = None,
) -> list[Link]:
    """Free-form links from origin to other panoramas, nearest first.

    Used for hotspot navigation, where any neighbor (not just the sequence
    neighbors) is a valid jump target.
    """
    links = []
    for candidate in candidates:
        if candidate.id == origin.id:
            continue
        link = link_between(origin, candidate)
        if radius is not None and link.distance > radius:
            continue
        links.append(link)
    links.sort(key=lambda link: (link.distance, link.to_id))
    if limit is not None:
        links = links[:limit]
    return links
