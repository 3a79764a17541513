"""Navigation graph snapshot."""

from typing import Iterable, NamedTuple, Optional

import networkx as nx

from .links import build_sequence_links
from .models import Point, SequenceLinks, ROLE_NEXT, ROLE_PREV
from .ordering import OrderResult
from .segments import build_segments


class SequenceEntry(NamedTuple):
    """Ordering and link graph of one sequence, reused until its members change"""
    order: tuple[str, ...]
    strategy: str
    graph: nx.DiGraph

    @classmethod
    def from_order(cls, result: OrderResult) -> "SequenceEntry":
        graph = nx.DiGraph()
        for point in result.points:
            graph.add_node(point.id, lat=point.lat, lon=point.lon)
        for links in build_sequence_links(result.points).values():
            for link in links.as_list():
                graph.add_edge(link.from_id, link.to_id,
                               role=link.role,
                               bearing=link.bearing,
                               distance=link.distance,
                               link=link)
        return cls(order=tuple(p.id for p in result.points),
                   strategy=result.strategy,
                   graph=graph)

    def links_of(self, point_id: str) -> SequenceLinks:
        """next/prev links read back from the role-tagged out-edges"""
        if point_id not in self.graph:
            return SequenceLinks()
        by_role = {data["role"]: data["link"]
                   for _, _, data in self.graph.out_edges(point_id, data=True)}
        return SequenceLinks(next=by_role.get(ROLE_NEXT), prev=by_role.get(ROLE_PREV))


class PanoGraph:
    """Graph of panoramas and their next/prev links.

    A snapshot is built once per rebuild cycle and never modified afterwards,
    so readers holding a reference always see a consistent link graph. Links
    never cross sequences, so each sequence keeps its own networkx graph;
    a rebuild only builds graphs for the sequences that changed and shares
    the rest with the previous snapshot.
    """

    def __init__(self, points: dict[str, Point], sequences: dict[str, SequenceEntry],
                 previous: Optional["PanoGraph"] = None,
                 changed: Optional[Iterable[str]] = None):
        self.points = dict(points)
        self.sequences = dict(sequences)

        if previous is None or changed is None:
            self.positions: dict[str, tuple[str, int]] = {}  # point_id -> (sequence_id, index)
            changed = self.sequences
        else:
            self.positions = dict(previous.positions)
            for sequence_id in changed:
                old = previous.sequences.get(sequence_id)
                for point_id in (old.order if old else ()):
                    if self.positions.get(point_id, (None,))[0] == sequence_id:
                        del self.positions[point_id]

        for sequence_id in changed:
            entry = self.sequences.get(sequence_id)
            for index, point_id in enumerate(entry.order if entry else ()):
                self.positions[point_id] = (sequence_id, index)

    @classmethod
    def empty(cls) -> "PanoGraph":
        return cls({}, {})

    def __len__(self) -> int:
        return len(self.points)

    def __contains__(self, point_id: str) -> bool:
        return point_id in self.points

    def get_point(self, point_id: str) -> Optional[Point]:
        return self.points.get(point_id)

    def get_node_location(self, point_id: str) -> Optional[tuple[float, float]]:
        """Get lat/lon of a point"""
        point = self.points.get(point_id)
        return (point.lat, point.lon) if point else None

    def _entry_of(self, point_id: str) -> Optional[SequenceEntry]:
        position = self.positions.get(point_id)
        return self.sequences[position[0]] if position else None

    def get_neighbors(self, point_id: str) -> list[str]:
        """Ids reachable in one step"""
        entry = self._entry_of(point_id)
        if entry is None:
            return []
        return list(entry.graph.successors(point_id))

    def get_links(self, point_id: str) -> SequenceLinks:
        entry = self._entry_of(point_id)
        if entry is None:
            return SequenceLinks()
        return entry.links_of(point_id)

    def sequence_order(self, sequence_id: str) -> list[str]:
        entry = self.sequences.get(sequence_id)
        return list(entry.order) if entry else []

    def sequence_points(self, sequence_id: str) -> list[Point]:
        return [self.points[pid] for pid in self.sequence_order(sequence_id)]

    def strategy(self, sequence_id: str) -> Optional[str]:
        entry = self.sequences.get(sequence_id)
        return entry.strategy if entry else None

    def sequence_of(self, point_id: str) -> Optional[str]:
        position = self.positions.get(point_id)
        return position[0] if position else None

    def segments(self, sequence_id: str, max_hop: float) -> list:
        return build_segments(sequence_id, self.sequence_points(sequence_id), max_hop)

    def reachable_from(self, point_id: str) -> set[str]:
        """Every panorama reachable by repeatedly following links"""
        entry = self._entry_of(point_id)
        if entry is None:
            return set()
        return nx.descendants(entry.graph, point_id) | {point_id}
