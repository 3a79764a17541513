"""Grid-based spatial index for nearest-panorama lookups."""

import math
from typing import Callable, Optional

from .geo import EARTH_RADIUS, haversine_distance

METERS_PER_DEGREE = 111_320.0
ARC_METERS_PER_DEGREE = math.radians(1) * EARTH_RADIUS  # same sphere as haversine_distance


class SpatialIndex:
    """Buckets point ids into a lat/lon grid of roughly cell_meters squares.

    Nearest-neighbor queries scan rings of cells outwards from the query
    cell and stop once the next ring cannot hold anything closer.
    """

    def __init__(self, cell_meters: float = 50):
        self.cell_size = cell_meters / METERS_PER_DEGREE  # degrees
        self._cells: dict[tuple[int, int], set[str]] = {}
        self._locations: dict[str, tuple[float, float]] = {}

    def _cell(self, lat: float, lon: float) -> tuple[int, int]:
        return math.floor(lat / self.cell_size), math.floor(lon / self.cell_size)

    def __len__(self) -> int:
        return len(self._locations)

    def __contains__(self, point_id: str) -> bool:
        return point_id in self._locations

    def insert(self, point_id: str, lat: float, lon: float):
        """Add a point, or move it if already indexed"""
        if point_id in self._locations:
            self.remove(point_id)
        self._locations[point_id] = (lat, lon)
        self._cells.setdefault(self._cell(lat, lon), set()).add(point_id)

    def remove(self, point_id: str) -> bool:
        location = self._locations.pop(point_id, None)
        if location is None:
            return False
        cell = self._cell(*location)
        members = self._cells.get(cell)
        if members is not None:
            members.discard(point_id)
            if not members:
                del self._cells[cell]
        return True

    def _ring(self, center: tuple[int, int], radius: int):
        ci, cj = center
        if radius == 0:
            yield center
            return
        for di in range(-radius, radius + 1):
            for dj in (-radius, radius):
                yield ci + di, cj + dj
        for dj in range(-radius + 1, radius):
            for di in (-radius, radius):
                yield ci + di, cj + dj

    def _ring_width_meters(self, lat: float) -> float:
        # Lower bound on one cell's width near lat: longitude cells narrow
        # towards the poles, so take the narrower side half a degree poleward
        k = max(0.01, math.cos(math.radians(min(89.0, abs(lat) + 0.5))))
        return self.cell_size * ARC_METERS_PER_DEGREE * k

    def nearest(self, lat: float, lon: float,
                accept: Optional[Callable[[str], bool]] = None) -> Optional[tuple[str, float]]:
        """(id, meters) of the closest accepted point, ties broken by id"""
        if not self._locations:
            return None
        center = self._cell(lat, lon)
        width = self._ring_width_meters(lat)
        best: Optional[tuple[float, str]] = None

        def consider(point_id: str):
            nonlocal best
            if accept is not None and not accept(point_id):
                return
            plat, plon = self._locations[point_id]
            candidate = (haversine_distance(lat, lon, plat, plon), point_id)
            if best is None or candidate < best:
                best = candidate

        seen = 0
        radius = 0
        while seen < len(self._locations):
            if best is not None and (radius - 1) * width > best[0]:
                break
            if 8 * radius > len(self._cells):
                # Sparse grid: scanning every point beats walking empty rings
                for point_id in self._locations:
                    consider(point_id)
                break
            for cell in self._ring(center, radius):
                for point_id in self._cells.get(cell, ()):
                    seen += 1
                    consider(point_id)
            radius += 1
        if best is None:
            return None
        return best[1], best[0]

    def within(self, lat: float, lon: float, radius_meters: float) -> list[tuple[str, float]]:
        """(id, meters) of every point within radius, nearest first"""
        width = self._ring_width_meters(lat)
        rings = int(math.ceil(radius_meters / width)) + 1
        if (2 * rings + 1) ** 2 > len(self._cells):
            candidates = list(self._locations)
        else:
            center = self._cell(lat, lon)
            candidates = [
                point_id
                for radius in range(rings + 1)
                for cell in self._ring(center, radius)
                for point_id in self._cells.get(cell, ())
            ]
        found = []
        for point_id in candidates:
            plat, plon = self._locations[point_id]
            distance = haversine_distance(lat, lon, plat, plon)
            if distance <= radius_meters:
                found.append((point_id, distance))
        found.sort(key=lambda item: (item[1], item[0]))
        return found
