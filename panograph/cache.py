"""Small bounded caches."""

import threading
from collections import OrderedDict
from typing import Any, Hashable, Optional

from .config import CONFIG
from .geo import project_mercator


class LRUCache:
    """Least-recently-used mapping with a fixed capacity"""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._items: OrderedDict = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            if key not in self._items:
                return default
            self._items.move_to_end(key)
            return self._items[key]

    def put(self, key: Hashable, value: Any):
        with self._lock:
            self._items[key] = value
            self._items.move_to_end(key)
            while len(self._items) > self.capacity:
                self._items.popitem(last=False)

    def pop(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            return self._items.pop(key, default)

    def clear(self):
        with self._lock:
            self._items.clear()

    def keys(self) -> list:
        """Keys from least to most recently used"""
        with self._lock:
            return list(self._items)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def bucket_key(lat: float, lon: float, zoom: float, grid_meters: Optional[float] = None) -> str:
    """Cache key for a map view: center snapped to a Web Mercator grid, plus zoom"""
    grid = grid_meters or CONFIG["bucket_grid_meters"]
    x, y = project_mercator(lat, lon)
    return f"{round(x / grid)}:{round(y / grid)}:z{round(zoom)}"
