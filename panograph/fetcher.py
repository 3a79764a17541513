"""Panorama point fetching by bounding box, plus background coverage prefetch."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import requests

from .config import resolve_config
from .logger import Logger
from .models import BoundingBox, MergeReport

RETRYABLE_STATUS = (429, 500, 502, 503, 504)
BACKOFF_FACTOR = 1.6

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
    "X-Client-Type": "Web",
}


class FetchError(Exception):
    """A bounding-box request failed for good"""


def page_size_for_zoom(zoom: float) -> int:
    """Viewport page size: closer views are denser"""
    if zoom >= 16:
        return 2000
    if zoom >= 14:
        return 1500
    if zoom >= 10:
        return 1000
    return 800


def extract_items(data) -> list[dict]:
    """The point records of one response ({"value": {"items": [...]}})"""
    if not isinstance(data, dict):
        return []
    value = data.get("value")
    if not isinstance(value, dict):
        return []
    items = value.get("items") or []
    return [item for item in items if isinstance(item, dict)]


class PanoramaFetcher:
    """POSTs bounding-box queries against a panorama point endpoint"""

    def __init__(self, url: str, session: Optional[requests.Session] = None,
                 headers: Optional[dict] = None, config: Optional[dict] = None,
                 logger: Optional[Logger] = None):
        cfg = resolve_config(config)
        self.url = url
        self.session = session or requests.Session()
        self.headers = dict(DEFAULT_HEADERS)
        if headers:
            self.headers.update(headers)
        self.page_size = int(cfg["fetch_page_size"])
        self.min_page_size = int(cfg["fetch_min_page_size"])
        self.timeout = cfg["fetch_timeout"]
        self.retries = int(cfg["fetch_retries"])
        self.backoff = cfg["fetch_backoff"]
        self.logger = logger or Logger(echo=False)

    @staticmethod
    def build_query(bbox: BoundingBox, page: int, page_size: int) -> dict:
        return {
            "boundingBox": bbox.to_query(),
            "bufferMeters": 0,
            "pagination": {"pageNumber": page, "pageSize": page_size},
        }

    def post(self, payload: dict, cancel: Optional[threading.Event] = None,
             shrink_once: bool = True) -> tuple[Optional[dict], dict]:
        """POST one query with retries.

        Returns (json, payload actually sent). The first retry halves the
        page size (never below the minimum). json is None when cancelled or
        when the body is not JSON. Raises FetchError once retries run out or
        on a non-retryable status.
        """
        attempt = 0
        while True:
            if cancel is not None and cancel.is_set():
                return None, payload
            try:
                response = self.session.post(self.url, json=payload, headers=self.headers,
                                             timeout=self.timeout)
            except requests.RequestException as e:
                error = FetchError(f"request failed: {e}")
            else:
                if response.ok:
                    try:
                        return response.json(), payload
                    except ValueError:
                        return None, payload
                if response.status_code not in RETRYABLE_STATUS:
                    raise FetchError(f"HTTP {response.status_code} from {self.url}")
                error = FetchError(f"HTTP {response.status_code} from {self.url}")

            if attempt >= self.retries:
                raise error
            if shrink_once and attempt == 0:
                payload = self._shrunk(payload)
            delay = self.backoff * BACKOFF_FACTOR ** attempt
            self.logger.log("Retrying bounding-box query", {
                "attempt": attempt + 1, "delay": round(delay, 3), "error": str(error),
            })
            attempt += 1
            if cancel is not None:
                if cancel.wait(delay):
                    return None, payload
            else:
                time.sleep(delay)

    def _shrunk(self, payload: dict) -> dict:
        """Same query at half the page size, still starting at the same record.

        The page number is rewritten so the first record requested does not
        move; a size that cannot keep that alignment is left alone.
        """
        pagination = payload.get("pagination") or {}
        size = pagination.get("pageSize")
        page = pagination.get("pageNumber", 1)
        if not size or size <= self.min_page_size:
            return payload
        smaller = max(self.min_page_size, size // 2)
        offset = (page - 1) * size
        if offset % smaller:
            return payload
        shrunk = dict(payload)
        shrunk["pagination"] = dict(pagination, pageNumber=offset // smaller + 1, pageSize=smaller)
        return shrunk

    def fetch_page(self, bbox: BoundingBox, page: int = 1, page_size: Optional[int] = None,
                   cancel: Optional[threading.Event] = None) -> Optional[list[dict]]:
        """One page of raw point records, or None when cancelled"""
        payload = self.build_query(bbox, page, page_size or self.page_size)
        data, _ = self.post(payload, cancel=cancel)
        if data is None:
            return None
        return extract_items(data)

    def fetch_bbox(self, bbox: BoundingBox, cancel: Optional[threading.Event] = None) -> list[dict]:
        """Every record in a box, paging until a short page.

        A cancel stops paging and returns what was collected so far.
        """
        page_size = self.page_size
        collected: list[dict] = []
        while True:
            # Full pages keep the offset a multiple of the page size
            offset = len(collected)
            data, sent = self.post(self.build_query(bbox, offset // page_size + 1, page_size),
                                   cancel=cancel)
            if data is None:
                break
            page_size = sent["pagination"]["pageSize"]
            items = extract_items(data)
            if not items:
                break
            collected.extend(items)
            if len(items) < page_size:
                break
        return collected


class ViewportLoader:
    """Keeps an index in sync with what the map currently shows"""

    def __init__(self, fetcher: PanoramaFetcher, index, logger: Optional[Logger] = None):
        self.fetcher = fetcher
        self.index = index
        self.logger = logger or index.logger
        self.last_view: Optional[tuple[BoundingBox, int]] = None
        self._inflight: Optional[threading.Event] = None
        self._lock = threading.Lock()

    def load(self, bbox: BoundingBox, zoom: float) -> Optional[MergeReport]:
        """Load the points in view and drop the ones no longer in it.

        Returns None when the view is unchanged, the request was superseded
        or it failed (the previous points stay).
        """
        view = (bbox, round(zoom))
        with self._lock:
            if view == self.last_view:
                return None
            self.last_view = view
            if self._inflight is not None:
                self._inflight.set()
            cancel = threading.Event()
            self._inflight = cancel

        lat, lon = bbox.center
        key = self.index.cache_key_for(lat, lon, zoom)
        items = self.index.cached_batch(key)
        if items is None:
            try:
                items = self.fetcher.fetch_page(bbox, 1, page_size_for_zoom(zoom), cancel=cancel)
            except FetchError as e:
                self.logger.log("Viewport load failed", {"bbox": bbox.to_query(), "error": str(e)})
                with self._lock:
                    if self.last_view == view:
                        self.last_view = None
                return None
            if items is None:
                return None
            self.index.remember_batch(key, items)
        if cancel.is_set():
            return None
        report = self.index.replace_all(items)
        self.logger.log("Viewport loaded", dict(report.summary(), zoom=zoom))
        return report


class CoveragePrefetcher:
    """One-shot background load of every point in an extent.

    Primes the current view first, then tries a single call for the whole
    extent, and falls back to tiles fetched in concurrent batches with the
    tiles nearest the view first. Points are merged as they arrive, so an
    abort leaves a partial but consistent index.
    """

    def __init__(self, fetcher: PanoramaFetcher, index, extent: BoundingBox,
                 view: Optional[BoundingBox] = None, config: Optional[dict] = None,
                 logger: Optional[Logger] = None):
        cfg = resolve_config(config)
        self.fetcher = fetcher
        self.index = index
        self.extent = extent
        self.view = view
        self.tile_deg = cfg["coverage_tile_deg"]
        self.concurrency = max(1, int(cfg["coverage_concurrency"]))
        self.logger = logger or index.logger
        self._cancel = threading.Event()
        self._started = False
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self.tiles_fetched = 0
        self.tiles_failed = 0

    @property
    def aborted(self) -> bool:
        return self._cancel.is_set()

    def abort(self):
        self._cancel.set()

    def start(self) -> threading.Thread:
        """Run on a daemon thread"""
        self._thread = threading.Thread(target=self.run, daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: Optional[float] = None):
        if self._thread is not None:
            self._thread.join(timeout)

    def ordered_tiles(self) -> list[BoundingBox]:
        """Extent tiles, nearest to the view first"""
        vlat, vlon = (self.view or self.extent).center

        def distance(tile: BoundingBox) -> float:
            tlat, tlon = tile.center
            return (tlon - vlon) ** 2 + (tlat - vlat) ** 2

        return sorted(self.extent.tiles(self.tile_deg), key=distance)

    def run(self) -> bool:
        """Fetch the coverage. Returns False if it already ran or was aborted"""
        with self._lock:
            if self._started:
                return False
            self._started = True

        if self.view is not None:
            self._merge(self._fetch_quietly(self.view), "view")
        if self.aborted:
            return self._abandoned()

        big = self._fetch_quietly(self.extent)
        if self.aborted:
            return self._abandoned()
        if big:
            self._merge(big, "extent")
            self.logger.log("Coverage prefetch done", {"mode": "single", "points": len(big)})
            return True

        tiles = self.ordered_tiles()
        with ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            for start in range(0, len(tiles), self.concurrency):
                if self.aborted:
                    return self._abandoned()
                batch = tiles[start:start + self.concurrency]
                futures = [pool.submit(self.fetcher.fetch_bbox, tile, self._cancel) for tile in batch]
                for tile, future in zip(batch, futures):
                    try:
                        items = future.result()
                    except FetchError as e:
                        self.tiles_failed += 1
                        self.logger.log("Coverage tile failed", {"tile": tile.to_query(), "error": str(e)})
                        continue
                    self.tiles_fetched += 1
                    self._merge(items, "tile")
        if self.aborted:
            return self._abandoned()
        self.logger.log("Coverage prefetch done", {
            "mode": "tiled", "tiles": len(tiles),
            "fetched": self.tiles_fetched, "failed": self.tiles_failed,
        })
        return True

    def _fetch_quietly(self, bbox: BoundingBox) -> list[dict]:
        try:
            return self.fetcher.fetch_bbox(bbox, cancel=self._cancel)
        except FetchError as e:
            self.logger.log("Coverage request failed", {"bbox": bbox.to_query(), "error": str(e)})
            return []

    def _merge(self, items: list[dict], source: str):
        if not items:
            return
        report = self.index.merge(items)
        self.logger.log("Coverage merged", dict(report.summary(), source=source))

    def _abandoned(self) -> bool:
        self.logger.log("Coverage prefetch abandoned", {"tiles_fetched": self.tiles_fetched})
        return False
