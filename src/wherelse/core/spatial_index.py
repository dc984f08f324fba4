"""
Lightweight spatial indexing (grid bucket) for lat/lng points.

Used by the gazetteer to avoid O(N) haversine scans for every radius search. Cells are
whole-degree buckets so the index works at any latitude (the trip can be anywhere).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from wherelse.core.geo import GeoPoint, haversine_km

T = TypeVar("T")

# Slightly under the true ~111.2 km/degree so the cell window errs on the wide side.
_KM_PER_DEG = 110.0


@dataclass(frozen=True)
class _Entry(Generic[T]):
    item: T
    lat: float
    lng: float


class SpatialGridIndex(Generic[T]):
    def __init__(
        self,
        items: list[T],
        *,
        get_latlng: Callable[[T], tuple[float, float]],
        cell_size_deg: float = 1.0,
    ):
        if float(cell_size_deg) <= 0:
            raise ValueError("cell_size_deg must be > 0")
        self._cell = float(cell_size_deg)
        self._lng_cells = int(math.ceil(360.0 / self._cell))
        self._cells: dict[tuple[int, int], list[_Entry[T]]] = {}
        self._entries: list[_Entry[T]] = []

        for it in items:
            lat, lng = get_latlng(it)
            e = _Entry(item=it, lat=float(lat), lng=float(lng))
            self._entries.append(e)
            self._cells.setdefault(self._cell_key(e.lat, e.lng), []).append(e)

    def __len__(self) -> int:
        return len(self._entries)

    def _cell_key(self, lat: float, lng: float) -> tuple[int, int]:
        col = int(math.floor((lng + 180.0) / self._cell)) % self._lng_cells
        return int(math.floor(lat / self._cell)), col

    def query_within(self, *, lat: float, lng: float, radius_km: float) -> list[T]:
        r = float(radius_km)
        if r <= 0:
            return []
        dlat = r / _KM_PER_DEG
        # Widen by the latitude where a degree of longitude is shortest inside the window.
        edge_lat = min(89.0, abs(float(lat)) + dlat)
        dlng = min(180.0, r / (_KM_PER_DEG * max(math.cos(math.radians(edge_lat)), 1e-3)))

        row_lo = int(math.floor((lat - dlat) / self._cell))
        row_hi = int(math.floor((lat + dlat) / self._cell))
        col_lo = int(math.floor((lng - dlng + 180.0) / self._cell))
        col_hi = int(math.floor((lng + dlng + 180.0) / self._cell))
        cols = {c % self._lng_cells for c in range(col_lo, col_hi + 1)}

        origin = GeoPoint(lat=float(lat), lng=float(lng))
        out: list[T] = []
        for row in range(row_lo, row_hi + 1):
            for col in sorted(cols):
                for e in self._cells.get((row, col), ()):
                    if haversine_km(origin, GeoPoint(lat=e.lat, lng=e.lng)) <= r:
                        out.append(e.item)
        return out

    def query_box(self, *, min_lat: float, max_lat: float, min_lng: float, max_lng: float) -> list[T]:
        """Items inside a lat/lng bounding box (no antimeridian wrap)."""
        return [
            e.item
            for e in self._entries
            if min_lat <= e.lat <= max_lat and min_lng <= e.lng <= max_lng
        ]
