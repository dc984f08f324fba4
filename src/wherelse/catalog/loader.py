"""
City gazetteer loader.

The gazetteer is a packaged JSON file (`wherelse/catalog/cities.json`) listing real
populated places with coordinates and a coarse type (capital/city/town). We validate it
into typed Pydantic models so the suggester can assume a consistent shape, and wrap it in
a grid index so radius searches stay cheap.
"""

from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources
from pathlib import Path

from pydantic import TypeAdapter

from wherelse.core.env import resolve_project_path
from wherelse.core.geo import normalize_place, place_key
from wherelse.core.spatial_index import SpatialGridIndex
from wherelse.domain.models import Place


_PLACES_ADAPTER = TypeAdapter(list[Place])

MAJOR_PLACE_TYPES = ("capital", "city")


def load_places(path: str | Path | None = None) -> list[Place]:
    """Load and validate a gazetteer JSON file (defaults to the packaged one)."""
    if path is None:
        text = resources.files("wherelse.catalog").joinpath("cities.json").read_text(encoding="utf-8")
    else:
        text = resolve_project_path(path).read_text(encoding="utf-8")
    return _PLACES_ADAPTER.validate_python(json.loads(text))


class Gazetteer:
    """Offline place source over a fixed list of real places."""

    def __init__(self, places: list[Place]):
        self._places = list(places)
        self._index = SpatialGridIndex(self._places, get_latlng=lambda p: (p.lat, p.lng))
        self._by_key: dict[tuple[str, str], Place] = {}
        self._by_city: dict[str, list[Place]] = {}
        for p in self._places:
            self._by_key.setdefault(place_key(p.city, p.country), p)
            self._by_city.setdefault(normalize_place(p.city), []).append(p)

    def __len__(self) -> int:
        return len(self._places)

    @property
    def places(self) -> list[Place]:
        return list(self._places)

    def near(self, lat: float, lng: float, radius_km: float) -> list[Place]:
        return self._index.query_within(lat=lat, lng=lng, radius_km=radius_km)

    def major_in_box(self, min_lat: float, max_lat: float, min_lng: float, max_lng: float) -> list[Place]:
        """Capitals and cities inside the box (towns are left to radius searches)."""
        return [
            p
            for p in self._index.query_box(min_lat=min_lat, max_lat=max_lat, min_lng=min_lng, max_lng=max_lng)
            if p.type in MAJOR_PLACE_TYPES
        ]

    def lookup(self, city: str, country: str | None = None) -> Place | None:
        """Exact normalized lookup; without a country only an unambiguous city name matches."""
        if country:
            return self._by_key.get(place_key(city, country))
        matches = self._by_city.get(normalize_place(city)) or []
        return matches[0] if len(matches) == 1 else None


@lru_cache
def get_default_gazetteer() -> Gazetteer:
    """Packaged gazetteer (cached; read-only after construction)."""
    return Gazetteer(load_places())
