"""
Place sources for compromise-city search.

A place source answers two questions for the suggester:
- `near(lat, lng, radius_km)`: real places within a radius of a point
- `major_in_box(min_lat, max_lat, min_lng, max_lng)`: capitals/major cities inside a box

Implementations:
- `wherelse.catalog.loader.Gazetteer` (offline, default, deterministic)
- `PhotonPlaceSource` (Photon/OpenStreetMap search API, cached and spaced)

`PhotonAttractionSource` answers a third question for meetup planning: named points of
interest of one kind ("museum", "park") around a chosen city.

Photon failures are logged and produce an empty answer for that query; the suggester then
works with whatever the other queries returned.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

import httpx

from wherelse.config.settings import Settings
from wherelse.core.cache import FileCache, MemoryCache
from wherelse.core.geo import GeoPoint, haversine_km
from wherelse.core.http import get_json
from wherelse.core.ingestion_meta import record_ingestion_source
from wherelse.core.rate_limit import RequestSpacer
from wherelse.domain.models import Attraction, Place

logger = logging.getLogger(__name__)

# Photon has no "is capital" flag on city features, so box searches are seeded with these terms.
_MAJOR_SEARCH_TERMS = ("capital", "city")


class PlaceSource(Protocol):
    def near(self, lat: float, lng: float, radius_km: float) -> list[Place]: ...

    def major_in_box(self, min_lat: float, max_lat: float, min_lng: float, max_lng: float) -> list[Place]: ...


class AttractionSource(Protocol):
    def search(self, kind: str, city: str, lat: float, lng: float) -> list[Attraction]: ...


def _parse_features(payload: Any, *, place_types: list[str]) -> list[Place]:
    """Turn a Photon GeoJSON FeatureCollection into `Place` rows (unknown shapes are skipped)."""
    if not isinstance(payload, dict):
        return []
    features = payload.get("features") or []
    out: list[Place] = []
    for f in features:
        if not isinstance(f, dict):
            continue
        props = f.get("properties") or {}
        coords = (f.get("geometry") or {}).get("coordinates") or []
        ptype = str(props.get("type") or "")
        if ptype not in place_types:
            continue
        name = props.get("city") or props.get("name")
        country = props.get("country")
        if not name or not country or len(coords) < 2:
            continue
        try:
            lng, lat = float(coords[0]), float(coords[1])
            place = Place(city=str(name), country=str(country), lat=lat, lng=lng, type=ptype)
        except (TypeError, ValueError):
            continue
        out.append(place)
    return out


def _parse_attractions(payload: Any, *, kind: str) -> list[Attraction]:
    """Photon hits for an attraction search; any named point counts."""
    if not isinstance(payload, dict):
        return []
    out: list[Attraction] = []
    for f in payload.get("features") or []:
        if not isinstance(f, dict):
            continue
        props = f.get("properties") or {}
        coords = (f.get("geometry") or {}).get("coordinates") or []
        name = props.get("name")
        if not name or len(coords) < 2:
            continue
        try:
            lng, lat = float(coords[0]), float(coords[1])
            out.append(Attraction(name=str(name), kind=kind, type=str(props.get("type") or kind), lat=lat, lng=lng))
        except (TypeError, ValueError):
            continue
    return out


class _PhotonClient:
    """Cached, spaced Photon queries shared by the place and attraction sources."""

    def __init__(self, settings: Settings, cache: MemoryCache | FileCache, spacer: RequestSpacer):
        self._settings = settings
        self._cache = cache
        self._spacer = spacer

    def _cached(
        self,
        namespace: str,
        key: str,
        params: dict[str, Any],
        parse: Callable[[Any], list[dict[str, Any]]],
    ) -> list[dict[str, Any]] | None:
        """Rows for one query, or None when Photon failed and nothing stale was cached."""
        cfg = self._settings.places

        def builder() -> list[dict[str, Any]]:
            self._spacer.wait()
            logger.info("Photon %s search '%s' near lat=%.2f lng=%.2f", namespace, params["q"], params["lat"], params["lon"])
            payload = get_json(
                cfg.photon_url,
                params={**params, "lang": "en"},
                timeout_seconds=self._settings.app.http_timeout_seconds,
            )
            return parse(payload)

        source = f"{namespace}:photon:{key}"
        try:
            rows = self._cache.get_or_set(
                namespace,
                key,
                builder,
                ttl_seconds=int(cfg.cache_ttl_seconds),
                stale_if_error=True,
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Photon %s search failed for %s: %s", namespace, key, exc)
            record_ingestion_source(source, {"mode": "none", "error": str(exc)})
            return None

        record_ingestion_source(source, {"mode": "live_or_cache", "count": len(rows or [])})
        return rows or []


class PhotonPlaceSource(_PhotonClient):
    """Photon (komoot) search API client."""

    def __init__(
        self,
        settings: Settings,
        cache: MemoryCache | FileCache,
        *,
        spacer: RequestSpacer | None = None,
    ):
        super().__init__(settings, cache, spacer or RequestSpacer(settings.places.request_spacing_seconds))

    def _search(self, term: str, lat: float, lng: float) -> list[Place]:
        cfg = self._settings.places
        rows = self._cached(
            "places",
            f"{term}:{lat:.2f},{lng:.2f}:{cfg.result_limit}",
            {"q": term, "lat": lat, "lon": lng, "limit": cfg.result_limit},
            lambda payload: [p.model_dump() for p in _parse_features(payload, place_types=cfg.place_types)],
        )
        return [Place.model_validate(r) for r in rows or []]

    def near(self, lat: float, lng: float, radius_km: float) -> list[Place]:
        origin = GeoPoint(lat=lat, lng=lng)
        return [
            p
            for p in self._search("city", lat, lng)
            if haversine_km(origin, GeoPoint(lat=p.lat, lng=p.lng)) <= radius_km
        ]

    def major_in_box(self, min_lat: float, max_lat: float, min_lng: float, max_lng: float) -> list[Place]:
        center_lat = (min_lat + max_lat) / 2
        center_lng = (min_lng + max_lng) / 2
        out: list[Place] = []
        for term in _MAJOR_SEARCH_TERMS:
            for p in self._search(term, center_lat, center_lng):
                if min_lat <= p.lat <= max_lat and min_lng <= p.lng <= max_lng:
                    out.append(p)
        return out


class PhotonAttractionSource(_PhotonClient):
    """Things to do around a meetup city ("museum Brussels", "park Brussels", ...)."""

    def __init__(
        self,
        settings: Settings,
        cache: MemoryCache | FileCache,
        *,
        spacer: RequestSpacer | None = None,
    ):
        super().__init__(settings, cache, spacer or RequestSpacer(settings.places.attraction_spacing_seconds))

    def search(self, kind: str, city: str, lat: float, lng: float) -> list[Attraction]:
        """Up to `attractions_per_kind` hits within `attraction_radius_km` (empty on failure)."""
        cfg = self._settings.places
        rows = self._cached(
            "attractions",
            f"{kind}:{city.casefold()}:{lat:.2f},{lng:.2f}:{cfg.attraction_query_limit}",
            {"q": f"{kind} {city}", "lat": lat, "lon": lng, "limit": cfg.attraction_query_limit},
            lambda payload: [a.model_dump() for a in _parse_attractions(payload, kind=kind)],
        )
        center = GeoPoint(lat=lat, lng=lng)
        out: list[Attraction] = []
        for row in rows or []:
            hit = Attraction.model_validate(row)
            d = haversine_km(center, GeoPoint(lat=hit.lat, lng=hit.lng))
            if d < float(cfg.attraction_radius_km):
                out.append(hit.model_copy(update={"distance_km": round(d, 1)}))
        return out[: cfg.attractions_per_kind]
