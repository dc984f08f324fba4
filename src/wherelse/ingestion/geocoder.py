"""
Geocoding collaborators.

Two implementations share the `Geocoder` protocol (`geocode(city, country) -> GeoPoint | None`):
- `NominatimGeocoder`: OpenStreetMap search, cache-first, spaced requests.
- `GazetteerGeocoder`: offline lookup in the packaged gazetteer (tests, CLI without network).

`None` means "not found". `GeocodingUnavailable` means the service failed; callers treat the
leg as un-geocoded and the comparison falls back to name matching.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Protocol

import httpx

from wherelse.catalog.loader import Gazetteer
from wherelse.config.settings import Settings
from wherelse.core.cache import FileCache, MemoryCache
from wherelse.core.geo import GeoPoint, normalize_place
from wherelse.core.http import get_json
from wherelse.core.ingestion_meta import record_ingestion_source
from wherelse.core.rate_limit import RequestSpacer
from wherelse.domain.errors import GeocodingUnavailable
from wherelse.domain.models import Itinerary, Leg

logger = logging.getLogger(__name__)


class Geocoder(Protocol):
    def geocode(self, city: str, country: str) -> GeoPoint | None: ...


def _parse_first_hit(payload: Any) -> GeoPoint | None:
    """Nominatim returns a JSON list of hits with string `lat`/`lon` fields."""
    if not isinstance(payload, list) or not payload:
        return None
    hit = payload[0]
    if not isinstance(hit, dict):
        return None
    try:
        lat = float(hit["lat"])
        lng = float(hit["lon"])
    except (KeyError, TypeError, ValueError):
        return None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return GeoPoint(lat=lat, lng=lng)


class NominatimGeocoder:
    """OpenStreetMap Nominatim client with caching and request spacing."""

    def __init__(
        self,
        settings: Settings,
        cache: MemoryCache | FileCache,
        *,
        spacer: RequestSpacer | None = None,
    ):
        self._settings = settings
        self._cache = cache
        self._spacer = spacer or RequestSpacer(settings.geocoding.request_spacing_seconds)

    def _search(self, query: str) -> GeoPoint | None:
        cfg = self._settings.geocoding
        self._spacer.wait()
        payload = get_json(
            cfg.base_url,
            params={"format": "json", "q": query, "limit": 1},
            headers={"User-Agent": cfg.user_agent},
            timeout_seconds=self._settings.app.http_timeout_seconds,
        )
        return _parse_first_hit(payload)

    def _fetch(self, city: str, country: str) -> GeoPoint | None:
        point = self._search(f"{city}, {country}")
        if point is None and self._settings.geocoding.fallback_city_only and normalize_place(city) != normalize_place(country):
            logger.info("Geocoding '%s, %s' found nothing; retrying with city only", city, country)
            point = self._search(city)
        return point

    def geocode(self, city: str, country: str) -> GeoPoint | None:
        """Return coordinates for `city, country`, or None when the place is unknown.

        Raises:
            GeocodingUnavailable: On transport/HTTP failure with no stale cache entry.
        """
        key = f"{normalize_place(city)},{normalize_place(country)}"
        ttl_seconds = int(self._settings.geocoding.cache_ttl_seconds)
        source_name = f"geocode:nominatim:{key}"

        cached = self._cache.get("geocode", key, ttl_seconds=ttl_seconds)
        if isinstance(cached, dict):
            meta = self._cache.get_entry_meta("geocode", key) or {}
            record_ingestion_source(
                source_name,
                {"mode": "cache", "as_of_unix": meta.get("created_at_unix"), "ttl_seconds": meta.get("ttl_seconds")},
            )
            return GeoPoint(lat=float(cached["lat"]), lng=float(cached["lng"]))

        try:
            point = self._fetch(city, country)
        except (httpx.HTTPError, ValueError) as exc:
            stale = self._cache.get_stale("geocode", key)
            if isinstance(stale, dict):
                logger.warning("Geocoding failed for %s; using stale cache entry: %s", key, exc)
                record_ingestion_source(source_name, {"mode": "stale"})
                return GeoPoint(lat=float(stale["lat"]), lng=float(stale["lng"]))
            record_ingestion_source(source_name, {"mode": "none", "error": str(exc)})
            raise GeocodingUnavailable(f"Geocoding service failed for '{city}, {country}': {exc}") from exc

        if point is None:
            record_ingestion_source(source_name, {"mode": "none"})
            return None

        self._cache.set("geocode", key, {"lat": point.lat, "lng": point.lng}, ttl_seconds=ttl_seconds)
        meta = self._cache.get_entry_meta("geocode", key) or {}
        record_ingestion_source(
            source_name,
            {"mode": "live", "as_of_unix": meta.get("created_at_unix"), "ttl_seconds": meta.get("ttl_seconds")},
        )
        return point


class GazetteerGeocoder:
    """Offline geocoder backed by the packaged city list."""

    def __init__(self, gazetteer: Gazetteer, *, fallback_city_only: bool = True):
        self._gazetteer = gazetteer
        self._fallback_city_only = fallback_city_only

    def geocode(self, city: str, country: str) -> GeoPoint | None:
        place = self._gazetteer.lookup(city, country)
        if place is None and self._fallback_city_only:
            place = self._gazetteer.lookup(city)
        if place is None:
            return None
        return GeoPoint(lat=place.lat, lng=place.lng)


class ItineraryGeneration:
    """Edit counter for an itinerary.

    Bump it whenever the itinerary changes; a geocoding run started under an older value
    stops issuing requests and its results are discarded by the caller.
    """

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    @property
    def current(self) -> int:
        with self._lock:
            return self._value

    def bump(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def token(self) -> Callable[[], bool]:
        """Return a predicate that stays true until the next `bump()`."""
        issued = self.current
        return lambda: self.current == issued


def _geocode_leg(leg: Leg, geocoder: Geocoder) -> Leg:
    try:
        point = geocoder.geocode(leg.city, leg.country)
    except GeocodingUnavailable as exc:
        logger.warning("Geocoding unavailable for %s, %s: %s", leg.city, leg.country, exc)
        return leg
    if point is None:
        logger.info("No coordinates found for %s, %s", leg.city, leg.country)
        return leg
    return leg.model_copy(update={"lat": point.lat, "lng": point.lng})


def geocode_itinerary(
    itinerary: Itinerary,
    geocoder: Geocoder,
    *,
    is_current: Callable[[], bool] | None = None,
) -> Itinerary:
    """Fill in missing leg coordinates, one request at a time.

    Legs that already carry coordinates are left alone. When `is_current()` turns false the
    remaining legs are returned untouched.
    """
    legs: list[Leg] = []
    for index, leg in enumerate(itinerary.legs):
        if is_current is not None and not is_current():
            logger.info("Itinerary changed; stopping geocoding after %d legs", index)
            legs.extend(itinerary.legs[index:])
            break
        legs.append(leg if leg.has_coordinates else _geocode_leg(leg, geocoder))
    return itinerary.model_copy(update={"legs": legs})
