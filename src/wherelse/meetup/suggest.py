"""
Compromise destination suggester.

Given two origins, find real places where both travelers could reasonably meet:
1) very close origins (< local distance): look around the spherical midpoint only
2) otherwise collect candidates from three searches and merge them:
   - corridor points between the origins (30%..70% of the way)
   - capitals/major cities inside the padded bounding box
   - a wider search around the midpoint
3) score every candidate (`wherelse.scoring.compromise`), drop the origins themselves and
   anything below the fairness floor, and return the best N.

The classifier uses `find_compromise_cities` for "potential" meetups; it applies the
stricter per-pair constraints (max distance from each leg, must lie between them).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from wherelse.config.settings import ComparisonSettings, SuggesterSettings
from wherelse.core.geo import GeoPoint, haversine_km, interpolate, place_key, spherical_midpoint
from wherelse.domain.models import CompromiseCity, Leg, Place
from wherelse.ingestion.places import PlaceSource
from wherelse.scoring.compromise import fairness_ratio, score_compromise_city

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Origin:
    """Where one traveler starts from when looking for a compromise."""

    city: str
    country: str
    lat: float
    lng: float

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(lat=self.lat, lng=self.lng)

    @classmethod
    def from_leg(cls, leg: Leg) -> "Origin":
        if not leg.has_coordinates:
            raise ValueError(f"{leg.city}, {leg.country} has no coordinates")
        return cls(city=leg.city, country=leg.country, lat=float(leg.lat), lng=float(leg.lng))


def _is_origin(place: Place | CompromiseCity, origins: Iterable[Origin], radius_km: float) -> bool:
    key = place_key(place.city, place.country)
    here = GeoPoint(lat=place.lat, lng=place.lng)
    for o in origins:
        if key == place_key(o.city, o.country):
            return True
        if haversine_km(here, o.point) < float(radius_km):
            return True
    return False


def _raw_distances(place: Place, o1: Origin, o2: Origin) -> tuple[float, float]:
    # Unrounded; CompromiseCity only carries whole kilometres for display.
    here = GeoPoint(lat=place.lat, lng=place.lng)
    return haversine_km(o1.point, here), haversine_km(o2.point, here)


def _dedup_places(places: Iterable[Place]) -> list[Place]:
    seen: set[tuple[str, str]] = set()
    out: list[Place] = []
    for p in places:
        key = place_key(p.city, p.country)
        if not key[0] or not key[1] or key in seen:
            continue
        seen.add(key)
        out.append(p)
    return out


def _rank(cities: list[CompromiseCity]) -> list[CompromiseCity]:
    return sorted(cities, key=lambda c: (-c.score, place_key(c.city, c.country)))


def _gather_candidates(o1: Origin, o2: Origin, total_km: float, *, places: PlaceSource, cfg: SuggesterSettings) -> list[Place]:
    found: list[Place] = []

    # 1) corridor samples
    corridor_radius = min(total_km * float(cfg.corridor_radius_ratio), float(cfg.corridor_radius_cap_km))
    for fraction in cfg.corridor_fractions:
        p = interpolate(o1.point, o2.point, fraction)
        found.extend(places.near(p.lat, p.lng, corridor_radius))

    # 2) major cities in the padded box
    pad = float(cfg.region_padding_deg)
    found.extend(
        places.major_in_box(
            max(-90.0, min(o1.lat, o2.lat) - pad),
            min(90.0, max(o1.lat, o2.lat) + pad),
            max(-180.0, min(o1.lng, o2.lng) - pad),
            min(180.0, max(o1.lng, o2.lng) + pad),
        )
    )

    # 3) midpoint region
    mid = spherical_midpoint(o1.point, o2.point)
    midpoint_radius = min(total_km * float(cfg.midpoint_radius_ratio), float(cfg.midpoint_radius_cap_km))
    found.extend(places.near(mid.lat, mid.lng, midpoint_radius))

    return _dedup_places(found)


def suggest_meetup_destinations(
    origin1: Origin,
    origin2: Origin,
    *,
    places: PlaceSource,
    settings: SuggesterSettings | None = None,
    min_fairness_ratio: float | None = None,
    max_results: int | None = None,
    same_city_radius_km: float = 50.0,
) -> list[CompromiseCity]:
    """Return up to `max_results` fair compromise cities, best first (empty = none fair enough)."""
    cfg = settings or SuggesterSettings()
    min_ratio = float(cfg.min_fairness_ratio if min_fairness_ratio is None else min_fairness_ratio)
    limit = int(max_results or cfg.max_results)
    total_km = haversine_km(origin1.point, origin2.point)
    origins = (origin1, origin2)

    if total_km < float(cfg.local_distance_km):
        mid = spherical_midpoint(origin1.point, origin2.point)
        candidates = _dedup_places(places.near(mid.lat, mid.lng, float(cfg.local_radius_km)))
        floor: float | None = float(cfg.local_min_score)
    else:
        candidates = _gather_candidates(origin1, origin2, total_km, places=places, cfg=cfg)
        floor = None

    logger.debug(
        "Scoring %d candidates between %s and %s (%.0f km apart)",
        len(candidates),
        origin1.city,
        origin2.city,
        total_km,
    )

    scored: list[CompromiseCity] = []
    for place in candidates:
        if _is_origin(place, origins, same_city_radius_km):
            continue
        if fairness_ratio(*_raw_distances(place, origin1, origin2)) < min_ratio:
            continue
        city = score_compromise_city(place, origin1=origin1.point, origin2=origin2.point, total_km=total_km, cfg=cfg.score)
        if floor is not None and city.score <= floor:
            continue
        scored.append(city)

    return _rank(scored)[:limit]


def suggest_with_relaxation(
    origin1: Origin,
    origin2: Origin,
    *,
    places: PlaceSource,
    settings: SuggesterSettings | None = None,
    max_results: int | None = None,
    same_city_radius_km: float = 50.0,
) -> tuple[list[CompromiseCity], bool]:
    """Try the normal fairness floor, then retry once at the relaxed floor.

    Returns `(cities, relaxed)` where `relaxed` says whether the second pass was used.
    """
    cfg = settings or SuggesterSettings()
    kwargs: dict[str, Any] = {
        "places": places,
        "settings": cfg,
        "max_results": max_results,
        "same_city_radius_km": same_city_radius_km,
    }
    cities = suggest_meetup_destinations(origin1, origin2, min_fairness_ratio=cfg.min_fairness_ratio, **kwargs)
    if cities or cfg.relaxed_fairness_ratio >= cfg.min_fairness_ratio:
        return cities, False
    logger.info(
        "No compromise above fairness %.2f between %s and %s; relaxing to %.2f",
        cfg.min_fairness_ratio,
        origin1.city,
        origin2.city,
        cfg.relaxed_fairness_ratio,
    )
    return suggest_meetup_destinations(origin1, origin2, min_fairness_ratio=cfg.relaxed_fairness_ratio, **kwargs), True


def find_compromise_cities(
    leg_a: Leg,
    leg_b: Leg,
    *,
    places: PlaceSource,
    comparison: ComparisonSettings,
    suggester: SuggesterSettings,
    min_fairness_ratio: float | None = None,
    limit: int | None = 1,
) -> list[CompromiseCity]:
    """Compromise cities for a "potential" meetup between two geocoded, different-city legs.

    A city qualifies when it is not either origin, is within the max distance of both legs,
    lies between them (no leg is farther from it than the legs are from each other) and
    meets the fairness floor. Checks use exact distances; `limit=None` returns every match.
    """
    o1 = Origin.from_leg(leg_a)
    o2 = Origin.from_leg(leg_b)
    total_km = haversine_km(o1.point, o2.point)
    max_km = float(comparison.potential_max_distance_km)
    min_ratio = float(suggester.min_fairness_ratio if min_fairness_ratio is None else min_fairness_ratio)

    mid = spherical_midpoint(o1.point, o2.point)
    candidates = _dedup_places(places.near(mid.lat, mid.lng, max_km + total_km / 2))

    out: list[CompromiseCity] = []
    for place in candidates:
        if _is_origin(place, (o1, o2), comparison.same_city_radius_km):
            continue
        d1, d2 = _raw_distances(place, o1, o2)
        if d1 > max_km or d2 > max_km:
            continue
        if max(d1, d2) > total_km:
            continue
        if fairness_ratio(d1, d2) < min_ratio:
            continue
        out.append(score_compromise_city(place, origin1=o1.point, origin2=o2.point, total_km=total_km, cfg=suggester.score))
    ranked = _rank(out)
    return ranked if limit is None else ranked[: max(0, int(limit))]


def estimate_flight_time(distance_km: float) -> str:
    """Rough flight-time label for a distance."""
    d = float(distance_km)
    if d < 500:
        return "~1 hour"
    if d < 1500:
        return "~2 hours"
    if d < 3000:
        return "~4 hours"
    if d < 6000:
        return "~7 hours"
    if d < 10000:
        return "~12 hours"
    return "~15+ hours"


def format_compromise(city: CompromiseCity, traveler1: str, traveler2: str) -> dict[str, Any]:
    """Readable summary of a compromise city keyed by traveler name."""
    return {
        "city": city.city,
        "country": city.country,
        "lat": city.lat,
        "lng": city.lng,
        "score": city.score,
        "fairness": f"{round(city.fairness_ratio * 100)}% balanced",
        "travel": {
            traveler1: {
                "distance": f"{city.distance_from1_km} km",
                "flight": estimate_flight_time(city.distance_from1_km),
            },
            traveler2: {
                "distance": f"{city.distance_from2_km} km",
                "flight": estimate_flight_time(city.distance_from2_km),
            },
        },
    }
