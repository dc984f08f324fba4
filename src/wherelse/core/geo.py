from __future__ import annotations
from dataclasses import dataclass
from math import asin, atan2, cos, degrees, radians, sin, sqrt

"""
Geospatial helpers.

We keep a tiny geometry layer here so the comparison engine can do distance and
midpoint calculations without pulling in heavier GIS dependencies.
"""

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lng: float


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Compute great-circle distance in kilometers between two points."""
    lat1 = radians(a.lat)
    lng1 = radians(a.lng)
    lat2 = radians(b.lat)
    lng2 = radians(b.lng)

    dlat = lat2 - lat1
    dlng = lng2 - lng1

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * asin(min(1.0, sqrt(h)))


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Flat-argument form of `haversine_km`, matching the analyzer's `distance_fn` shape."""
    return haversine_km(GeoPoint(lat=lat1, lng=lng1), GeoPoint(lat=lat2, lng=lng2))


def spherical_midpoint(a: GeoPoint, b: GeoPoint) -> GeoPoint:
    """Return the great-circle midpoint between two points."""
    lat1 = radians(a.lat)
    lat2 = radians(b.lat)
    lng1 = radians(a.lng)
    dlng = radians(b.lng - a.lng)

    bx = cos(lat2) * cos(dlng)
    by = cos(lat2) * sin(dlng)
    lat3 = atan2(sin(lat1) + sin(lat2), sqrt((cos(lat1) + bx) ** 2 + by**2))
    lng3 = lng1 + atan2(by, cos(lat1) + bx)

    lng_deg = (degrees(lng3) + 540.0) % 360.0 - 180.0
    return GeoPoint(lat=degrees(lat3), lng=lng_deg)


def interpolate(a: GeoPoint, b: GeoPoint, fraction: float) -> GeoPoint:
    """Linear lat/lng interpolation used to sample a corridor between two points."""
    f = float(fraction)
    return GeoPoint(lat=a.lat + (b.lat - a.lat) * f, lng=a.lng + (b.lng - a.lng) * f)


def normalize_place(value: str | None) -> str:
    """Case-fold, trim and collapse inner whitespace of a city/country name."""
    if not value:
        return ""
    return " ".join(str(value).split()).casefold()


def place_key(city: str | None, country: str | None) -> tuple[str, str]:
    """Normalized `(city, country)` key used for matching and dedup."""
    return normalize_place(city), normalize_place(country)


def is_same_location(
    city_a: str,
    country_a: str,
    city_b: str,
    country_b: str,
    *,
    point_a: GeoPoint | None = None,
    point_b: GeoPoint | None = None,
    radius_km: float = 50.0,
) -> bool:
    """Same-place test.

    When both points are known the distance threshold decides (it absorbs airport/suburb
    geocoding noise); otherwise normalized city AND country names must match.
    """
    if point_a is not None and point_b is not None:
        return haversine_km(point_a, point_b) < float(radius_km)
    return place_key(city_a, country_a) == place_key(city_b, country_b)
