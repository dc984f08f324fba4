"""
Leg-pair analysis.

Every leg of traveler A is paired with every leg of traveler B and annotated with:
- date overlap (inclusive days) or the gap between the two stays
- whether both legs are "the same city" (coordinates first, names second)
- great-circle distance when both legs carry coordinates

Pairs are then sorted so the most promising come first. Every tie-breaker is symmetric in
(A, B), so swapping the travelers produces the same ordering of the same pairs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Mapping, Sequence

from pydantic import ValidationError

from wherelse.core.geo import GeoPoint, distance_km, is_same_location, normalize_place
from wherelse.core.time import inclusive_days
from wherelse.domain.errors import InvalidLegError
from wherelse.domain.models import Leg

DistanceFn = Callable[[float, float, float, float], float]


@dataclass(frozen=True)
class LegPair:
    """One (A-leg, B-leg) combination. Ephemeral: built per comparison, never stored."""

    leg_a: Leg
    leg_b: Leg
    has_date_overlap: bool
    overlap_days: int
    gap_days: int
    is_same_city: bool
    distance_km: float | None
    overlap_start: date | None = None
    overlap_end: date | None = None

    @property
    def earlier(self) -> Leg:
        """The leg that ends first (A on ties)."""
        return self.leg_a if self.leg_a.end_date <= self.leg_b.end_date else self.leg_b

    @property
    def later(self) -> Leg:
        return self.leg_b if self.earlier is self.leg_a else self.leg_a

    @property
    def both_geocoded(self) -> bool:
        return self.leg_a.has_coordinates and self.leg_b.has_coordinates

    def window(self) -> tuple[date, date]:
        """Overlap window, or the (earlier end, later start) gap bounds."""
        if self.has_date_overlap and self.overlap_start and self.overlap_end:
            return self.overlap_start, self.overlap_end
        return self.earlier.end_date, self.later.start_date


def coerce_legs(legs: Sequence[Leg | Mapping[str, Any]], *, traveler: str | None = None) -> list[Leg]:
    """Validate a leg list, raising `InvalidLegError` that names the traveler and leg index."""
    out: list[Leg] = []
    for index, raw in enumerate(legs):
        if isinstance(raw, Leg):
            out.append(raw)
            continue
        if not isinstance(raw, Mapping):
            raise InvalidLegError(f"expected a leg object, got {type(raw).__name__}", traveler=traveler, index=index)
        try:
            out.append(Leg.model_validate(raw))
        except ValidationError as exc:
            first = exc.errors()[0] if exc.errors() else {}
            field = ".".join(str(p) for p in first.get("loc", ()))
            message = first.get("msg", str(exc))
            raise InvalidLegError(
                f"{field}: {message}" if field else message, traveler=traveler, index=index
            ) from exc
    return out


def _analyze_pair(a: Leg, b: Leg, *, distance_fn: DistanceFn, same_city_radius_km: float) -> LegPair:
    overlap_start = max(a.start_date, b.start_date)
    overlap_end = min(a.end_date, b.end_date)
    has_overlap = overlap_start <= overlap_end

    overlap_days = inclusive_days(overlap_start, overlap_end) if has_overlap else 0
    gap_days = 0
    if not has_overlap:
        earlier, later = (a, b) if a.end_date < b.start_date else (b, a)
        gap_days = (later.start_date - earlier.end_date).days

    dist: float | None = None
    point_a = point_b = None
    if a.has_coordinates and b.has_coordinates:
        point_a = GeoPoint(lat=float(a.lat), lng=float(a.lng))
        point_b = GeoPoint(lat=float(b.lat), lng=float(b.lng))
        dist = float(distance_fn(point_a.lat, point_a.lng, point_b.lat, point_b.lng))

    if dist is not None:
        same_city = dist < float(same_city_radius_km)
    else:
        same_city = is_same_location(a.city, a.country, b.city, b.country)

    return LegPair(
        leg_a=a,
        leg_b=b,
        has_date_overlap=has_overlap,
        overlap_days=overlap_days,
        gap_days=gap_days,
        is_same_city=same_city,
        distance_km=dist,
        overlap_start=overlap_start if has_overlap else None,
        overlap_end=overlap_end if has_overlap else None,
    )


def _leg_key(leg: Leg) -> tuple[str, str, str, str]:
    return (
        normalize_place(leg.city),
        normalize_place(leg.country),
        leg.start_date.isoformat(),
        leg.end_date.isoformat(),
    )


def pair_sort_key(pair: LegPair) -> tuple:
    if pair.has_date_overlap:
        closeness = -pair.overlap_days
    else:
        closeness = pair.gap_days
    distance = (0, pair.distance_km) if pair.distance_km is not None else (1, 0.0)
    return (
        0 if pair.is_same_city else 1,
        0 if pair.has_date_overlap else 1,
        closeness,
        distance,
        pair.window(),
        tuple(sorted((_leg_key(pair.leg_a), _leg_key(pair.leg_b)))),
    )


def analyze_leg_pairs(
    legs_a: Sequence[Leg | Mapping[str, Any]],
    legs_b: Sequence[Leg | Mapping[str, Any]],
    *,
    distance_fn: DistanceFn | None = None,
    same_city_radius_km: float = 50.0,
    traveler_a: str | None = None,
    traveler_b: str | None = None,
) -> list[LegPair]:
    """Analyze every A×B leg pair and return them best-first.

    Ordering: same city, then overlapping, then more overlap days / fewer gap days, then
    smaller distance (unknown last), then window and leg keys.

    Raises:
        InvalidLegError: If any leg is malformed (checked before any pair is built).
    """
    checked_a = coerce_legs(legs_a, traveler=traveler_a)
    checked_b = coerce_legs(legs_b, traveler=traveler_b)
    fn = distance_fn or distance_km

    pairs = [
        _analyze_pair(a, b, distance_fn=fn, same_city_radius_km=same_city_radius_km)
        for a in checked_a
        for b in checked_b
    ]
    pairs.sort(key=pair_sort_key)
    return pairs


def top_pairs(pairs: list[LegPair], k: int = 10) -> list[LegPair]:
    """Keep the K best pairs (input must already be sorted by `analyze_leg_pairs`)."""
    return list(pairs[: max(0, int(k))])
