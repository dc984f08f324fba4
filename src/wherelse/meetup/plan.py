"""
Meetup planning: what to do once a meetup city is chosen.

- `plan_meetup`: a mini-itinerary with nearby attractions (one place search per kind,
  spaced by the attraction source) and each traveler's distance and rough flight time.
- `suggest_meetup_activities`: model-suggested activities for friends meeting in a city.

Neither step changes which meetups qualify; both decorate a meetup the comparison already
produced (or one the caller picked by hand).
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Protocol

from wherelse.config.settings import Settings, get_settings
from wherelse.core.geo import haversine_km, normalize_place
from wherelse.domain.models import Activity, Attraction, MeetupPlan, TravelInfo
from wherelse.ingestion.places import AttractionSource
from wherelse.meetup.suggest import Origin, estimate_flight_time

logger = logging.getLogger(__name__)


class ActivitySuggester(Protocol):
    def suggest_activities(
        self,
        city: str,
        country: str,
        *,
        start: date | None = None,
        end: date | None = None,
        travelers: tuple[str, str] | None = None,
    ) -> list[Activity]: ...


def _travel(name: str, origin: Origin, destination: Origin) -> TravelInfo:
    d = haversine_km(origin.point, destination.point)
    return TravelInfo(name=name, distance_km=int(round(d)), estimated_flight=estimate_flight_time(d))


def plan_meetup(
    destination: Origin,
    origin1: Origin,
    origin2: Origin,
    start: date,
    end: date,
    *,
    travelers: tuple[str, str] | None = None,
    attractions: AttractionSource | None = None,
    settings: Settings | None = None,
) -> MeetupPlan:
    """Build a mini-itinerary for meeting in `destination` between `start` and `end`.

    Without an attraction source the plan only carries travel info.

    Raises:
        ValueError: If `end` is before `start`.
    """
    if end < start:
        raise ValueError("end date must be on or after start date")
    settings = settings or get_settings()
    names = travelers or (origin1.city, origin2.city)

    suggestions: list[Attraction] = []
    if attractions is not None:
        seen: set[str] = set()
        for kind in settings.places.attraction_kinds:
            for hit in attractions.search(kind, destination.city, destination.lat, destination.lng):
                key = normalize_place(hit.name)
                if key in seen:
                    continue
                seen.add(key)
                suggestions.append(hit)
        logger.info("Planned %d suggestions in %s", len(suggestions), destination.city)

    return MeetupPlan(
        city=destination.city,
        country=destination.country,
        lat=destination.lat,
        lng=destination.lng,
        start_date=start,
        end_date=end,
        travelers=names,
        suggestions=suggestions,
        travel_info=[_travel(names[0], origin1, destination), _travel(names[1], origin2, destination)],
    )


def suggest_meetup_activities(
    city: str,
    country: str,
    *,
    suggester: ActivitySuggester,
    start: date | None = None,
    end: date | None = None,
    travelers: tuple[str, str] | None = None,
) -> list[Activity]:
    """Activities for a meetup city, deduplicated by name.

    Raises:
        ValueError: If the city or country is blank.
        ActivitySuggestionFailure: When the suggester fails.
    """
    if not city.strip() or not country.strip():
        raise ValueError("city and country are required")
    out: list[Activity] = []
    seen: set[str] = set()
    for activity in suggester.suggest_activities(city, country, start=start, end=end, travelers=travelers):
        key = normalize_place(activity.name)
        if key not in seen:
            seen.add(key)
            out.append(activity)
    return out
