"""
API routes.

Endpoints:
- POST `/api/compare`: main comparison entrypoint.
- POST `/api/compare/more`: more distinct destinations, excluding cities already shown.
- POST `/api/suggest`: fair compromise cities between two points.
- POST `/api/meetup/plan`: mini-itinerary (nearby attractions, travel info) for one meetup city.
- POST `/api/meetup/activities`: model-suggested activities (needs the LLM; 503 when disabled).
- GET  `/api/settings`: public settings (secrets redacted).
"""

from __future__ import annotations

from functools import lru_cache
from datetime import date
from typing import Any, Callable, TypeVar

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from wherelse.config.settings import get_settings
from wherelse.core.cache import record_cache_stats
from wherelse.core.ingestion_meta import capture_ingestion_meta
from wherelse.domain.errors import ActivitySuggestionFailure
from wherelse.domain.models import CompareOptions, ComparisonResult, MeetupPlan
from wherelse.ingestion.geocoder import Geocoder
from wherelse.ingestion.llm_client import ChatCompletionsClient
from wherelse.ingestion.places import AttractionSource, PlaceSource
from wherelse.meetup.compare import (
    build_attraction_source,
    build_cache,
    build_geocoder,
    build_llm_client,
    build_place_source,
    compare_itineraries,
    suggest_more_options,
)
from wherelse.meetup.plan import plan_meetup, suggest_meetup_activities
from wherelse.meetup.suggest import Origin, format_compromise, suggest_meetup_destinations, suggest_with_relaxation

router = APIRouter()

T = TypeVar("T")


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CompareRequest(_Request):
    # Itineraries stay raw mappings so leg problems surface as InvalidLegError (400), not 422.
    itinerary_a: dict[str, Any]
    itinerary_b: dict[str, Any]
    options: CompareOptions | None = None
    geocode: bool = False


class MoreOptionsRequest(_Request):
    itinerary_a: dict[str, Any]
    itinerary_b: dict[str, Any]
    exclude_cities: list[str] = Field(default_factory=list)
    geocode: bool = False


class OriginPayload(_Request):
    city: str
    country: str
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    def to_origin(self) -> Origin:
        return Origin(city=self.city, country=self.country, lat=self.lat, lng=self.lng)


class SuggestRequest(_Request):
    origin1: OriginPayload
    origin2: OriginPayload
    min_fairness_ratio: float | None = Field(default=None, ge=0, le=1)
    max_results: int | None = Field(default=None, ge=1, le=50)
    relax: bool = False


class PlanRequest(_Request):
    destination: OriginPayload
    origin1: OriginPayload
    origin2: OriginPayload
    start_date: date
    end_date: date
    travelers: tuple[str, str] | None = None


class ActivitiesRequest(_Request):
    city: str
    country: str
    start_date: date | None = None
    end_date: date | None = None
    travelers: tuple[str, str] | None = None


@lru_cache
def _clients() -> tuple[PlaceSource, Geocoder, ChatCompletionsClient | None]:
    settings = get_settings()
    cache = build_cache(settings)
    return build_place_source(settings, cache), build_geocoder(settings, cache), build_llm_client(settings)


@lru_cache
def _attractions() -> AttractionSource:
    settings = get_settings()
    return build_attraction_source(settings, build_cache(settings))


def _run(fn: Callable[[], T]) -> T:
    """Map domain errors onto HTTP errors with a `{code, message}` detail."""
    try:
        return fn()
    except ActivitySuggestionFailure as e:
        raise HTTPException(
            status_code=502,
            detail={"code": "UPSTREAM_ERROR", "message": str(e)},
        ) from e
    except ValueError as e:
        # InvalidLegError is a ValueError too.
        raise HTTPException(
            status_code=400,
            detail={"code": "VALIDATION_ERROR", "message": str(e)},
        ) from e
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail={"code": "INTERNAL_ERROR", "message": str(e)},
        ) from e


@router.post("/api/compare", response_model=ComparisonResult, response_model_by_alias=True)
def post_compare(request: CompareRequest) -> ComparisonResult:
    """Compare two itineraries and return ranked meetups (plus cache/freshness meta)."""
    settings = get_settings()
    places, geocoder, llm = _clients()

    def run() -> ComparisonResult:
        with record_cache_stats() as stats, capture_ingestion_meta() as ing:
            result = compare_itineraries(
                request.itinerary_a,
                request.itinerary_b,
                request.options,
                settings=settings,
                places=places,
                geocoder=geocoder if request.geocode else None,
                oracle=llm,
                enricher=llm,
            )
        meta = {**(result.meta or {}), "cache": stats.as_dict(), "freshness": ing.as_dict()}
        return result.model_copy(update={"meta": meta})

    return _run(run)


@router.post("/api/compare/more")
def post_compare_more(request: MoreOptionsRequest) -> dict:
    """Return additional distinct destinations (no cap)."""
    settings = get_settings()
    places, geocoder, llm = _clients()

    def run() -> dict:
        overlaps = suggest_more_options(
            request.itinerary_a,
            request.itinerary_b,
            request.exclude_cities,
            settings=settings,
            places=places,
            geocoder=geocoder if request.geocode else None,
            enricher=llm,
        )
        return {"overlaps": [c.model_dump(mode="json", by_alias=True) for c in overlaps]}

    return _run(run)


@router.post("/api/suggest")
def post_suggest(request: SuggestRequest) -> dict:
    """Return fair compromise cities between two origins."""
    settings = get_settings()
    places, _geocoder, _llm = _clients()
    o1 = request.origin1.to_origin()
    o2 = request.origin2.to_origin()

    def run() -> dict:
        kwargs: dict[str, Any] = {
            "places": places,
            "settings": settings.suggester,
            "max_results": request.max_results,
            "same_city_radius_km": settings.comparison.same_city_radius_km,
        }
        relaxed = False
        if request.relax and request.min_fairness_ratio is None:
            cities, relaxed = suggest_with_relaxation(o1, o2, **kwargs)
        else:
            cities = suggest_meetup_destinations(o1, o2, min_fairness_ratio=request.min_fairness_ratio, **kwargs)
        return {
            "suggestions": [
                {**c.model_dump(mode="json", by_alias=True), "display": format_compromise(c, o1.city, o2.city)}
                for c in cities
            ],
            "relaxed": relaxed,
        }

    return _run(run)


@router.post("/api/meetup/plan", response_model=MeetupPlan, response_model_by_alias=True)
def post_meetup_plan(request: PlanRequest) -> MeetupPlan:
    """Return nearby attractions and each traveler's journey for one meetup city."""
    settings = get_settings()
    attractions = _attractions()

    def run() -> MeetupPlan:
        return plan_meetup(
            request.destination.to_origin(),
            request.origin1.to_origin(),
            request.origin2.to_origin(),
            request.start_date,
            request.end_date,
            travelers=request.travelers,
            attractions=attractions,
            settings=settings,
        )

    return _run(run)


@router.post("/api/meetup/activities")
def post_meetup_activities(request: ActivitiesRequest) -> dict:
    """Return model-suggested activities for friends meeting in a city."""
    _places, _geocoder, llm = _clients()
    if llm is None:
        raise HTTPException(
            status_code=503,
            detail={"code": "LLM_DISABLED", "message": "Activity suggestions need llm.enabled and an API key"},
        )

    def run() -> dict:
        activities = suggest_meetup_activities(
            request.city,
            request.country,
            suggester=llm,
            start=request.start_date,
            end=request.end_date,
            travelers=request.travelers,
        )
        return {"activities": [a.model_dump(mode="json", by_alias=True) for a in activities]}

    return _run(run)


@router.get("/api/settings")
def get_public_settings() -> dict:
    """Return non-secret settings for clients."""
    settings = get_settings()
    payload = settings.model_dump(mode="json")
    if payload.get("llm", {}).get("api_key"):
        payload["llm"]["api_key"] = "***"
    return payload
