"""
Domain models (Pydantic).

These types represent the stable "contract" between layers:
- comparison inputs (`Leg`, `Itinerary`, `CompareOptions`)
- places and compromise suggestions (`Place`, `CompromiseCity`)
- meetup planning (`Attraction`, `TravelInfo`, `MeetupPlan`, `Activity`)
- comparison output (`MeetupCandidate`, `BestOption`, `ComparisonResult`)

Python code uses snake_case; JSON uses camelCase aliases (`startDate`, `traveler1From`)
so the API/CLI emit the same shape the UI layer consumes. Both spellings are accepted
on input.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from wherelse.core.time import parse_date
from wherelse.domain.errors import InvalidLegError

MeetupType = Literal["natural", "near-miss", "potential"]


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _FrozenModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Leg(_FrozenModel):
    """One continuous stay of one traveler in one place (inclusive date range)."""

    city: str
    country: str
    start_date: date
    end_date: date
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)

    @field_validator("city", "country")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        value = " ".join(str(value).split())
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _calendar_date(cls, value: Any) -> Any:
        # Clients may send full ISO timestamps; a leg only keeps the calendar day.
        if isinstance(value, (str, date)):
            return parse_date(value)
        return value

    @model_validator(mode="after")
    def _validate_leg(self) -> "Leg":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be given together")
        return self

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


class Itinerary(_FrozenModel):
    """One traveler's ordered legs."""

    traveler_name: str | None = None
    legs: list[Leg] = Field(default_factory=list)


class TravelerLocation(_FrozenModel):
    """Where one traveler actually is during a meetup window (snapshot of a leg)."""

    city: str
    country: str
    start_date: date | None = None
    end_date: date | None = None

    @classmethod
    def from_leg(cls, leg: Leg) -> "TravelerLocation":
        return cls(city=leg.city, country=leg.country, start_date=leg.start_date, end_date=leg.end_date)


class MeetupCandidate(_FrozenModel):
    """A typed, ranked meetup proposal. Never mutated; use `model_copy(update=...)`."""

    type: MeetupType
    priority: int = Field(..., ge=1)
    city: str
    country: str
    start_date: date
    end_date: date
    days: int = Field(..., ge=1)
    gap_days: int = Field(0, ge=0)
    travelers: tuple[str, str]
    traveler1_from: TravelerLocation
    traveler2_from: TravelerLocation
    why_here: str = ""
    adjustment: str = ""

    lat: float | None = None
    lng: float | None = None
    distance_from1_km: int | None = None
    distance_from2_km: int | None = None
    fairness_ratio: float | None = None
    score: float | None = None
    is_alternative: bool = False


class Place(_FrozenModel):
    """A real populated place (gazetteer row or place-search hit)."""

    city: str
    country: str
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    type: str = "city"
    population: int | None = None


class CompromiseCity(_FrozenModel):
    """A scored compromise destination between two origins."""

    city: str
    country: str
    lat: float
    lng: float
    type: str
    score: float
    distance_from1_km: int
    distance_from2_km: int
    fairness_ratio: float = Field(..., ge=0, le=1)


class Attraction(_FrozenModel):
    """Something to do near a meetup city (place-search hit)."""

    name: str
    kind: str
    type: str
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    distance_km: float | None = None


class TravelInfo(_FrozenModel):
    name: str
    distance_km: int
    estimated_flight: str


class MeetupPlan(_Model):
    """Mini-itinerary for one chosen meetup: things to do plus each traveler's journey."""

    city: str
    country: str
    lat: float
    lng: float
    start_date: date
    end_date: date
    travelers: tuple[str, str]
    suggestions: list[Attraction] = Field(default_factory=list)
    travel_info: list[TravelInfo] = Field(default_factory=list)


class Activity(_FrozenModel):
    """One model-suggested activity for friends meeting in a city."""

    name: str
    type: str = "experience"
    description: str = ""
    why_great: str = ""
    price_range: str | None = None
    best_time: str | None = None

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        value = " ".join(str(value).split())
        if not value:
            raise ValueError("must not be blank")
        return value


class BestOption(_FrozenModel):
    """The top-ranked candidate restated as a recommendation."""

    summary: str
    action: str
    type: MeetupType
    city: str
    country: str
    start_date: date
    end_date: date


class CompareOptions(_Model):
    """Optional per-run knobs for `compare_itineraries`."""

    max_results: int | None = Field(default=None, ge=1, le=50)
    min_fairness_ratio: float | None = Field(default=None, ge=0, le=1)
    top_pairs: int | None = Field(default=None, ge=1, le=100)
    settings_overrides: dict[str, Any] | None = None


class ComparisonResult(_Model):
    """Ranked meetups plus the "nothing found, here's why" state."""

    overlaps: list[MeetupCandidate] = Field(default_factory=list)
    best_option: BestOption | None = None
    no_good_options: bool = False
    reason: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)


def parse_itinerary(payload: Mapping[str, Any], *, label: str | None = None) -> Itinerary:
    """Validate a raw itinerary mapping, turning leg problems into `InvalidLegError`."""
    try:
        return Itinerary.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        loc = [p for p in first.get("loc", ())]
        index = next((p for p in loc if isinstance(p, int)), None)
        field = ".".join(str(p) for p in loc if not isinstance(p, int) and p != "legs")
        message = first.get("msg", str(exc))
        detail = f"{field}: {message}" if field else message
        traveler = label
        if traveler is None and isinstance(payload, Mapping):
            traveler = payload.get("travelerName") or payload.get("traveler_name")
        raise InvalidLegError(detail, traveler=traveler, index=index) from exc
