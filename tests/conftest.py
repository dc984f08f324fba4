from __future__ import annotations

import pytest

from wherelse.catalog.loader import Gazetteer
from wherelse.config.settings import Settings
from wherelse.domain.models import Place


def _place(city: str, country: str, lat: float, lng: float, type: str = "city") -> Place:
    return Place(city=city, country=country, lat=lat, lng=lng, type=type)


# A handful of real places keeps the compromise search deterministic (the packaged
# gazetteer would add every Belgian/Dutch town along the way).
BENELUX = [
    _place("Paris", "France", 48.8566, 2.3522, "capital"),
    _place("Amsterdam", "Netherlands", 52.3676, 4.9041, "capital"),
    _place("Brussels", "Belgium", 50.8503, 4.3517, "capital"),
    _place("Antwerp", "Belgium", 51.2194, 4.4025),
    _place("Rotterdam", "Netherlands", 51.9244, 4.4777),
]

IBERIA_ITALY = [
    _place("Lisbon", "Portugal", 38.7223, -9.1393, "capital"),
    _place("Madrid", "Spain", 40.4168, -3.7038, "capital"),
    _place("Barcelona", "Spain", 41.3874, 2.1686),
    _place("Rome", "Italy", 41.9028, 12.4964, "capital"),
]

FAR_AWAY = [
    _place("New York", "United States", 40.7128, -74.0060),
    _place("Tokyo", "Japan", 35.6762, 139.6503, "capital"),
]


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def gazetteer() -> Gazetteer:
    return Gazetteer(BENELUX + IBERIA_ITALY + FAR_AWAY)


def leg(city: str, country: str, start: str, end: str, lat: float | None = None, lng: float | None = None) -> dict:
    out = {"city": city, "country": country, "startDate": start, "endDate": end}
    if lat is not None:
        out["lat"] = lat
        out["lng"] = lng
    return out
