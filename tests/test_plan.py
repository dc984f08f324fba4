from datetime import date

import pytest

from wherelse.config.settings import Settings
from wherelse.domain.errors import ActivitySuggestionFailure
from wherelse.domain.models import Activity, Attraction
from wherelse.meetup.plan import plan_meetup, suggest_meetup_activities
from wherelse.meetup.suggest import Origin

PARIS = Origin("Paris", "France", 48.8566, 2.3522)
AMSTERDAM = Origin("Amsterdam", "Netherlands", 52.3676, 4.9041)
BRUSSELS = Origin("Brussels", "Belgium", 50.8503, 4.3517)
LISBON = Origin("Lisbon", "Portugal", 38.7223, -9.1393)


class _StubAttractions:
    def __init__(self, hits):
        self.hits = hits
        self.calls = []

    def search(self, kind, city, lat, lng):
        self.calls.append((kind, city))
        return [a for a in self.hits if a.kind == kind]


def _hit(name, kind):
    return Attraction(name=name, kind=kind, type="house", lat=50.85, lng=4.35, distance_km=1.0)


class _StubSuggester:
    def __init__(self, activities=None, error=None):
        self.activities = activities or []
        self.error = error
        self.kwargs = None

    def suggest_activities(self, city, country, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        return self.activities


def test_plan_searches_each_kind_and_drops_repeats():
    source = _StubAttractions(
        [
            _hit("Magritte Museum", "museum"),
            _hit("Atomium", "landmark"),
            # Photon can return the same place for two searches.
            _hit("atomium", "park"),
            _hit("Parc du Cinquantenaire", "park"),
        ]
    )
    plan = plan_meetup(
        BRUSSELS,
        PARIS,
        AMSTERDAM,
        date(2025, 5, 3),
        date(2025, 5, 6),
        travelers=("Ana", "Ben"),
        attractions=source,
        settings=Settings(),
    )

    assert [kind for kind, _city in source.calls] == ["museum", "landmark", "restaurant", "park"]
    assert all(city == "Brussels" for _kind, city in source.calls)
    assert [a.name for a in plan.suggestions] == ["Magritte Museum", "Atomium", "Parc du Cinquantenaire"]
    assert plan.travelers == ("Ana", "Ben")


def test_plan_travel_info_uses_distance_bands():
    plan = plan_meetup(BRUSSELS, PARIS, LISBON, date(2025, 5, 3), date(2025, 5, 3), settings=Settings())

    ana, ben = plan.travel_info
    assert ana.name == "Paris" and ben.name == "Lisbon"
    assert 255 <= ana.distance_km <= 275
    assert ana.estimated_flight == "~1 hour"
    assert 1650 <= ben.distance_km <= 1750
    assert ben.estimated_flight == "~4 hours"
    assert plan.suggestions == []


def test_plan_serializes_camel_case():
    plan = plan_meetup(BRUSSELS, PARIS, AMSTERDAM, date(2025, 5, 3), date(2025, 5, 6), settings=Settings())
    data = plan.model_dump(mode="json", by_alias=True)
    assert data["startDate"] == "2025-05-03"
    assert data["travelInfo"][0]["estimatedFlight"] == "~1 hour"


def test_plan_rejects_reversed_dates():
    with pytest.raises(ValueError):
        plan_meetup(BRUSSELS, PARIS, AMSTERDAM, date(2025, 5, 6), date(2025, 5, 3), settings=Settings())


def test_activities_are_deduplicated_by_name():
    suggester = _StubSuggester(
        [
            Activity(name="Beer tasting at Moeder Lambic", type="drinks"),
            Activity(name="beer  tasting at moeder lambic", type="drinks"),
            Activity(name="Comics walk", type="culture"),
        ]
    )
    out = suggest_meetup_activities(
        "Brussels", "Belgium", suggester=suggester, start=date(2025, 5, 3), travelers=("Ana", "Ben")
    )
    assert [a.name for a in out] == ["Beer tasting at Moeder Lambic", "Comics walk"]
    assert suggester.kwargs == {"start": date(2025, 5, 3), "end": None, "travelers": ("Ana", "Ben")}


def test_activities_need_a_city_and_country():
    with pytest.raises(ValueError):
        suggest_meetup_activities(" ", "Belgium", suggester=_StubSuggester())


def test_activity_failure_reaches_the_caller():
    suggester = _StubSuggester(error=ActivitySuggestionFailure("model down"))
    with pytest.raises(ActivitySuggestionFailure):
        suggest_meetup_activities("Brussels", "Belgium", suggester=suggester)
