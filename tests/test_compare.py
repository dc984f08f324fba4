from __future__ import annotations

from datetime import date

import pytest

from conftest import leg
from wherelse.domain.errors import ClassificationOracleFailure, EnrichmentFailure, InvalidLegError
from wherelse.domain.models import CompareOptions, MeetupCandidate, TravelerLocation
from wherelse.meetup.compare import compare_itineraries, suggest_more_options

PARIS = (48.8566, 2.3522)
AMSTERDAM = (52.3676, 4.9041)


def _paris_amsterdam():
    a = {
        "travelerName": "Ana",
        "legs": [
            leg("Paris", "France", "2025-03-01", "2025-03-10", *PARIS),
            leg("Paris", "France", "2025-03-20", "2025-03-25", *PARIS),
        ],
    }
    b = {
        "travelerName": "Ben",
        "legs": [
            leg("Amsterdam", "Netherlands", "2025-03-05", "2025-03-12", *AMSTERDAM),
            leg("Amsterdam", "Netherlands", "2025-03-21", "2025-03-24", *AMSTERDAM),
        ],
    }
    return a, b


def _keys(result):
    return [(c.type, c.city, c.country, c.start_date, c.end_date, c.priority) for c in result.overlaps]


class StubOracle:
    def __init__(self, result=None, error: Exception | None = None):
        self._result = result or []
        self._error = error
        self.calls = 0

    def classify(self, itinerary_a, itinerary_b, pairs, *, names):
        self.calls += 1
        if self._error is not None:
            raise self._error
        return list(self._result)


class StubEnricher:
    def __init__(self, fail_for: set[str] | None = None):
        self._fail_for = fail_for or set()

    def enrich(self, candidate):
        if candidate.city in self._fail_for:
            raise EnrichmentFailure("model timed out")
        return candidate.model_copy(update={"why_here": f"Lovely {candidate.city}", "city": "Elsewhere"})


def test_compare_dedups_one_compromise_city_across_pairs(settings, gazetteer):
    a, b = _paris_amsterdam()
    result = compare_itineraries(a, b, settings=settings, places=gazetteer)

    assert not result.no_good_options
    assert [c.city for c in result.overlaps] == ["Brussels"]
    top = result.overlaps[0]
    assert top.type == "potential"
    assert (top.start_date, top.end_date) == (date(2025, 3, 5), date(2025, 3, 10))
    assert top.travelers == ("Ana", "Ben")
    assert result.best_option.city == "Brussels"
    assert result.meta["source"] == "rules"
    assert result.meta["fallback"] is False
    assert result.meta["pair_count"] == 4


def test_compare_is_symmetric(settings, gazetteer):
    a = {
        "legs": [
            leg("Paris", "France", "2025-03-01", "2025-03-10", *PARIS),
            leg("Lisbon", "Portugal", "2025-04-01", "2025-04-05"),
        ]
    }
    b = {
        "legs": [
            leg("Amsterdam", "Netherlands", "2025-03-05", "2025-03-12", *AMSTERDAM),
            leg("Lisbon", "Portugal", "2025-04-09", "2025-04-12"),
        ]
    }
    ab = compare_itineraries(a, b, settings=settings, places=gazetteer)
    ba = compare_itineraries(b, a, settings=settings, places=gazetteer)
    assert _keys(ab) == _keys(ba)
    assert [c.type for c in ab.overlaps] == ["near-miss", "potential"]


def test_compare_is_deterministic(settings, gazetteer):
    a, b = _paris_amsterdam()
    first = compare_itineraries(a, b, settings=settings, places=gazetteer)
    second = compare_itineraries(a, b, settings=settings, places=gazetteer)
    assert first.overlaps == second.overlaps


def test_natural_overlap_ranks_first(settings, gazetteer):
    a = {"legs": [leg("Paris", "France", "2025-03-01", "2025-03-10"), leg("Rome", "Italy", "2025-05-01", "2025-05-03")]}
    b = {"legs": [leg("Paris", "France", "2025-03-05", "2025-03-15"), leg("Rome", "Italy", "2025-05-05", "2025-05-08")]}
    result = compare_itineraries(a, b, settings=settings, places=gazetteer)
    assert [(c.type, c.city) for c in result.overlaps] == [("natural", "Paris"), ("near-miss", "Rome")]
    assert result.overlaps[0].days == 6
    assert result.best_option.type == "natural"


def test_no_overlap_across_continents(settings, gazetteer):
    a = {"legs": [leg("New York", "United States", "2025-01-05", "2025-01-12", 40.7128, -74.0060)]}
    b = {"legs": [leg("Tokyo", "Japan", "2025-12-01", "2025-12-10", 35.6762, 139.6503)]}
    result = compare_itineraries(a, b, settings=settings, places=gazetteer)
    assert result.no_good_options
    assert result.overlaps == []
    assert result.best_option is None
    assert "different continents" in result.reason


def test_empty_itinerary_is_not_an_error(settings, gazetteer):
    result = compare_itineraries({"legs": []}, {"legs": [leg("Paris", "France", "2025-01-01", "2025-01-02")]}, settings=settings, places=gazetteer)
    assert result.no_good_options
    assert result.reason


def test_invalid_leg_fails_before_anything_else(settings, gazetteer):
    oracle = StubOracle()
    bad = {"travelerName": "Ana", "legs": [leg("Paris", "France", "2025-03-10", "2025-03-01")]}
    with pytest.raises(InvalidLegError, match="Ana, leg 1"):
        compare_itineraries(bad, {"legs": []}, settings=settings, places=gazetteer, oracle=oracle)
    assert oracle.calls == 0


def test_fallback_used_when_rules_find_nothing(settings, gazetteer):
    a = {"legs": [leg("Lisbon", "Portugal", "2025-06-01", "2025-06-10", 38.7223, -9.1393)]}
    b = {"legs": [leg("Rome", "Italy", "2025-06-05", "2025-06-12", 41.9028, 12.4964)]}
    result = compare_itineraries(a, b, settings=settings, places=gazetteer)
    assert result.meta["fallback"] is True
    assert [c.city for c in result.overlaps] == ["Barcelona"]
    assert result.overlaps[0].fairness_ratio >= 0.4


def test_options_cap_results(settings, gazetteer):
    a = {"legs": [leg("Paris", "France", "2025-03-01", "2025-03-10"), leg("Rome", "Italy", "2025-05-01", "2025-05-03")]}
    b = {"legs": [leg("Paris", "France", "2025-03-05", "2025-03-15"), leg("Rome", "Italy", "2025-05-05", "2025-05-08")]}
    result = compare_itineraries(a, b, CompareOptions(max_results=1), settings=settings, places=gazetteer)
    assert len(result.overlaps) == 1


def test_settings_overrides_apply_per_run(settings, gazetteer):
    a = {"legs": [leg("Rome", "Italy", "2025-05-01", "2025-05-03")]}
    b = {"legs": [leg("Rome", "Italy", "2025-05-05", "2025-05-08")]}
    options = CompareOptions(settings_overrides={"comparison": {"near_miss_max_gap_days": 1}})
    result = compare_itineraries(a, b, options, settings=settings, places=gazetteer)
    assert result.no_good_options
    assert settings.comparison.near_miss_max_gap_days == 30


def test_oracle_failure_falls_back_to_rules(settings, gazetteer):
    a, b = _paris_amsterdam()
    oracle = StubOracle(error=ClassificationOracleFailure("bad json"))
    result = compare_itineraries(a, b, settings=settings, places=gazetteer, oracle=oracle)
    assert oracle.calls == 1
    assert result.meta["source"] == "rules"
    assert [c.city for c in result.overlaps] == ["Brussels"]


def _oracle_candidate(
    type: str,
    city: str,
    country: str,
    start: date = date(2025, 3, 5),
    end: date = date(2025, 3, 10),
    **extra,
) -> MeetupCandidate:
    return MeetupCandidate(
        type=type,
        priority=extra.pop("priority", 1),
        city=city,
        country=country,
        start_date=start,
        end_date=end,
        days=(end - start).days + 1,
        travelers=("Ana", "Ben"),
        traveler1_from=TravelerLocation(city="Paris", country="France"),
        traveler2_from=TravelerLocation(city="Amsterdam", country="Netherlands"),
        **extra,
    )


def test_oracle_result_is_validated_and_ranked(settings, gazetteer):
    a, b = _paris_amsterdam()
    oracle = StubOracle(
        result=[
            _oracle_candidate("potential", "Paris", "France"),
            _oracle_candidate("potential", "Antwerp", "Belgium", whyHere="Diamonds and fries"),
        ]
    )
    result = compare_itineraries(a, b, settings=settings, places=gazetteer, oracle=oracle)
    assert result.meta["source"] == "oracle"
    (top,) = result.overlaps
    assert top.city == "Antwerp"
    assert top.why_here == "Diamonds and fries"
    # Distances and fairness come from the gazetteer, not from the proposal.
    assert top.distance_from2_km == 132
    assert top.fairness_ratio == pytest.approx(0.44, abs=0.01)


def test_oracle_invented_places_are_dropped(settings, gazetteer):
    a, b = _paris_amsterdam()
    oracle = StubOracle(
        result=[
            _oracle_candidate("potential", "Meet halfway", "Somewhere"),
            _oracle_candidate("natural", "Lille", "France"),
            _oracle_candidate("natural", "Paris", "France"),
            # Real compromise city, but outside the overlap window.
            _oracle_candidate("potential", "Brussels", "Belgium", date(2025, 3, 1), date(2025, 3, 12)),
        ]
    )
    result = compare_itineraries(a, b, settings=settings, places=gazetteer, oracle=oracle)
    assert result.meta["source"] == "rules"
    assert [c.city for c in result.overlaps] == ["Brussels"]
    assert (result.overlaps[0].start_date, result.overlaps[0].end_date) == (date(2025, 3, 5), date(2025, 3, 10))


def test_oracle_same_city_proposal_takes_rule_fields(settings, gazetteer):
    a = {"legs": [leg("Paris", "France", "2025-03-01", "2025-03-10")]}
    b = {"legs": [leg("Paris", "France", "2025-03-05", "2025-03-15")]}
    oracle = StubOracle(
        result=[
            _oracle_candidate("natural", "paris", "france", date(2025, 3, 7), date(2025, 3, 9), priority=4),
            _oracle_candidate("near-miss", "Paris", "France"),
        ]
    )
    result = compare_itineraries(a, b, settings=settings, places=gazetteer, oracle=oracle)
    assert result.meta["source"] == "oracle"
    (top,) = result.overlaps
    assert (top.type, top.city, top.priority, top.days) == ("natural", "Paris", 1, 3)
    assert top.traveler2_from.end_date == date(2025, 3, 15)


def test_oracle_with_only_invalid_output_keeps_rules(settings, gazetteer):
    a, b = _paris_amsterdam()
    oracle = StubOracle(result=[_oracle_candidate("potential", "Amsterdam", "Netherlands")])
    result = compare_itineraries(a, b, settings=settings, places=gazetteer, oracle=oracle)
    assert result.meta["source"] == "rules"
    assert [c.city for c in result.overlaps] == ["Brussels"]


def test_enricher_only_rewrites_text(settings, gazetteer):
    a, b = _paris_amsterdam()
    result = compare_itineraries(a, b, settings=settings, places=gazetteer, enricher=StubEnricher())
    (top,) = result.overlaps
    assert top.city == "Brussels"
    assert top.why_here == "Lovely Brussels"


def test_enricher_failure_keeps_original_text(settings, gazetteer):
    a, b = _paris_amsterdam()
    plain = compare_itineraries(a, b, settings=settings, places=gazetteer)
    result = compare_itineraries(a, b, settings=settings, places=gazetteer, enricher=StubEnricher({"Brussels"}))
    assert result.overlaps == plain.overlaps


class StubGeocoder:
    def __init__(self, points):
        self._points = points
        self.calls = []

    def geocode(self, city, country):
        from wherelse.core.geo import GeoPoint

        self.calls.append(city)
        lat_lng = self._points.get(city)
        return GeoPoint(*lat_lng) if lat_lng else None


def test_geocoder_fills_missing_coordinates(settings, gazetteer):
    a = {"legs": [leg("Paris", "France", "2025-03-01", "2025-03-10")]}
    b = {"legs": [leg("Amsterdam", "Netherlands", "2025-03-05", "2025-03-12", *AMSTERDAM)]}
    geocoder = StubGeocoder({"Paris": PARIS})
    result = compare_itineraries(a, b, settings=settings, places=gazetteer, geocoder=geocoder)
    assert geocoder.calls == ["Paris"]
    assert [c.city for c in result.overlaps] == ["Brussels"]
    assert "geocode" in result.meta["timings_ms"]


def test_more_options_lists_everything_not_excluded(settings, gazetteer):
    a, b = _paris_amsterdam()
    more = suggest_more_options(a, b, ["Brussels"], settings=settings, places=gazetteer)
    cities = [c.city for c in more]
    assert "Brussels" not in cities
    assert cities == ["Antwerp"]
