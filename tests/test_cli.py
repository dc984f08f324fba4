import json

import pytest

from conftest import BENELUX, leg
from wherelse import cli
from wherelse.catalog.loader import Gazetteer
from wherelse.domain.errors import ActivitySuggestionFailure
from wherelse.domain.models import Activity, Attraction


@pytest.fixture
def itineraries(tmp_path):
    a = tmp_path / "ana.json"
    b = tmp_path / "ben.json"
    a.write_text(
        json.dumps({"travelerName": "Ana", "legs": [leg("Paris", "France", "2025-05-01", "2025-05-06", 48.8566, 2.3522)]}),
        encoding="utf-8",
    )
    # A bare list of legs is accepted too.
    b.write_text(
        json.dumps([leg("Amsterdam", "Netherlands", "2025-05-03", "2025-05-10", 52.3676, 4.9041)]),
        encoding="utf-8",
    )
    return str(a), str(b)


@pytest.fixture(autouse=True)
def offline_places(monkeypatch):
    monkeypatch.setattr(cli, "build_place_source", lambda settings, cache=None: Gazetteer(BENELUX))


def test_cli_compare_json(itineraries, capsys):
    assert cli.main(["compare", *itineraries, "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["overlaps"][0]["city"] == "Brussels"
    assert data["overlaps"][0]["travelers"] == ["Ana", "Traveler 2"]


def test_cli_compare_text(itineraries, capsys):
    assert cli.main(["compare", *itineraries]) == 0
    out = capsys.readouterr().out
    assert out.startswith("Best: ")
    assert "potential p1 | Brussels, Belgium" in out


def test_cli_more_excludes(itineraries, capsys):
    assert cli.main(["more", *itineraries, "--exclude", "Brussels", "--json"]) == 0
    cities = [c["city"] for c in json.loads(capsys.readouterr().out)]
    assert cities == ["Antwerp"]


def test_cli_suggest(capsys):
    args = ["suggest", "--from", "Paris,France,48.8566,2.3522", "--to", "Amsterdam,Netherlands,52.3676,4.9041"]
    assert cli.main(args) == 0
    out = capsys.readouterr().out
    assert out.startswith(" 1. Brussels, Belgium")


def test_cli_suggest_rejects_bad_origin():
    with pytest.raises(SystemExit):
        cli.main(["suggest", "--from", "Paris,France", "--to", "Amsterdam,Netherlands,52.3676,4.9041"])


def test_cli_invalid_leg_exits_2(tmp_path, capsys):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps([leg("Paris", "France", "2025-05-06", "2025-05-01")]), encoding="utf-8")
    assert cli.main(["compare", str(bad), str(bad)]) == 2
    assert "Invalid itinerary" in capsys.readouterr().err


class _StubAttractions:
    def search(self, kind, city, lat, lng):
        if kind != "park":
            return []
        return [Attraction(name="Parc du Cinquantenaire", kind=kind, type="park", lat=50.8404, lng=4.3928, distance_km=3.0)]


PLAN_ARGS = [
    "plan",
    "--at",
    "Brussels,Belgium,50.8503,4.3517",
    "--from",
    "Paris,France,48.8566,2.3522",
    "--to",
    "Amsterdam,Netherlands,52.3676,4.9041",
    "--start",
    "2025-05-03",
    "--end",
    "2025-05-06",
]


def test_cli_plan_text(monkeypatch, capsys):
    monkeypatch.setattr(cli, "build_attraction_source", lambda settings, cache=None: _StubAttractions())
    assert cli.main([*PLAN_ARGS, "--names", "Ana", "Ben"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("Brussels, Belgium: 2025-05-03 to 2025-05-06")
    assert "  Ana: " in out and "~1 hour" in out
    assert "  - [park] Parc du Cinquantenaire (3.0 km)" in out


def test_cli_plan_json(monkeypatch, capsys):
    monkeypatch.setattr(cli, "build_attraction_source", lambda settings, cache=None: _StubAttractions())
    assert cli.main([*PLAN_ARGS, "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["travelers"] == ["Paris", "Amsterdam"]
    assert data["suggestions"][0]["kind"] == "park"


def test_cli_plan_rejects_bad_date():
    with pytest.raises(SystemExit):
        cli.main([*PLAN_ARGS[:-1], "next week"])


def test_cli_activities_without_llm_exits_1(monkeypatch, capsys):
    monkeypatch.setattr(cli, "build_llm_client", lambda settings: None)
    assert cli.main(["activities", "Brussels", "Belgium"]) == 1
    assert "llm.enabled" in capsys.readouterr().err


class _StubLlm:
    def __init__(self, error=None):
        self.error = error

    def suggest_activities(self, city, country, **kwargs):
        if self.error:
            raise self.error
        return [Activity(name="Comics walk", type="culture", price_range="$", why_great="Murals on every corner")]


def test_cli_activities_text(monkeypatch, capsys):
    monkeypatch.setattr(cli, "build_llm_client", lambda settings: _StubLlm())
    assert cli.main(["activities", "Brussels", "Belgium", "--start", "2025-05-03"]) == 0
    out = capsys.readouterr().out
    assert out.startswith(" 1. Comics walk [culture] $")
    assert "    - why: Murals on every corner" in out


def test_cli_activities_failure_exits_1(monkeypatch, capsys):
    monkeypatch.setattr(cli, "build_llm_client", lambda settings: _StubLlm(ActivitySuggestionFailure("model down")))
    assert cli.main(["activities", "Brussels", "Belgium"]) == 1
    assert "model down" in capsys.readouterr().err
