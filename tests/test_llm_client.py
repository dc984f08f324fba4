import json
from datetime import date

import httpx
import pytest

from wherelse.config.settings import Settings
from wherelse.domain.errors import ActivitySuggestionFailure, ClassificationOracleFailure, EnrichmentFailure
from wherelse.domain.models import Itinerary, MeetupCandidate, TravelerLocation
from wherelse.ingestion.llm_client import (
    ChatCompletionsClient,
    build_activities_prompt,
    build_classify_prompt,
    extract_json_object,
)


def _settings() -> Settings:
    return Settings(llm={"enabled": True, "api_key": "test-key"})


def _chat(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def test_extract_json_object_handles_fences_and_prose():
    assert extract_json_object('```json\n{"a": 1}\n```') == {"a": 1}
    assert extract_json_object('Sure! Here it is: {"a": {"b": 2}} Hope that helps.') == {"a": {"b": 2}}
    with pytest.raises(ValueError):
        extract_json_object("no json here")


def test_client_disabled_without_key():
    assert not ChatCompletionsClient(Settings(llm={"enabled": True})).enabled
    assert not ChatCompletionsClient(Settings(llm={"api_key": "k"})).enabled
    assert ChatCompletionsClient(_settings()).enabled


def test_classify_reads_name_keyed_travelers(monkeypatch):
    content = {
        "meetups": [
            {
                "type": "natural",
                "priority": 1,
                "city": "Paris",
                "country": "France",
                "startDate": "2025-03-05",
                "endDate": "2025-03-10",
                "days": 6,
                "Ana": {"city": "Paris", "country": "France"},
                "Ben": {"city": "Paris", "country": "France"},
                "whyHere": "Both in Paris",
            },
            {"type": "teleport", "city": "Mars"},
            "garbage",
        ],
        "noGoodOptions": False,
    }
    sent = {}

    def fake_post_json(url, *, payload, headers=None, timeout_seconds=15):
        sent.update(payload=payload, headers=headers)
        return _chat(f"```json\n{json.dumps(content)}\n```")

    monkeypatch.setattr("wherelse.ingestion.llm_client.post_json", fake_post_json)
    client = ChatCompletionsClient(_settings())
    out = client.classify(Itinerary(), Itinerary(), [], names=("Ana", "Ben"))

    assert [c.city for c in out] == ["Paris"]
    assert out[0].travelers == ("Ana", "Ben")
    assert out[0].traveler1_from.city == "Paris"
    assert sent["headers"]["Authorization"] == "Bearer test-key"
    assert sent["payload"]["model"] == "gpt-4o"


def test_classify_transport_error_is_oracle_failure(monkeypatch):
    def boom(url, **kw):
        raise httpx.ReadTimeout("timed out")

    monkeypatch.setattr("wherelse.ingestion.llm_client.post_json", boom)
    with pytest.raises(ClassificationOracleFailure):
        ChatCompletionsClient(_settings()).classify(Itinerary(), Itinerary(), [], names=("Ana", "Ben"))


def test_classify_unparseable_output_is_oracle_failure(monkeypatch):
    monkeypatch.setattr("wherelse.ingestion.llm_client.post_json", lambda url, **kw: _chat("I cannot help with that."))
    with pytest.raises(ClassificationOracleFailure):
        ChatCompletionsClient(_settings()).classify(Itinerary(), Itinerary(), [], names=("Ana", "Ben"))


def _candidate() -> MeetupCandidate:
    return MeetupCandidate(
        type="potential",
        priority=1,
        city="Brussels",
        country="Belgium",
        start_date=date(2025, 3, 5),
        end_date=date(2025, 3, 10),
        days=6,
        travelers=("Ana", "Ben"),
        traveler1_from=TravelerLocation(city="Paris", country="France"),
        traveler2_from=TravelerLocation(city="Amsterdam", country="Netherlands"),
        why_here="Real city between Paris and Amsterdam",
        adjustment="Ana travels 264 km",
    )


def test_enrich_rewrites_text_only(monkeypatch):
    reply = {"whyHere": "Waffles halfway between you", "adjustment": "", "city": "Ghent"}
    monkeypatch.setattr("wherelse.ingestion.llm_client.post_json", lambda url, **kw: _chat(json.dumps(reply)))

    out = ChatCompletionsClient(_settings()).enrich(_candidate())
    assert out.why_here == "Waffles halfway between you"
    # Blank replacement keeps the original; the city is never taken from the model.
    assert out.adjustment == "Ana travels 264 km"
    assert out.city == "Brussels"


def test_enrich_failure(monkeypatch):
    monkeypatch.setattr("wherelse.ingestion.llm_client.post_json", lambda url, **kw: {"choices": []})
    with pytest.raises(EnrichmentFailure):
        ChatCompletionsClient(_settings()).enrich(_candidate())


def test_classify_prompt_names_travelers():
    prompt = build_classify_prompt(Itinerary(), Itinerary(), [], names=("Ana", "Ben"))
    assert '"Ana"' in prompt and '"Ben"' in prompt


def test_suggest_activities_keeps_valid_entries(monkeypatch):
    sent = []
    reply = {
        "activities": [
            {
                "name": "Beer tasting at Moeder Lambic",
                "type": "drinks",
                "description": "Belgian craft beers on tap.",
                "whyGreat": "Long tables made for catching up",
                "priceRange": "$$",
                "bestTime": "evening",
            },
            {"name": "   ", "type": "food"},
            "not an object",
            {"name": "Comics walk"},
        ]
    }

    def fake_post_json(url, *, payload, headers=None, timeout_seconds=30):
        sent.append(payload)
        return _chat("```json\n" + json.dumps(reply) + "\n```")

    monkeypatch.setattr("wherelse.ingestion.llm_client.post_json", fake_post_json)
    out = ChatCompletionsClient(_settings()).suggest_activities("Brussels", "Belgium", travelers=("Ana", "Ben"))

    assert [a.name for a in out] == ["Beer tasting at Moeder Lambic", "Comics walk"]
    assert out[0].why_great == "Long tables made for catching up"
    assert out[0].price_range == "$$"
    assert out[1].type == "experience"
    assert sent[0]["temperature"] == 0.7
    assert "Ana and Ben" in sent[0]["messages"][1]["content"]


def test_suggest_activities_transport_error(monkeypatch):
    def boom(url, **kw):
        raise httpx.ConnectError("down")

    monkeypatch.setattr("wherelse.ingestion.llm_client.post_json", boom)
    with pytest.raises(ActivitySuggestionFailure):
        ChatCompletionsClient(_settings()).suggest_activities("Brussels", "Belgium")


def test_suggest_activities_rejects_non_list(monkeypatch):
    reply = json.dumps({"activities": {"name": "Comics walk"}})
    monkeypatch.setattr("wherelse.ingestion.llm_client.post_json", lambda url, **kw: _chat(reply))
    with pytest.raises(ActivitySuggestionFailure):
        ChatCompletionsClient(_settings()).suggest_activities("Brussels", "Belgium")


def test_activities_prompt_mentions_dates_and_count():
    prompt = build_activities_prompt("Brussels", "Belgium", count=3, start=date(2025, 5, 3), end=date(2025, 5, 6))
    assert "Suggest 3 activities" in prompt
    assert "2025-05-03 to 2025-05-06" in prompt
    assert '"whyGreat"' in prompt
