"""
Chat-completions client (OpenAI-compatible).

Two optional roles in the comparison:
- classification oracle: proposes meetups from the itineraries + pre-computed leg pairs
- enricher: rewrites `why_here` / `adjustment` text for one candidate

Both are advisory. The oracle's output is validated and re-ranked by deterministic code, and
any failure (transport, HTTP status, unparseable content) is raised as a typed error so the
caller can fall back to the rules.

Outside the comparison it also suggests activities for a chosen meetup city. That call has
no rule-based fallback, so its failure surfaces as `ActivitySuggestionFailure`.

The model answers with traveler info keyed by traveler *name* ("Jeff": {...}), not by
position, so parsing looks up both spellings.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import date
from typing import Any

import httpx
from pydantic import ValidationError

from wherelse.config.settings import Settings
from wherelse.core.http import post_json
from wherelse.domain.errors import ActivitySuggestionFailure, ClassificationOracleFailure, EnrichmentFailure
from wherelse.domain.models import Activity, Itinerary, MeetupCandidate
from wherelse.meetup.pairs import LegPair

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)
_BARE_JSON = re.compile(r"\{.*\}", re.DOTALL)

CLASSIFY_SYSTEM_PROMPT = """You analyze two travel itineraries and find realistic meetups.
Rules:
- "natural": same city and the dates overlap.
- "near-miss": same city, dates do not overlap, gap of at most 30 days.
- "potential": different nearby cities (at most 500 km apart) with overlapping dates.
  The "city" field must be a real, specific city between them, never a placeholder.
- Key each traveler's info by the traveler's name and use the city from their itinerary.
- Prefer one or two strong options over many weak ones.
Return only valid JSON."""

ENRICH_SYSTEM_PROMPT = """You write short, friendly copy for a travel meetup card.
Return only JSON: {"whyHere": "<max 12 words>", "adjustment": "<max 15 words>"}.
Do not change the city, the dates or the travelers."""

ENRICH_CARD_FIELDS = {"type", "city", "country", "start_date", "end_date", "travelers", "why_here", "adjustment"}

ACTIVITIES_SYSTEM_PROMPT = """You are a knowledgeable travel concierge. Always return valid JSON.
Be specific about actual places and experiences in the city."""


def extract_json_object(content: str) -> dict[str, Any]:
    """Parse the first JSON object in a model reply (optionally inside ``` fences)."""
    match = _FENCED_JSON.search(content) or _BARE_JSON.search(content)
    if not match:
        raise ValueError("No JSON object found in response")
    raw = match.group(1) if match.re is _FENCED_JSON else match.group(0)
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Response JSON root must be an object")
    return data


def _itinerary_lines(itinerary: Itinerary) -> str:
    return "\n".join(
        f"  - {leg.city}, {leg.country}: {leg.start_date.isoformat()} to {leg.end_date.isoformat()}"
        for leg in itinerary.legs
    )


def _pair_lines(pairs: list[LegPair]) -> str:
    lines = []
    for i, p in enumerate(pairs, start=1):
        overlap = f"YES ({p.overlap_days} days)" if p.has_date_overlap else f"NO ({p.gap_days} day gap)"
        distance = f", Distance: {int(round(p.distance_km))}km" if p.distance_km is not None else ""
        lines.append(
            f"{i}. {p.leg_a.city} ({p.leg_a.start_date} to {p.leg_a.end_date}) <-> "
            f"{p.leg_b.city} ({p.leg_b.start_date} to {p.leg_b.end_date})\n"
            f"   Same city: {p.is_same_city}, Date overlap: {overlap}{distance}"
        )
    return "\n".join(lines)


def build_classify_prompt(
    itinerary_a: Itinerary, itinerary_b: Itinerary, pairs: list[LegPair], *, names: tuple[str, str], today: date | None = None
) -> str:
    name1, name2 = names
    return f"""TODAY: {(today or date.today()).isoformat()}

{name1.upper()}'S ITINERARY:
{_itinerary_lines(itinerary_a)}

{name2.upper()}'S ITINERARY:
{_itinerary_lines(itinerary_b)}

PRE-COMPUTED LEG PAIR ANALYSIS:
{_pair_lines(pairs)}

Return this JSON with 1-5 meetups:
{{
  "meetups": [
    {{
      "type": "natural|near-miss|potential",
      "priority": 1,
      "city": "Real city name",
      "country": "Country",
      "startDate": "YYYY-MM-DD",
      "endDate": "YYYY-MM-DD",
      "days": 3,
      "gapDays": 0,
      "{name1}": {{"city": "...", "country": "...", "startDate": "YYYY-MM-DD", "endDate": "YYYY-MM-DD"}},
      "{name2}": {{"city": "...", "country": "...", "startDate": "YYYY-MM-DD", "endDate": "YYYY-MM-DD"}},
      "whyHere": "Short reason",
      "adjustment": "What needs to change, if anything"
    }}
  ],
  "noGoodOptions": false,
  "reason": null
}}"""


def build_activities_prompt(
    city: str,
    country: str,
    *,
    count: int = 5,
    start: date | None = None,
    end: date | None = None,
    travelers: tuple[str, str] | None = None,
) -> str:
    who = " and ".join(travelers) if travelers else "travelers"
    when = f" around {start.isoformat()} to {end.isoformat()}" if start and end else ""
    return f"""You are a local expert for {city}, {country}.
Two friends ({who}) are meeting up there{when}.

Suggest {count} activities that would be perfect for friends meeting up. Focus on:
- Things that encourage conversation and catching up
- Local experiences unique to {city}
- A mix of day and evening activities
- Different price points

Return JSON:
{{
  "activities": [
    {{
      "name": "Activity name",
      "type": "food|drinks|culture|adventure|relaxation|nightlife",
      "description": "2-3 sentences about the activity",
      "whyGreat": "Why this is perfect for friends catching up",
      "priceRange": "$|$$|$$$",
      "bestTime": "morning|afternoon|evening|night"
    }}
  ]
}}"""


class ChatCompletionsClient:
    """Minimal chat-completions client used as oracle, enricher and activity suggester."""

    def __init__(self, settings: Settings):
        self._settings = settings

    @property
    def enabled(self) -> bool:
        cfg = self._settings.llm
        return bool(cfg.enabled and cfg.api_key)

    def _complete(self, *, system: str, user: str, temperature: float | None = None) -> str:
        """Send one chat request and return the assistant text.

        Raises:
            httpx.HTTPError: On transport errors or non-2xx status codes.
            ValueError: If the response has no assistant content.
        """
        cfg = self._settings.llm
        if not cfg.api_key:
            raise ValueError("llm.api_key is not configured (set OPENAI_API_KEY)")
        payload = {
            "model": cfg.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_tokens": cfg.max_tokens,
            "temperature": cfg.temperature if temperature is None else temperature,
        }
        data = post_json(
            cfg.base_url,
            payload=payload,
            headers={"Authorization": f"Bearer {cfg.api_key}"},
            timeout_seconds=cfg.timeout_seconds,
        )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ValueError("Malformed chat-completions response") from exc
        if not isinstance(content, str) or not content.strip():
            raise ValueError("Empty chat-completions response")
        return content

    def _parse_meetup(self, raw: dict[str, Any], idx: int, names: tuple[str, str]) -> MeetupCandidate | None:
        name1, name2 = names
        traveler1 = raw.get(name1) or raw.get("traveler1From") or {}
        traveler2 = raw.get(name2) or raw.get("traveler2From") or {}
        payload = {
            "type": raw.get("type"),
            "priority": raw.get("priority") or idx + 1,
            "city": raw.get("city"),
            "country": raw.get("country"),
            "startDate": raw.get("startDate"),
            "endDate": raw.get("endDate"),
            "days": raw.get("days") or 1,
            "gapDays": raw.get("gapDays") or 0,
            "travelers": [name1, name2],
            "traveler1From": traveler1,
            "traveler2From": traveler2,
            "whyHere": raw.get("whyHere") or "",
            "adjustment": raw.get("adjustment") or "",
        }
        try:
            return MeetupCandidate.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Dropping oracle meetup #%d (%s): %s", idx + 1, raw.get("city"), exc.errors()[:1])
            return None

    def classify(
        self,
        itinerary_a: Itinerary,
        itinerary_b: Itinerary,
        pairs: list[LegPair],
        *,
        names: tuple[str, str],
    ) -> list[MeetupCandidate]:
        """Ask the model for meetups; malformed entries are dropped, not repaired.

        Raises:
            ClassificationOracleFailure: On transport/HTTP failure or unparseable output.
        """
        prompt = build_classify_prompt(itinerary_a, itinerary_b, pairs, names=names)
        try:
            content = self._complete(system=CLASSIFY_SYSTEM_PROMPT, user=prompt)
            result = extract_json_object(content)
        except (httpx.HTTPError, ValueError) as exc:
            raise ClassificationOracleFailure(f"Classification oracle failed: {exc}") from exc

        meetups = result.get("meetups") or []
        if not isinstance(meetups, list):
            raise ClassificationOracleFailure("Classification oracle returned a non-list 'meetups'")

        out: list[MeetupCandidate] = []
        for idx, raw in enumerate(meetups):
            if not isinstance(raw, dict):
                continue
            candidate = self._parse_meetup(raw, idx, names)
            if candidate is not None:
                out.append(candidate)
        return out

    def enrich(self, candidate: MeetupCandidate) -> MeetupCandidate:
        """Return a copy with reworded `why_here` / `adjustment`.

        Raises:
            EnrichmentFailure: When the model call fails or returns unusable JSON.
        """
        card = candidate.model_dump(
            mode="json",
            by_alias=True,
            include=ENRICH_CARD_FIELDS,
        )
        try:
            content = self._complete(system=ENRICH_SYSTEM_PROMPT, user=json.dumps(card, ensure_ascii=False))
            data = extract_json_object(content)
        except (httpx.HTTPError, ValueError) as exc:
            raise EnrichmentFailure(f"Enrichment failed for {candidate.city}: {exc}") from exc

        why_here = data.get("whyHere")
        adjustment = data.get("adjustment")
        return candidate.model_copy(
            update={
                "why_here": why_here if isinstance(why_here, str) and why_here.strip() else candidate.why_here,
                "adjustment": adjustment if isinstance(adjustment, str) and adjustment.strip() else candidate.adjustment,
            }
        )

    def suggest_activities(
        self,
        city: str,
        country: str,
        *,
        start: date | None = None,
        end: date | None = None,
        travelers: tuple[str, str] | None = None,
    ) -> list[Activity]:
        """Ask the model for meetup activities in one city; malformed entries are dropped.

        Raises:
            ActivitySuggestionFailure: On transport/HTTP failure or unparseable output.
        """
        cfg = self._settings.llm
        prompt = build_activities_prompt(
            city,
            country,
            count=cfg.activities_count,
            start=start,
            end=end,
            travelers=travelers,
        )
        try:
            content = self._complete(
                system=ACTIVITIES_SYSTEM_PROMPT,
                user=prompt,
                temperature=cfg.activities_temperature,
            )
            result = extract_json_object(content)
        except (httpx.HTTPError, ValueError) as exc:
            raise ActivitySuggestionFailure(f"Activity suggestions failed for {city}: {exc}") from exc

        raw = result.get("activities") or []
        if not isinstance(raw, list):
            raise ActivitySuggestionFailure("Activity suggester returned a non-list 'activities'")

        out: list[Activity] = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            try:
                out.append(Activity.model_validate(item))
            except ValidationError as exc:
                logger.warning("Dropping activity %r: %s", item.get("name"), exc.errors()[:1])
        return out[: cfg.activities_count]
