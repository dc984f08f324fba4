"""
Ranking, dedup and the "best option" summary.

Order: type (natural, near-miss, potential, other), then candidate priority, then a
type-specific closeness key (more shared days / smaller gap / higher compromise score),
then start date and place name. None of these keys depends on which traveler is "first".
"""

from __future__ import annotations

from typing import Iterable

from wherelse.core.geo import normalize_place, place_key
from wherelse.domain.models import BestOption, MeetupCandidate

_TYPE_PRIORITY = {"natural": 0, "near-miss": 1, "potential": 2}


def type_priority(meetup_type: str) -> int:
    return _TYPE_PRIORITY.get(meetup_type, 3)


def _closeness(c: MeetupCandidate) -> float:
    if c.type == "natural":
        return -float(c.days)
    if c.type == "near-miss":
        return float(c.gap_days)
    if c.type == "potential":
        return -float(c.score or 0.0)
    return 0.0


def candidate_sort_key(c: MeetupCandidate) -> tuple:
    return (
        type_priority(c.type),
        c.priority,
        _closeness(c),
        c.start_date,
        place_key(c.city, c.country),
        c.end_date,
    )


def _dedup(candidates: Iterable[MeetupCandidate]) -> list[MeetupCandidate]:
    seen: set[tuple[str, str]] = set()
    out: list[MeetupCandidate] = []
    for c in candidates:
        key = place_key(c.city, c.country)
        if key in seen:
            continue
        seen.add(key)
        out.append(c)
    return out


def rank_candidates(candidates: Iterable[MeetupCandidate], max_results: int = 5) -> list[MeetupCandidate]:
    """Sort, keep the first candidate per destination, cap at `max_results`."""
    ordered = sorted(candidates, key=candidate_sort_key)
    return _dedup(ordered)[: max(0, int(max_results))]


def _parse_exclusion(entry: str) -> tuple[str, str | None]:
    if "," in entry:
        city, country = entry.split(",", 1)
        return normalize_place(city), normalize_place(country) or None
    return normalize_place(entry), None


def _is_excluded(c: MeetupCandidate, exclusions: list[tuple[str, str | None]]) -> bool:
    city, country = place_key(c.city, c.country)
    for ex_city, ex_country in exclusions:
        if city == ex_city and (ex_country is None or country == ex_country):
            return True
    return False


def rank_more_options(candidates: Iterable[MeetupCandidate], exclude_cities: Iterable[str] = ()) -> list[MeetupCandidate]:
    """Every distinct destination not already shown (entries are "City" or "City, Country")."""
    exclusions = [_parse_exclusion(e) for e in exclude_cities if e and e.strip()]
    ordered = sorted(candidates, key=candidate_sort_key)
    return [c for c in _dedup(ordered) if not _is_excluded(c, exclusions)]


def best_option(ranked: list[MeetupCandidate]) -> BestOption | None:
    """Restate the top-ranked candidate as a recommendation (None when there is none)."""
    if not ranked:
        return None
    top = ranked[0]
    name1, name2 = top.travelers
    when = f"{top.start_date.isoformat()} to {top.end_date.isoformat()}"
    if top.type == "natural":
        summary = f"{name1} and {name2} are both in {top.city} from {when}."
        action = f"Plan a meetup in {top.city} during those {top.days} days."
    elif top.type == "near-miss":
        summary = f"{name1} and {name2} miss each other in {top.city} by {top.gap_days} days."
        action = top.adjustment or f"Shift one stay in {top.city} to {when}."
    else:
        summary = f"{name1} and {name2} could meet in {top.city}, {top.country} from {when}."
        action = f"Book {top.days} days in {top.city}: {top.adjustment}" if top.adjustment else f"Book {top.days} days in {top.city}."
    return BestOption(
        summary=summary,
        action=action,
        type=top.type,
        city=top.city,
        country=top.country,
        start_date=top.start_date,
        end_date=top.end_date,
    )
