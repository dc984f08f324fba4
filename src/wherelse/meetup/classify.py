"""
Meetup classification.

Turns analyzed leg pairs into typed candidates. A pair yields at most one type:
- natural:   same city, dates overlap
- near-miss: same city, gap <= `near_miss_max_gap_days`
- potential: different cities, dates overlap, both legs geocoded, and a real compromise
             city exists between them

Everything else is discarded. When nothing qualifies the outcome carries a readable
reason built from the pairs (gap size, distance, missing coordinates).

`fallback_candidates` is the second chance used by the comparison when the rules find
nothing at all: it asks the suggester for compromise cities on nearby-enough pairs.

`validate_proposals` holds meetups proposed by an external oracle to the same rules.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta

from wherelse.config.settings import Settings
from wherelse.core.geo import GeoPoint, haversine_km, place_key
from wherelse.core.time import centered_window, inclusive_days
from wherelse.domain.models import CompromiseCity, Leg, MeetupCandidate, TravelerLocation
from wherelse.ingestion.places import PlaceSource
from wherelse.meetup.pairs import LegPair
from wherelse.meetup.suggest import Origin, find_compromise_cities, suggest_meetup_destinations

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationOutcome:
    candidates: list[MeetupCandidate] = field(default_factory=list)
    no_good_options: bool = False
    reason: str | None = None


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


def _shared_leg(pair: LegPair) -> Leg:
    """Pick the leg whose name labels a same-city meetup (order-independent)."""
    a, b = pair.leg_a, pair.leg_b
    return a if place_key(a.city, a.country) <= place_key(b.city, b.country) else b


def near_miss_priority(gap_days: int, settings: Settings) -> int:
    cfg = settings.comparison
    if gap_days <= cfg.near_miss_close_gap_days:
        return 1
    if gap_days <= cfg.near_miss_rework_gap_days:
        return 2
    return 3


def near_miss_window(pair: LegPair, settings: Settings) -> tuple[date, date]:
    """Fixed-length window centered on the middle of the gap between the two stays."""
    center = pair.earlier.end_date + timedelta(days=pair.gap_days // 2)
    return centered_window(center, settings.comparison.near_miss_window_days)


def _gap_adjustment(pair: LegPair, names: tuple[str, str]) -> str:
    earlier_name = names[0] if pair.earlier is pair.leg_a else names[1]
    later_name = names[1] if pair.earlier is pair.leg_a else names[0]
    days = _plural(pair.gap_days, "day")
    return f"{earlier_name} stays {days} longer in {pair.earlier.city}, or {later_name} arrives {days} earlier"


def _natural(pair: LegPair, names: tuple[str, str]) -> MeetupCandidate:
    shared = _shared_leg(pair)
    start, end = pair.window()
    return MeetupCandidate(
        type="natural",
        priority=1,
        city=shared.city,
        country=shared.country,
        start_date=start,
        end_date=end,
        days=pair.overlap_days,
        gap_days=0,
        travelers=names,
        traveler1_from=TravelerLocation.from_leg(pair.leg_a),
        traveler2_from=TravelerLocation.from_leg(pair.leg_b),
        why_here=f"You're both in {shared.city} for {_plural(pair.overlap_days, 'day')}",
        adjustment="No changes needed",
        lat=shared.lat,
        lng=shared.lng,
    )


def _near_miss(pair: LegPair, names: tuple[str, str], settings: Settings) -> MeetupCandidate:
    shared = _shared_leg(pair)
    start, end = near_miss_window(pair, settings)
    return MeetupCandidate(
        type="near-miss",
        priority=near_miss_priority(pair.gap_days, settings),
        city=shared.city,
        country=shared.country,
        start_date=start,
        end_date=end,
        days=inclusive_days(start, end),
        gap_days=pair.gap_days,
        travelers=names,
        traveler1_from=TravelerLocation.from_leg(pair.leg_a),
        traveler2_from=TravelerLocation.from_leg(pair.leg_b),
        why_here=f"You both visit {shared.city}, {_plural(pair.gap_days, 'day')} apart",
        adjustment=_gap_adjustment(pair, names),
        lat=shared.lat,
        lng=shared.lng,
    )


def _compromise_candidate(
    pair: LegPair,
    city: CompromiseCity,
    names: tuple[str, str],
    *,
    priority: int,
    start: date,
    end: date,
    gap_days: int = 0,
    adjustment: str | None = None,
    is_alternative: bool = False,
) -> MeetupCandidate:
    a, b = pair.leg_a, pair.leg_b
    travel = (
        f"{names[0]} travels {city.distance_from1_km} km from {a.city}, "
        f"{names[1]} travels {city.distance_from2_km} km from {b.city}"
    )
    return MeetupCandidate(
        type="potential",
        priority=priority,
        city=city.city,
        country=city.country,
        start_date=start,
        end_date=end,
        days=inclusive_days(start, end),
        gap_days=gap_days,
        travelers=names,
        traveler1_from=TravelerLocation.from_leg(a),
        traveler2_from=TravelerLocation.from_leg(b),
        why_here=f"Real city between {a.city} and {b.city}",
        adjustment=f"{adjustment}; {travel}" if adjustment else travel,
        lat=city.lat,
        lng=city.lng,
        distance_from1_km=city.distance_from1_km,
        distance_from2_km=city.distance_from2_km,
        fairness_ratio=city.fairness_ratio,
        score=city.score,
        is_alternative=is_alternative,
    )


def _distance_priority(pair: LegPair, city: CompromiseCity, settings: Settings) -> int:
    preferred = float(settings.comparison.potential_preferred_distance_km)
    here = GeoPoint(lat=city.lat, lng=city.lng)
    d1 = haversine_km(Origin.from_leg(pair.leg_a).point, here)
    d2 = haversine_km(Origin.from_leg(pair.leg_b).point, here)
    return 1 if d1 <= preferred and d2 <= preferred else 2


def _potential(
    pair: LegPair,
    names: tuple[str, str],
    *,
    places: PlaceSource,
    settings: Settings,
    min_fairness_ratio: float | None,
    per_pair: int,
) -> list[MeetupCandidate]:
    cities = find_compromise_cities(
        pair.leg_a,
        pair.leg_b,
        places=places,
        comparison=settings.comparison,
        suggester=settings.suggester,
        min_fairness_ratio=min_fairness_ratio,
        limit=per_pair,
    )
    start, end = pair.window()
    return [
        _compromise_candidate(
            pair,
            city,
            names,
            priority=_distance_priority(pair, city, settings),
            start=start,
            end=end,
            is_alternative=i > 0,
        )
        for i, city in enumerate(cities)
    ]


def classify_pair(
    pair: LegPair,
    names: tuple[str, str],
    *,
    places: PlaceSource | None,
    settings: Settings,
    min_fairness_ratio: float | None = None,
    per_pair: int = 1,
) -> list[MeetupCandidate]:
    """Candidates for one pair (empty when the pair qualifies for no type)."""
    cfg = settings.comparison
    if pair.is_same_city:
        if pair.has_date_overlap and pair.overlap_days > 0:
            return [_natural(pair, names)]
        if not pair.has_date_overlap and pair.gap_days <= cfg.near_miss_max_gap_days:
            return [_near_miss(pair, names, settings)]
        return []

    if pair.has_date_overlap and pair.both_geocoded and places is not None:
        return _potential(
            pair,
            names,
            places=places,
            settings=settings,
            min_fairness_ratio=min_fairness_ratio,
            per_pair=per_pair,
        )
    return []


def explain_no_options(pairs: list[LegPair], settings: Settings) -> str:
    """Readable reason for an empty result, built from the analyzed pairs."""
    if not pairs:
        return "At least one itinerary has no legs to compare."

    reasons: list[str] = []
    distances = [p.distance_km for p in pairs if p.distance_km is not None]
    if distances and min(distances) > settings.comparison.different_continent_km:
        reasons.append(
            f"Your stays are on different continents (the closest are about {int(round(min(distances)))} km apart)."
        )

    gaps = [p.gap_days for p in pairs if not p.has_date_overlap]
    if not any(p.has_date_overlap for p in pairs):
        reasons.append(f"Your trips never overlap in time; the closest stays are {_plural(min(gaps), 'day')} apart.")
    else:
        same_city_gaps = [p.gap_days for p in pairs if p.is_same_city and not p.has_date_overlap]
        if same_city_gaps:
            reasons.append(
                f"You visit the same city, but {_plural(min(same_city_gaps), 'day')} apart, which is too far to bridge."
            )
        missing = [p for p in pairs if p.has_date_overlap and not p.is_same_city and not p.both_geocoded]
        if missing:
            reasons.append("Some stays could not be located, so compromise cities between them were not checked.")
        elif not reasons:
            reasons.append("Your overlapping stays are too far apart for a fair compromise city.")

    return " ".join(reasons)


def classify_pairs(
    pairs: list[LegPair],
    names: tuple[str, str],
    *,
    places: PlaceSource | None,
    settings: Settings,
    min_fairness_ratio: float | None = None,
    per_pair: int = 1,
) -> ClassificationOutcome:
    """Classify every pair; report `no_good_options` with a reason when nothing qualifies."""
    candidates: list[MeetupCandidate] = []
    for pair in pairs:
        candidates.extend(
            classify_pair(
                pair,
                names,
                places=places,
                settings=settings,
                min_fairness_ratio=min_fairness_ratio,
                per_pair=per_pair,
            )
        )
    logger.debug("Classified %d pairs into %d candidates", len(pairs), len(candidates))
    if candidates:
        return ClassificationOutcome(candidates=candidates)
    return ClassificationOutcome(no_good_options=True, reason=explain_no_options(pairs, settings))


def fallback_candidates(
    pairs: list[LegPair],
    names: tuple[str, str],
    *,
    places: PlaceSource,
    settings: Settings,
    min_fairness_ratio: float | None = None,
    per_pair: int = 1,
) -> list[MeetupCandidate]:
    """Suggester-backed compromise meetups for pairs the rules could not use.

    Only different-city, geocoded pairs that overlap or are at most `fallback_max_gap_days`
    apart, with origins at most `max_total_distance_km` apart, are considered. Gapped pairs
    get the near-miss window and one extra priority step.
    """
    cmp_cfg = settings.comparison
    sug_cfg = settings.suggester
    out: list[MeetupCandidate] = []
    for pair in pairs:
        if pair.is_same_city or not pair.both_geocoded or pair.distance_km is None:
            continue
        if not pair.has_date_overlap and pair.gap_days > cmp_cfg.fallback_max_gap_days:
            continue
        if pair.distance_km > sug_cfg.max_total_distance_km:
            continue

        cities = suggest_meetup_destinations(
            Origin.from_leg(pair.leg_a),
            Origin.from_leg(pair.leg_b),
            places=places,
            settings=sug_cfg,
            min_fairness_ratio=min_fairness_ratio,
            max_results=per_pair,
            same_city_radius_km=cmp_cfg.same_city_radius_km,
        )
        if pair.has_date_overlap:
            start, end = pair.window()
            step, adjustment = 0, None
        else:
            start, end = near_miss_window(pair, settings)
            step, adjustment = 1, _gap_adjustment(pair, names)

        for i, city in enumerate(cities):
            out.append(
                _compromise_candidate(
                    pair,
                    city,
                    names,
                    priority=_distance_priority(pair, city, settings) + step,
                    start=start,
                    end=end,
                    gap_days=pair.gap_days,
                    adjustment=adjustment,
                    is_alternative=i > 0,
                )
            )
    return out


def _proposal_span(proposal: MeetupCandidate, pair: LegPair, settings: Settings) -> tuple[date, date] | None:
    """Dates a proposal of this type may use on this pair, or None when the pair cannot back it."""
    if proposal.type == "natural":
        return pair.window() if pair.is_same_city and pair.has_date_overlap else None
    if proposal.type == "near-miss":
        if not pair.is_same_city or pair.has_date_overlap:
            return None
        if pair.gap_days > settings.comparison.near_miss_max_gap_days:
            return None
        return pair.earlier.start_date, pair.later.end_date
    if pair.is_same_city or not pair.has_date_overlap or not pair.both_geocoded:
        return None
    return pair.window()


def _keep_text(rule: MeetupCandidate, proposal: MeetupCandidate) -> MeetupCandidate:
    update: dict[str, object] = {}
    if proposal.why_here.strip():
        update["why_here"] = proposal.why_here
    if proposal.adjustment.strip():
        update["adjustment"] = proposal.adjustment
    return rule.model_copy(update=update) if update else rule


def validate_proposals(
    proposals: list[MeetupCandidate],
    pairs: list[LegPair],
    names: tuple[str, str],
    *,
    places: PlaceSource | None,
    settings: Settings,
    min_fairness_ratio: float | None = None,
) -> list[MeetupCandidate]:
    """Keep only externally proposed meetups that an analyzed pair actually supports.

    A proposal survives when some pair of the right kind backs it:
    - natural / near-miss: a same-city pair in the proposed city whose overlap (or the two
      stays around the gap) contains the proposed window
    - potential: an overlapping, geocoded pair whose window contains the proposed dates and
      for which the proposed city passes `find_compromise_cities`

    Survivors are rebuilt from the pair, so type, place, priority and distances come from
    the rules. Only the proposed window and the wording are taken from the proposal.
    """
    compromise: dict[int, dict[tuple[str, str], CompromiseCity]] = {}
    kept: list[MeetupCandidate] = []
    for proposal in proposals:
        key = place_key(proposal.city, proposal.country)
        start, end = proposal.start_date, proposal.end_date
        verified: MeetupCandidate | None = None
        for i, pair in enumerate(pairs):
            span = _proposal_span(proposal, pair, settings)
            if span is None or not (span[0] <= start <= end <= span[1]):
                continue

            if proposal.type == "potential":
                if places is None:
                    break
                if i not in compromise:
                    cities = find_compromise_cities(
                        pair.leg_a,
                        pair.leg_b,
                        places=places,
                        comparison=settings.comparison,
                        suggester=settings.suggester,
                        min_fairness_ratio=min_fairness_ratio,
                        limit=None,
                    )
                    compromise[i] = {place_key(c.city, c.country): c for c in cities}
                city = compromise[i].get(key)
                if city is None:
                    continue
                rule = _compromise_candidate(
                    pair,
                    city,
                    names,
                    priority=_distance_priority(pair, city, settings),
                    start=start,
                    end=end,
                )
            else:
                visited = {place_key(leg.city, leg.country) for leg in (pair.leg_a, pair.leg_b)}
                if key not in visited:
                    continue
                rule = _natural(pair, names) if proposal.type == "natural" else _near_miss(pair, names, settings)
                rule = rule.model_copy(update={"start_date": start, "end_date": end, "days": inclusive_days(start, end)})

            verified = _keep_text(rule, proposal)
            break

        if verified is None:
            logger.info("Dropping unsupported %s proposal: %s, %s", proposal.type, proposal.city, proposal.country)
            continue
        kept.append(verified)
    return kept
