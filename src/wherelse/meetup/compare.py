from __future__ import annotations

# This module is the orchestrator for the meetup comparison pipeline.
# It wires together:
# - domain input (two itineraries + optional CompareOptions)
# - ingestion (optional geocoder, place source, chat-completions oracle/enricher)
# - the pure engine (pair analysis -> classification -> fallback -> ranking)
# - the output contract (ComparisonResult with meta)
#
# Design goal:
# - Decisions are deterministic code; collaborators are optional and fail open.

import logging
import time
from typing import Any, Iterable, Mapping, Protocol

from wherelse.catalog.loader import get_default_gazetteer
from wherelse.config.overrides import apply_settings_overrides
from wherelse.config.settings import Settings, get_settings
from wherelse.core.cache import FileCache, MemoryCache
from wherelse.core.env import resolve_project_path
from wherelse.domain.errors import ClassificationOracleFailure, EnrichmentFailure
from wherelse.domain.models import CompareOptions, ComparisonResult, Itinerary, MeetupCandidate, parse_itinerary
from wherelse.ingestion.geocoder import GazetteerGeocoder, Geocoder, NominatimGeocoder, geocode_itinerary
from wherelse.ingestion.llm_client import ChatCompletionsClient
from wherelse.ingestion.places import AttractionSource, PhotonAttractionSource, PhotonPlaceSource, PlaceSource
from wherelse.meetup.classify import classify_pairs, fallback_candidates, validate_proposals
from wherelse.meetup.pairs import LegPair, analyze_leg_pairs, top_pairs
from wherelse.meetup.rank import best_option, rank_candidates, rank_more_options

logger = logging.getLogger(__name__)

DEFAULT_TRAVELER_NAMES = ("Traveler 1", "Traveler 2")


class ClassificationOracle(Protocol):
    def classify(
        self,
        itinerary_a: Itinerary,
        itinerary_b: Itinerary,
        pairs: list[LegPair],
        *,
        names: tuple[str, str],
    ) -> list[MeetupCandidate]: ...


class Enricher(Protocol):
    def enrich(self, candidate: MeetupCandidate) -> MeetupCandidate: ...


def build_cache(settings: Settings) -> MemoryCache | FileCache:
    # Memory cache by default; the file backend lets repeated CLI runs reuse geocodes.
    if settings.cache.backend == "file":
        return FileCache(
            resolve_project_path(settings.cache.dir),
            enabled=settings.cache.enabled,
            default_ttl_seconds=settings.cache.default_ttl_seconds,
        )
    return MemoryCache(enabled=settings.cache.enabled, default_ttl_seconds=settings.cache.default_ttl_seconds)


def build_geocoder(settings: Settings, cache: MemoryCache | FileCache | None = None) -> Geocoder:
    if settings.geocoding.provider == "gazetteer":
        return GazetteerGeocoder(get_default_gazetteer(), fallback_city_only=settings.geocoding.fallback_city_only)
    return NominatimGeocoder(settings, cache or build_cache(settings))


def build_place_source(settings: Settings, cache: MemoryCache | FileCache | None = None) -> PlaceSource:
    if settings.places.source == "photon":
        return PhotonPlaceSource(settings, cache or build_cache(settings))
    return get_default_gazetteer()


def build_attraction_source(settings: Settings, cache: MemoryCache | FileCache | None = None) -> AttractionSource:
    # The gazetteer only knows cities, so attractions always come from place search.
    return PhotonAttractionSource(settings, cache or build_cache(settings))


def build_llm_client(settings: Settings) -> ChatCompletionsClient | None:
    """Chat-completions client, or None unless `llm.enabled` is set and a key exists."""
    client = ChatCompletionsClient(settings)
    return client if client.enabled else None


def _resolve_itinerary(value: Itinerary | Mapping[str, Any], default_name: str) -> Itinerary:
    if isinstance(value, Itinerary):
        return value
    label = value.get("travelerName") or value.get("traveler_name") or default_name
    return parse_itinerary(value, label=str(label))


def _traveler_names(a: Itinerary, b: Itinerary) -> tuple[str, str]:
    return (a.traveler_name or DEFAULT_TRAVELER_NAMES[0], b.traveler_name or DEFAULT_TRAVELER_NAMES[1])


def _prepare(
    itinerary_a: Itinerary | Mapping[str, Any],
    itinerary_b: Itinerary | Mapping[str, Any],
    *,
    settings: Settings,
    geocoder: Geocoder | None,
    timings_ms: dict[str, int],
) -> tuple[Itinerary, Itinerary, tuple[str, str], list[LegPair]]:
    # ---- Validate inputs first: a malformed leg fails before any network call ----
    a = _resolve_itinerary(itinerary_a, DEFAULT_TRAVELER_NAMES[0])
    b = _resolve_itinerary(itinerary_b, DEFAULT_TRAVELER_NAMES[1])
    names = _traveler_names(a, b)

    # ---- Optional geocoding (sequential, spaced by the geocoder itself) ----
    if geocoder is not None:
        t_geo = time.monotonic()
        a = geocode_itinerary(a, geocoder)
        b = geocode_itinerary(b, geocoder)
        timings_ms["geocode"] = int((time.monotonic() - t_geo) * 1000)

    t_pairs = time.monotonic()
    pairs = analyze_leg_pairs(
        a.legs,
        b.legs,
        same_city_radius_km=settings.comparison.same_city_radius_km,
        traveler_a=names[0],
        traveler_b=names[1],
    )
    timings_ms["analyze_pairs"] = int((time.monotonic() - t_pairs) * 1000)
    return a, b, names, pairs


def _enrich(candidates: list[MeetupCandidate], enricher: Enricher | None) -> list[MeetupCandidate]:
    if enricher is None:
        return candidates
    out: list[MeetupCandidate] = []
    for c in candidates:
        try:
            enriched = enricher.enrich(c)
        except EnrichmentFailure as exc:
            logger.warning("Keeping original text for %s: %s", c.city, exc)
            out.append(c)
            continue
        # Only the wording may change; type, place, window and priority stay deterministic.
        out.append(c.model_copy(update={"why_here": enriched.why_here, "adjustment": enriched.adjustment}))
    return out


def compare_itineraries(
    itinerary_a: Itinerary | Mapping[str, Any],
    itinerary_b: Itinerary | Mapping[str, Any],
    options: CompareOptions | None = None,
    *,
    settings: Settings | None = None,
    places: PlaceSource | None = None,
    geocoder: Geocoder | None = None,
    oracle: ClassificationOracle | None = None,
    enricher: Enricher | None = None,
) -> ComparisonResult:
    """Compare two itineraries and return ranked meetup candidates.

    Raises:
        InvalidLegError: If any leg is malformed.
        ValueError: If `options.settings_overrides` contains disallowed keys.
    """
    t0 = time.monotonic()
    timings_ms: dict[str, int] = {}

    # ---- Step 1: Resolve settings for THIS run ----
    options = options or CompareOptions()
    settings = apply_settings_overrides(settings or get_settings(), options.settings_overrides)
    cfg = settings.comparison
    max_results = int(options.max_results or cfg.max_results)
    k = int(options.top_pairs or cfg.top_pairs)

    # ---- Step 2: Validate, geocode and analyze pairs ----
    a, b, names, pairs = _prepare(itinerary_a, itinerary_b, settings=settings, geocoder=geocoder, timings_ms=timings_ms)
    best_pairs = top_pairs(pairs, k)
    if places is None:
        places = build_place_source(settings)

    # ---- Step 3: Deterministic rules (always run; they also explain empty results) ----
    t_classify = time.monotonic()
    outcome = classify_pairs(
        best_pairs,
        names,
        places=places,
        settings=settings,
        min_fairness_ratio=options.min_fairness_ratio,
    )
    candidates = list(outcome.candidates)
    source = "rules"

    # ---- Step 4: Optional oracle; only proposals backed by an analyzed pair survive ----
    if oracle is not None:
        try:
            raw = oracle.classify(a, b, best_pairs, names=names)
        except ClassificationOracleFailure as exc:
            logger.warning("Classification oracle failed; using rules: %s", exc)
        else:
            proposed = validate_proposals(
                raw,
                best_pairs,
                names,
                places=places,
                settings=settings,
                min_fairness_ratio=options.min_fairness_ratio,
            )
            if proposed:
                candidates = proposed
                source = "oracle"
    timings_ms["classify"] = int((time.monotonic() - t_classify) * 1000)

    # ---- Step 5: Suggester fallback when nothing at all qualified ----
    used_fallback = False
    if not candidates:
        t_fallback = time.monotonic()
        candidates = fallback_candidates(
            best_pairs,
            names,
            places=places,
            settings=settings,
            min_fairness_ratio=options.min_fairness_ratio,
        )
        used_fallback = bool(candidates)
        timings_ms["fallback"] = int((time.monotonic() - t_fallback) * 1000)

    # ---- Step 6: Rank, dedup, cap, enrich ----
    ranked = _enrich(rank_candidates(candidates, max_results), enricher)

    timings_ms["total"] = int((time.monotonic() - t0) * 1000)
    meta = {
        "source": source,
        "fallback": used_fallback,
        "travelers": list(names),
        "pair_count": len(pairs),
        "pairs_considered": len(best_pairs),
        "candidate_count": len(candidates),
        "timings_ms": timings_ms,
    }
    logger.info(
        "Compared %s and %s: %d pairs, %d candidates, %d returned (source=%s, fallback=%s)",
        names[0],
        names[1],
        len(pairs),
        len(candidates),
        len(ranked),
        source,
        used_fallback,
    )
    return ComparisonResult(
        overlaps=ranked,
        best_option=best_option(ranked),
        no_good_options=not ranked,
        reason=None if ranked else (outcome.reason or "No realistic meetup found."),
        meta=meta,
    )


def suggest_more_options(
    itinerary_a: Itinerary | Mapping[str, Any],
    itinerary_b: Itinerary | Mapping[str, Any],
    exclude_cities: Iterable[str] = (),
    *,
    settings: Settings | None = None,
    places: PlaceSource | None = None,
    geocoder: Geocoder | None = None,
    enricher: Enricher | None = None,
) -> list[MeetupCandidate]:
    """Additional distinct destinations, excluding cities already shown (no cap)."""
    settings = settings or get_settings()
    cfg = settings.comparison
    timings_ms: dict[str, int] = {}

    _a, _b, names, pairs = _prepare(itinerary_a, itinerary_b, settings=settings, geocoder=geocoder, timings_ms=timings_ms)
    best_pairs = top_pairs(pairs, cfg.top_pairs)
    if places is None:
        places = build_place_source(settings)

    per_pair = cfg.more_options_per_pair
    outcome = classify_pairs(best_pairs, names, places=places, settings=settings, per_pair=per_pair)
    candidates = list(outcome.candidates)
    candidates.extend(fallback_candidates(best_pairs, names, places=places, settings=settings, per_pair=per_pair))

    more = rank_more_options(candidates, exclude_cities)
    logger.info("More options for %s and %s: %d destinations", names[0], names[1], len(more))
    return _enrich(more, enricher)
