"""
Wherelse CLI entrypoint.

This CLI is intended for quick local runs and debugging without the HTTP API.
It delegates all comparison logic to `wherelse.meetup.compare`.

Itinerary files are JSON: either `{"travelerName": "...", "legs": [...]}` or a bare list
of legs (`{"city", "country", "startDate", "endDate", "lat"?, "lng"?}`).
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from wherelse.config.settings import get_settings
from wherelse.core.time import parse_date
from wherelse.core.logging import configure_logging
from wherelse.domain.errors import ActivitySuggestionFailure, GeocodingUnavailable, InvalidLegError
from wherelse.domain.models import CompareOptions
from wherelse.meetup.compare import (
    build_attraction_source,
    build_cache,
    build_geocoder,
    build_llm_client,
    build_place_source,
    compare_itineraries,
    suggest_more_options,
)
from wherelse.meetup.plan import plan_meetup, suggest_meetup_activities
from wherelse.meetup.suggest import Origin, format_compromise, suggest_meetup_destinations, suggest_with_relaxation
from wherelse.scoring.explain import compromise_line, one_line_summary


def _load_itinerary(path: str) -> dict[str, Any]:
    """Read an itinerary JSON file (a bare leg list is wrapped into an itinerary)."""
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(payload, list):
        return {"legs": payload}
    if not isinstance(payload, dict):
        raise ValueError(f"{path}: expected a JSON object or a list of legs")
    return payload


def _parse_origin(value: str) -> Origin:
    """Parse `CITY,COUNTRY,LAT,LNG`."""
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 4:
        raise argparse.ArgumentTypeError(f"Invalid origin '{value}', expected CITY,COUNTRY,LAT,LNG")
    city, country, lat, lng = parts
    try:
        return Origin(city=city, country=country, lat=float(lat), lng=float(lng))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid coordinates in '{value}'") from exc


def _parse_day(value: str):
    try:
        return parse_date(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', expected YYYY-MM-DD") from exc


def _print_candidates(overlaps: list, *, header: str) -> None:
    print(header)
    for i, c in enumerate(overlaps, start=1):
        print(f"{i:>2}. {one_line_summary(c)}")
        if c.why_here:
            print(f"    - why: {c.why_here}")
        if c.adjustment:
            print(f"    - adjust: {c.adjustment}")


def _cmd_compare(args: argparse.Namespace) -> int:
    """Handle the `compare` subcommand."""
    settings = get_settings()
    cache = build_cache(settings)
    llm = build_llm_client(settings)
    options = CompareOptions(max_results=args.max_results, min_fairness_ratio=args.min_fairness)

    result = compare_itineraries(
        _load_itinerary(args.itinerary_a),
        _load_itinerary(args.itinerary_b),
        options,
        settings=settings,
        places=build_place_source(settings, cache),
        geocoder=build_geocoder(settings, cache) if args.geocode else None,
        oracle=llm,
        enricher=llm,
    )

    if args.json:
        print(json.dumps(result.model_dump(mode="json", by_alias=True), ensure_ascii=False, indent=2))
        return 0

    if result.no_good_options:
        print(f"No good options: {result.reason}")
        return 0
    if result.best_option:
        print(f"Best: {result.best_option.summary}")
        print(f"      {result.best_option.action}")
    _print_candidates(result.overlaps, header="Meetups:")
    return 0


def _cmd_more(args: argparse.Namespace) -> int:
    """Handle the `more` subcommand."""
    settings = get_settings()
    cache = build_cache(settings)
    overlaps = suggest_more_options(
        _load_itinerary(args.itinerary_a),
        _load_itinerary(args.itinerary_b),
        args.exclude or [],
        settings=settings,
        places=build_place_source(settings, cache),
        geocoder=build_geocoder(settings, cache) if args.geocode else None,
        enricher=build_llm_client(settings),
    )
    if args.json:
        print(json.dumps([c.model_dump(mode="json", by_alias=True) for c in overlaps], ensure_ascii=False, indent=2))
        return 0
    _print_candidates(overlaps, header="More options:")
    return 0


def _cmd_suggest(args: argparse.Namespace) -> int:
    """Handle the `suggest` subcommand."""
    settings = get_settings()
    places = build_place_source(settings)
    kwargs: dict[str, Any] = {
        "places": places,
        "settings": settings.suggester,
        "max_results": args.max_results,
        "same_city_radius_km": settings.comparison.same_city_radius_km,
    }
    if args.relax:
        cities, _relaxed = suggest_with_relaxation(args.origin1, args.origin2, **kwargs)
    else:
        cities = suggest_meetup_destinations(args.origin1, args.origin2, min_fairness_ratio=args.min_fairness, **kwargs)

    if args.json:
        payload = [format_compromise(c, args.origin1.city, args.origin2.city) for c in cities]
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0
    if not cities:
        print("No fair compromise city found.")
        return 0
    for i, c in enumerate(cities, start=1):
        print(f"{i:>2}. {compromise_line(c)}")
    return 0


def _cmd_geocode(args: argparse.Namespace) -> int:
    """Handle the `geocode` subcommand."""
    settings = get_settings()
    geocoder = build_geocoder(settings, build_cache(settings))
    try:
        point = geocoder.geocode(args.city, args.country)
    except GeocodingUnavailable as exc:
        print(f"Geocoding unavailable: {exc}", file=sys.stderr)
        return 1
    if point is None:
        print(f"Not found: {args.city}, {args.country}")
        return 1
    print(f"{args.city}, {args.country}: lat={point.lat:.4f} lng={point.lng:.4f}")
    return 0


def _cmd_plan(args: argparse.Namespace) -> int:
    """Handle the `plan` subcommand."""
    settings = get_settings()
    plan = plan_meetup(
        args.destination,
        args.origin1,
        args.origin2,
        args.start,
        args.end,
        travelers=tuple(args.names) if args.names else None,
        attractions=build_attraction_source(settings, build_cache(settings)),
        settings=settings,
    )
    if args.json:
        print(json.dumps(plan.model_dump(mode="json", by_alias=True), ensure_ascii=False, indent=2))
        return 0

    print(f"{plan.city}, {plan.country}: {plan.start_date.isoformat()} to {plan.end_date.isoformat()}")
    for info in plan.travel_info:
        print(f"  {info.name}: {info.distance_km} km, {info.estimated_flight}")
    if not plan.suggestions:
        print("No nearby attractions found.")
    for a in plan.suggestions:
        where = f" ({a.distance_km} km)" if a.distance_km is not None else ""
        print(f"  - [{a.kind}] {a.name}{where}")
    return 0


def _cmd_activities(args: argparse.Namespace) -> int:
    """Handle the `activities` subcommand."""
    llm = build_llm_client(get_settings())
    if llm is None:
        print("Activity suggestions need llm.enabled and an API key.", file=sys.stderr)
        return 1
    try:
        activities = suggest_meetup_activities(
            args.city,
            args.country,
            suggester=llm,
            start=args.start,
            end=args.end,
            travelers=tuple(args.names) if args.names else None,
        )
    except ActivitySuggestionFailure as exc:
        print(f"Activity suggestions unavailable: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps([a.model_dump(mode="json", by_alias=True) for a in activities], ensure_ascii=False, indent=2))
        return 0
    for i, a in enumerate(activities, start=1):
        price = f" {a.price_range}" if a.price_range else ""
        print(f"{i:>2}. {a.name} [{a.type}]{price}")
        if a.why_great:
            print(f"    - why: {a.why_great}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the Wherelse CLI."""
    parser = argparse.ArgumentParser(prog="wherelse")
    parser.add_argument("--log-level", default=None, help="Override app.log_level (DEBUG, INFO, WARNING, ...)")
    sub = parser.add_subparsers(dest="command", required=True)

    cmp = sub.add_parser("compare", help="Find meetups between two itinerary JSON files.")
    cmp.add_argument("itinerary_a")
    cmp.add_argument("itinerary_b")
    cmp.add_argument("--max-results", type=int, default=None)
    cmp.add_argument("--min-fairness", type=float, default=None, help="0..1 fairness floor for compromise cities")
    cmp.add_argument("--geocode", action="store_true", help="Geocode legs that have no coordinates")
    cmp.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    cmp.set_defaults(func=_cmd_compare)

    more = sub.add_parser("more", help="More distinct meetup destinations, excluding ones already seen.")
    more.add_argument("itinerary_a")
    more.add_argument("itinerary_b")
    more.add_argument("--exclude", action="append", default=[], help='Repeatable: "City" or "City, Country"')
    more.add_argument("--geocode", action="store_true")
    more.add_argument("--json", action="store_true")
    more.set_defaults(func=_cmd_more)

    sug = sub.add_parser("suggest", help="Fair compromise cities between two points.")
    sug.add_argument("--from", dest="origin1", required=True, type=_parse_origin, help="CITY,COUNTRY,LAT,LNG")
    sug.add_argument("--to", dest="origin2", required=True, type=_parse_origin, help="CITY,COUNTRY,LAT,LNG")
    sug.add_argument("--min-fairness", type=float, default=None)
    sug.add_argument("--max-results", type=int, default=None)
    sug.add_argument("--relax", action="store_true", help="Retry once at the relaxed fairness floor")
    sug.add_argument("--json", action="store_true")
    sug.set_defaults(func=_cmd_suggest)

    plan = sub.add_parser("plan", help="Mini-itinerary for meeting in one city: attractions and travel.")
    plan.add_argument("--at", dest="destination", required=True, type=_parse_origin, help="CITY,COUNTRY,LAT,LNG")
    plan.add_argument("--from", dest="origin1", required=True, type=_parse_origin, help="CITY,COUNTRY,LAT,LNG")
    plan.add_argument("--to", dest="origin2", required=True, type=_parse_origin, help="CITY,COUNTRY,LAT,LNG")
    plan.add_argument("--start", required=True, type=_parse_day)
    plan.add_argument("--end", required=True, type=_parse_day)
    plan.add_argument("--names", nargs=2, metavar=("NAME1", "NAME2"), default=None)
    plan.add_argument("--json", action="store_true")
    plan.set_defaults(func=_cmd_plan)

    act = sub.add_parser("activities", help="Model-suggested activities for friends meeting in a city.")
    act.add_argument("city")
    act.add_argument("country")
    act.add_argument("--start", type=_parse_day, default=None)
    act.add_argument("--end", type=_parse_day, default=None)
    act.add_argument("--names", nargs=2, metavar=("NAME1", "NAME2"), default=None)
    act.add_argument("--json", action="store_true")
    act.set_defaults(func=_cmd_activities)

    geo = sub.add_parser("geocode", help="Geocode one city with the configured provider.")
    geo.add_argument("city")
    geo.add_argument("country")
    geo.set_defaults(func=_cmd_geocode)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m wherelse.cli`."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    func: Any = getattr(args, "func")
    try:
        return int(func(args))
    except InvalidLegError as exc:
        print(f"Invalid itinerary: {exc}", file=sys.stderr)
        return 2
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
