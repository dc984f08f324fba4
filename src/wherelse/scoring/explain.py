"""
Small explainability formatting helpers.

Used by the CLI to print compact summaries of meetup candidates and compromise cities.
"""

from __future__ import annotations

from wherelse.domain.models import CompromiseCity, MeetupCandidate


def one_line_summary(candidate: MeetupCandidate) -> str:
    """Render a compact single-line summary for a meetup candidate."""
    parts = [
        f"{candidate.type} p{candidate.priority}",
        f"{candidate.city}, {candidate.country}",
        f"{candidate.start_date.isoformat()}..{candidate.end_date.isoformat()} ({candidate.days}d)",
    ]
    if candidate.gap_days:
        parts.append(f"gap={candidate.gap_days}d")
    if candidate.fairness_ratio is not None:
        parts.append(f"fairness={candidate.fairness_ratio:.2f}")
    if candidate.score is not None:
        parts.append(f"score={candidate.score:.1f}")
    return " | ".join(parts)


def compromise_line(city: CompromiseCity) -> str:
    return (
        f"{city.city}, {city.country} | score={city.score:.1f} | fairness={city.fairness_ratio:.2f} "
        f"| {city.distance_from1_km} km / {city.distance_from2_km} km"
    )
