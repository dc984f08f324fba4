"""
Error taxonomy.

`InvalidLegError` always reaches the caller. Collaborator failures inside a comparison are
caught next to where they happen and the comparison degrades instead of failing:
- `GeocodingUnavailable`: fall back to name-based same-city matching.
- `ClassificationOracleFailure`: fall back to the deterministic rules.
- `EnrichmentFailure`: keep the deterministic `why_here` / `adjustment` text.

`ActivitySuggestionFailure` is the exception: activity ideas have no rule-based stand-in,
so it reaches the caller.

"No meetup found" is not an error; it is `ComparisonResult.no_good_options`.
"""

from __future__ import annotations


class WherelseError(Exception):
    """Base class for all errors raised by this package."""


class InvalidLegError(WherelseError, ValueError):
    """An input leg has missing/malformed city, country, dates or coordinates."""

    def __init__(self, message: str, *, traveler: str | None = None, index: int | None = None):
        self.traveler = traveler
        self.index = index
        where = ""
        if traveler is not None and index is not None:
            where = f"{traveler}, leg {index + 1}: "
        elif index is not None:
            where = f"leg {index + 1}: "
        super().__init__(f"{where}{message}")


class GeocodingUnavailable(WherelseError):
    """The geocoding collaborator could not be reached or answered with an error."""


class ClassificationOracleFailure(WherelseError):
    """The external classification step failed or returned unusable output."""


class EnrichmentFailure(WherelseError):
    """The text enricher failed for one candidate; the original wording is kept."""


class ActivitySuggestionFailure(WherelseError):
    """The activity suggester failed or returned unusable output."""
