"""
Simple in-process request spacing.

Free geocoding/search services (Nominatim, Photon) ask clients to keep a gap between
requests; collaborators call `RequestSpacer.wait()` right before each outgoing call.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass
class RequestSpacer:
    """Enforce a minimum interval between consecutive requests (best-effort)."""

    min_interval_seconds: float
    _last: float | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if float(self.min_interval_seconds) < 0:
            raise ValueError("min_interval_seconds must be >= 0")

    def wait(self) -> float:
        """Sleep until the interval has elapsed; return the seconds slept."""
        spacing = float(self.min_interval_seconds)
        now = time.monotonic()
        if spacing <= 0 or self._last is None:
            self._last = now
            return 0.0

        remaining = spacing - (now - self._last)
        slept = 0.0
        if remaining > 0:
            time.sleep(remaining)
            slept = remaining
            now = time.monotonic()
        self._last = now
        return slept
