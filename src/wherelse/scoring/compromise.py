# src/wherelse/scoring/compromise.py
"""
Compromise-city scoring.

This module turns "a real place somewhere between two travelers" into a comparable score.

Why a separate scoring layer?
- The suggester only gathers candidates (gazetteer/Photon); it should not know the weights.
- The weights are product tuning knobs that live in YAML (`suggester.score`).
- Tests can check the arithmetic on hand-picked distances without any place source.

Score = base + fairness * fairness_weight + accessibility + type_bonus - too_close_penalty
"""

from __future__ import annotations

from wherelse.config.settings import CompromiseScoreSettings
from wherelse.core.geo import GeoPoint, haversine_km
from wherelse.domain.models import CompromiseCity, Place


def fairness_ratio(d1_km: float, d2_km: float) -> float:
    """min/max of the two travel distances (1.0 = perfectly balanced, 1.0 when both are 0)."""
    hi = max(float(d1_km), float(d2_km))
    if hi <= 0:
        return 1.0
    return min(float(d1_km), float(d2_km)) / hi


def score_compromise_city(
    place: Place,
    *,
    origin1: GeoPoint,
    origin2: GeoPoint,
    total_km: float,
    cfg: CompromiseScoreSettings | None = None,
) -> CompromiseCity:
    """Score one candidate place against the two origins."""
    cfg = cfg or CompromiseScoreSettings()
    here = GeoPoint(lat=place.lat, lng=place.lng)

    # --- Step 1) Distances from each traveler ---
    d1 = haversine_km(origin1, here)
    d2 = haversine_km(origin2, here)
    ratio = fairness_ratio(d1, d2)

    # --- Step 2) Base + fairness ---
    score = float(cfg.base) + ratio * float(cfg.fairness_weight)

    # --- Step 3) Accessibility: neither traveler should cover most of the whole distance ---
    reach = float(total_km) * float(cfg.accessibility_ratio)
    within1 = d1 <= reach
    within2 = d2 <= reach
    if within1 and within2:
        score += float(cfg.accessibility_both_bonus)
    elif within1 or within2:
        score += float(cfg.accessibility_one_bonus)

    # --- Step 4) Place type bonus (capitals > cities > administrative > towns) ---
    score += float(cfg.type_bonus.get(place.type, 0.0))

    # --- Step 5) Too close to one origin means it is not really a compromise ---
    near_limit = float(total_km) * float(cfg.too_close_ratio)
    if d1 < near_limit or d2 < near_limit:
        score -= float(cfg.too_close_penalty)

    return CompromiseCity(
        city=place.city,
        country=place.country,
        lat=place.lat,
        lng=place.lng,
        type=place.type,
        score=round(score, 2),
        distance_from1_km=int(round(d1)),
        distance_from2_km=int(round(d2)),
        fairness_ratio=round(ratio, 3),
    )
