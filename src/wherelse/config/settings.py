# src/wherelse/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/wherelse/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `OPENAI_API_KEY`, `WHERELSE_LOG_LEVEL`, `WHERELSE_CORS_ORIGINS`)
- an external YAML file via `WHERELSE_CONFIG_PATH`

Design rule:
- Tuning knobs (radii, gap thresholds, scoring weights) live in YAML, not in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from wherelse.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `wherelse.config`."""
    text = resources.files("wherelse.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "Wherelse"
    http_timeout_seconds: float = 15
    log_level: str = "INFO"


class ApiSettings(BaseModel):
    # Browser origins allowed to call the API; empty + cors_allow_local = any localhost port.
    cors_origins: list[str] = Field(default_factory=list)
    cors_allow_local: bool = True


class CacheSettings(BaseModel):
    enabled: bool = True
    backend: Literal["memory", "file"] = "memory"
    dir: str = ".cache/wherelse"
    default_ttl_seconds: int = 60 * 60 * 24


class GeocodingSettings(BaseModel):
    provider: Literal["nominatim", "gazetteer"] = "nominatim"
    base_url: str = "https://nominatim.openstreetmap.org/search"
    user_agent: str = "WherelseAtlas/1.0"
    request_spacing_seconds: float = Field(0.5, ge=0)
    cache_ttl_seconds: int = 7 * 24 * 60 * 60
    fallback_city_only: bool = True


class PlacesSettings(BaseModel):
    source: Literal["gazetteer", "photon"] = "gazetteer"
    photon_url: str = "https://photon.komoot.io/api/"
    request_spacing_seconds: float = Field(0.2, ge=0)
    cache_ttl_seconds: int = 7 * 24 * 60 * 60
    result_limit: int = Field(20, ge=1, le=50)
    place_types: list[str] = Field(default_factory=lambda: ["city", "town", "administrative"])
    attraction_kinds: list[str] = Field(default_factory=lambda: ["museum", "landmark", "restaurant", "park"])
    attraction_radius_km: float = Field(50, gt=0)
    attraction_query_limit: int = Field(3, ge=1, le=20)
    attractions_per_kind: int = Field(2, ge=1, le=20)
    attraction_spacing_seconds: float = Field(0.15, ge=0)


class LlmSettings(BaseModel):
    enabled: bool = False
    base_url: str = "https://api.openai.com/v1/chat/completions"
    model: str = "gpt-4o"
    temperature: float = Field(0.2, ge=0, le=2)
    max_tokens: int = Field(2000, ge=1)
    timeout_seconds: float = 30
    activities_count: int = Field(5, ge=1, le=10)
    activities_temperature: float = Field(0.7, ge=0, le=2)
    api_key: str | None = None


class ComparisonSettings(BaseModel):
    same_city_radius_km: float = Field(50, gt=0)
    top_pairs: int = Field(10, ge=1, le=100)
    near_miss_max_gap_days: int = Field(30, ge=0)
    near_miss_close_gap_days: int = Field(3, ge=0)
    near_miss_rework_gap_days: int = Field(7, ge=0)
    near_miss_window_days: int = Field(3, ge=1)
    potential_max_distance_km: float = Field(500, gt=0)
    potential_preferred_distance_km: float = Field(300, gt=0)
    max_results: int = Field(5, ge=1, le=50)
    more_options_per_pair: int = Field(3, ge=1, le=20)
    fallback_max_gap_days: int = Field(60, ge=0)
    different_continent_km: float = Field(3000, gt=0)


class CompromiseScoreSettings(BaseModel):
    base: float = 100
    fairness_weight: float = 40
    accessibility_ratio: float = Field(0.6, gt=0)
    accessibility_both_bonus: float = 30
    accessibility_one_bonus: float = 15
    type_bonus: dict[str, float] = Field(
        default_factory=lambda: {"capital": 25, "city": 20, "administrative": 15, "town": 10}
    )
    too_close_ratio: float = Field(0.15, ge=0, le=1)
    too_close_penalty: float = 30


class SuggesterSettings(BaseModel):
    min_fairness_ratio: float = Field(0.4, ge=0, le=1)
    relaxed_fairness_ratio: float = Field(0.2, ge=0, le=1)
    max_results: int = Field(5, ge=1, le=50)
    local_distance_km: float = Field(200, gt=0)
    local_radius_km: float = Field(100, gt=0)
    local_min_score: float = 50
    corridor_fractions: list[float] = Field(default_factory=lambda: [0.3, 0.4, 0.5, 0.6, 0.7])
    corridor_radius_ratio: float = Field(0.3, gt=0)
    corridor_radius_cap_km: float = Field(500, gt=0)
    midpoint_radius_ratio: float = Field(0.4, gt=0)
    midpoint_radius_cap_km: float = Field(800, gt=0)
    region_padding_deg: float = Field(5, ge=0)
    max_total_distance_km: float = Field(5000, gt=0)
    score: CompromiseScoreSettings = Field(default_factory=CompromiseScoreSettings)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    geocoding: GeocodingSettings = Field(default_factory=GeocodingSettings)
    places: PlacesSettings = Field(default_factory=PlacesSettings)
    llm: LlmSettings = Field(default_factory=LlmSettings)
    comparison: ComparisonSettings = Field(default_factory=ComparisonSettings)
    suggester: SuggesterSettings = Field(default_factory=SuggesterSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small to avoid exposing unsafe overrides.
    """
    load_dotenv_if_present()
    data = dict(data)
    cache_dir = os.getenv("WHERELSE_CACHE_DIR")
    if cache_dir:
        data.setdefault("cache", {})["dir"] = cache_dir

    log_level = os.getenv("WHERELSE_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    geocoder = os.getenv("WHERELSE_GEOCODER")
    if geocoder:
        data.setdefault("geocoding", {})["provider"] = geocoder

    places = os.getenv("WHERELSE_PLACES_SOURCE")
    if places:
        data.setdefault("places", {})["source"] = places

    cors_origins = os.getenv("WHERELSE_CORS_ORIGINS")
    if cors_origins:
        data.setdefault("api", {})["cors_origins"] = [s.strip() for s in cors_origins.split(",") if s.strip()]

    cors_allow_local = os.getenv("WHERELSE_CORS_ALLOW_LOCAL")
    if cors_allow_local:
        data.setdefault("api", {})["cors_allow_local"] = cors_allow_local.strip().lower() in {"1", "true", "yes", "y"}

    api_key = os.getenv("OPENAI_API_KEY")
    if api_key:
        data.setdefault("llm", {})["api_key"] = api_key

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("WHERELSE_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
