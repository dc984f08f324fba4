"""
Per-run settings overrides (safe subset).

`CompareOptions.settings_overrides` lets a caller tune comparison knobs for one run, e.g.
`{"comparison": {"near_miss_max_gap_days": 14}}`. The payload is:
1) checked against `ALLOWED_SETTINGS_OVERRIDES_TREE` (every offending dotted path is
   reported in one `ValueError`),
2) deep-merged onto a dump of the current settings,
3) re-validated by Pydantic, so out-of-range values fail before the comparison starts.

Collaborator URLs, the LLM key, cache paths and the place-search fan-out are never
overridable from a request.
"""

from __future__ import annotations

from typing import Any, Mapping

from wherelse.config.settings import Settings

# True: anything below this key is allowed. A dict: only the listed keys, recursively.
ALLOWED_SETTINGS_OVERRIDES_TREE: dict[str, Any] = {
    "comparison": True,
    # Corridor samples and radius caps stay server-side; each sample can be a Photon request.
    "suggester": {
        "min_fairness_ratio": True,
        "relaxed_fairness_ratio": True,
        "max_results": True,
        "local_min_score": True,
        "max_total_distance_km": True,
        "score": True,
    },
}


def _violations(overrides: Mapping[str, Any], allowed: Mapping[str, Any], path: tuple[str, ...] = ()) -> list[str]:
    found: list[str] = []
    for key, value in overrides.items():
        dotted = ".".join((*path, str(key)))
        rule = allowed.get(key)
        if rule is None:
            found.append(f"disallowed key: '{dotted}'")
        elif rule is not True:
            if isinstance(value, Mapping):
                found.extend(_violations(value, rule, (*path, str(key))))
            else:
                found.append(f"key '{dotted}' must be a mapping")
    return found


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        merged[key] = _deep_merge(current, value) if isinstance(value, Mapping) and isinstance(current, Mapping) else value
    return merged


def apply_settings_overrides(settings: Settings, overrides: Mapping[str, Any] | None) -> Settings:
    """Return a new validated `Settings` with `overrides` applied (`settings` is untouched).

    Raises:
        ValueError: If a key is not allow-listed, a restricted subtree is not a mapping, or a
            merged value fails validation (pydantic's `ValidationError` is a `ValueError`).
    """
    if not overrides:
        return settings

    problems = _violations(overrides, ALLOWED_SETTINGS_OVERRIDES_TREE)
    if problems:
        raise ValueError("settings_overrides " + "; ".join(problems))

    return Settings.model_validate(_deep_merge(settings.model_dump(mode="python"), overrides))
