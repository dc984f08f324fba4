"""
JSON-over-HTTP helpers shared by the collaborators.

Nominatim and Photon are read with `get_json`; the chat-completions oracle uses `post_json`.
Each call opens a short-lived `httpx.Client`: collaborators are spaced by `RequestSpacer`
anyway, so connection reuse buys little and a per-call client keeps tests easy to patch.

Non-2xx answers raise `httpx.HTTPStatusError`; callers decide how to degrade.
"""

from __future__ import annotations

from typing import Any

import httpx

DEFAULT_USER_AGENT = "wherelse/0.1.0"


def _merge_headers(headers: dict[str, str] | None) -> dict[str, str]:
    # Caller headers win (Nominatim requires an app-specific User-Agent).
    return {"User-Agent": DEFAULT_USER_AGENT, "Accept": "application/json", **(headers or {})}


def _send(method: str, url: str, *, timeout_seconds: float, **kwargs: Any) -> Any:
    with httpx.Client(timeout=timeout_seconds, follow_redirects=True) as client:
        resp = client.request(method, url, **kwargs)
    resp.raise_for_status()
    return resp.json()


def get_json(
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 15,
) -> Any:
    """GET `url` with query `params` and decode the JSON body.

    Raises:
        httpx.HTTPError: Transport failure or non-2xx status.
        ValueError: The body is not JSON.
    """
    return _send("GET", url, params=params, headers=_merge_headers(headers), timeout_seconds=timeout_seconds)


def post_json(
    url: str,
    *,
    payload: dict[str, Any],
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 15,
) -> Any:
    """POST `payload` as JSON and decode the JSON body (same errors as `get_json`)."""
    return _send("POST", url, json=payload, headers=_merge_headers(headers), timeout_seconds=timeout_seconds)
