# src/wherelse/api/app.py
"""
FastAPI application wiring.

`create_app()` builds the API: logging, CORS for the browser client, and the routes in
`wherelse.api.routes`. Comparison logic lives in `wherelse.meetup`.

Run locally with `uvicorn wherelse.api.app:app --reload`.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from wherelse.config.settings import ApiSettings, get_settings
from wherelse.core.logging import configure_logging

from .routes import router

# Any port on localhost, for dev servers (Vite, CRA, ...).
_LOCAL_ORIGIN_REGEX = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"


def _cors_options(cfg: ApiSettings) -> dict[str, Any] | None:
    # Explicit origins replace the localhost allowance instead of adding to it.
    regex = _LOCAL_ORIGIN_REGEX if cfg.cors_allow_local and not cfg.cors_origins else None
    if not cfg.cors_origins and regex is None:
        return None
    return {
        "allow_origins": list(cfg.cors_origins),
        "allow_origin_regex": regex,
        "allow_credentials": False,
        "allow_methods": ["GET", "POST"],
        "allow_headers": ["*"],
    }


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging()

    app = FastAPI(title="Wherelse API", version="0.1.0")
    cors = _cors_options(settings.api)
    if cors is not None:
        app.add_middleware(CORSMiddleware, **cors)
    app.include_router(router)

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
