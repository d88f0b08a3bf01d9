"""
FastAPI application entry point for the iSIF backend.
"""

from __future__ import annotations

from fastapi import FastAPI

from backend.config import get_settings
from backend.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="iSIF Backend", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    return app


app = create_app()
