"""
FastAPI application entry point for the Journey Diary API.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from journal.auth_routes import router as auth_router
from journal.config import get_settings
from journal.errors import register_error_handlers
from journal.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Journey Diary API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    register_error_handlers(app)
    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(auth_router, prefix=settings.api_prefix)
    return app


app = create_app()
