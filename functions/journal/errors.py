"""
Error type and exception handlers that give every route the same JSON shape.

Handlers raise ``ApiError``; the registered handler renders
``{"error": ..., "message": ..., **extra}`` with the requested status code.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An error that maps directly onto an HTTP response."""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: Optional[str] = None,
        *,
        headers: Optional[dict[str, str]] = None,
        **extra: Any,
    ):
        super().__init__(message or error)
        self.status_code = status_code
        self.error = error
        self.message = message
        self.headers = headers
        self.extra = extra

    def to_content(self) -> dict:
        content: dict[str, Any] = {"error": self.error}
        if self.message is not None:
            content["message"] = self.message
        content.update(self.extra)
        return content


def missing_cloudinary_config() -> ApiError:
    return ApiError(403, "Cloudinary not configured", code="MISSING_CONFIG")


def _response_headers(
    request: Request, headers: Optional[dict[str, str]] = None
) -> dict[str, str]:
    merged = dict(getattr(request.state, "rate_limit_headers", None) or {})
    merged.update(headers or {})
    return merged


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s", request.method, request.url.path, exc.to_content()
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(exc.to_content()),
        headers=_response_headers(request, exc.headers),
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Bad input is a 400 for this API, not FastAPI's default 422."""
    return JSONResponse(
        status_code=400,
        content={
            "error": "Bad Request",
            "message": "Invalid request parameters",
            "details": jsonable_encoder(exc.errors()),
        },
        headers=_response_headers(request),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
