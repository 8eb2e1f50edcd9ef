"""
Cookie-backed sessions.

The cookie holds base64-encoded JSON ``{userId, createdAt, expiresAt}``
(epoch milliseconds). There is no server-side store: a session is valid as
long as the cookie decodes and has not expired.
"""

from __future__ import annotations

import base64
import json
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Request, Response

from journal.config import Settings, get_settings
from journal.errors import ApiError

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class SessionData:
    user_id: str
    created_at: int
    expires_at: int

    def as_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
        }


def _now_ms(now: Optional[float]) -> int:
    return int((time.time() if now is None else now) * 1000)


def encode_session(
    user_id: str, ttl_seconds: int, now: Optional[float] = None
) -> str:
    created_at = _now_ms(now)
    payload = SessionData(
        user_id=user_id,
        created_at=created_at,
        expires_at=created_at + ttl_seconds * 1000,
    )
    raw = json.dumps(payload.as_dict(), separators=(",", ":")).encode("utf-8")
    # URL-safe alphabet without padding keeps the value a legal cookie token.
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _is_timestamp(value) -> bool:
    # json.loads accepts NaN and Infinity, which int() cannot convert.
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


def decode_session(token: str, now: Optional[float] = None) -> Optional[SessionData]:
    """Return the session in ``token``, or None if it is malformed or expired."""
    if not token:
        return None
    padded = token + "=" * (-len(token) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(padded).decode("utf-8"))
    except ValueError as e:
        logger.warning("Invalid session token: %s", e)
        return None
    if not isinstance(data, dict):
        return None

    user_id = data.get("userId")
    expires_at = data.get("expiresAt")
    if not isinstance(user_id, str) or not user_id:
        return None
    if not _is_timestamp(expires_at):
        return None
    if _now_ms(now) > expires_at:
        return None

    created_at = data.get("createdAt")
    return SessionData(
        user_id=user_id,
        created_at=int(created_at) if _is_timestamp(created_at) else 0,
        expires_at=int(expires_at),
    )


def set_session_cookie(
    response: Response, user_id: str, settings: Settings
) -> str:
    ttl = settings.session_ttl_seconds
    token = encode_session(user_id, ttl)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=ttl,
        expires=datetime.now(timezone.utc) + timedelta(seconds=ttl),
        path="/",
        secure=settings.session_cookie_secure,
        httponly=True,
        samesite="strict",
    )
    return token


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value="",
        max_age=0,
        expires=EPOCH,
        path="/",
        secure=settings.session_cookie_secure,
        httponly=True,
        samesite="strict",
    )


def get_session(request: Request, settings: Settings) -> Optional[SessionData]:
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        return None
    return decode_session(token)


def require_session(
    request: Request, settings: Settings = Depends(get_settings)
) -> SessionData:
    session = get_session(request, settings)
    if session is None:
        raise ApiError(401, "Unauthorized", "Valid session required. Please log in.")
    request.state.user_id = session.user_id
    return session
