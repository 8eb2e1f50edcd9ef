"""
Session login/logout/refresh endpoints.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from journal.config import Settings, get_settings
from journal.dependencies import get_auth_client
from journal.errors import ApiError
from journal.identity import AuthClient, InvalidIdTokenError
from journal.rate_limit import strict_rate_limit
from journal.schemas import SessionRequest, SessionResponse, SessionStatusResponse
from journal.session import (
    clear_session_cookie,
    get_session,
    set_session_cookie,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(strict_rate_limit)])


def _verify_login(
    payload: SessionRequest, auth_client: Optional[AuthClient]
) -> str:
    if not payload.userId or not isinstance(payload.userId, str):
        raise ApiError(400, "Bad Request", "userId is required")
    if payload.idToken is None:
        return payload.userId

    if auth_client is None:
        raise ApiError(
            503, "Service Unavailable", "Token verification is not configured"
        )
    try:
        uid = auth_client.verify_id_token(payload.idToken)
    except InvalidIdTokenError as e:
        logger.warning("Rejected login for %s: %s", payload.userId, e)
        raise ApiError(401, "Unauthorized", "Invalid ID token")
    if uid != payload.userId:
        logger.warning("ID token uid %s does not match userId %s", uid, payload.userId)
        raise ApiError(401, "Unauthorized", "ID token does not match userId")
    return uid


@router.post(
    "/auth/session", response_model=SessionResponse, response_model_exclude_none=True
)
def update_session(
    payload: SessionRequest,
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
    auth_client: Optional[AuthClient] = Depends(get_auth_client),
):
    if payload.action == "login":
        user_id = _verify_login(payload, auth_client)
        set_session_cookie(response, user_id, settings)
        logger.info("Session created for %s", user_id)
        return SessionResponse(success=True, message="Session created", userId=user_id)

    if payload.action == "logout":
        clear_session_cookie(response, settings)
        return SessionResponse(success=True, message="Session cleared")

    if payload.action == "refresh":
        session = get_session(request, settings)
        if session is None:
            raise ApiError(401, "Unauthorized", "Valid session required. Please log in.")
        set_session_cookie(response, session.user_id, settings)
        return SessionResponse(
            success=True, message="Session refreshed", userId=session.user_id
        )

    raise ApiError(
        400,
        "Bad Request",
        'Invalid action. Use "login", "logout" or "refresh"',
    )


@router.get(
    "/auth/session",
    response_model=SessionStatusResponse,
    response_model_exclude_none=True,
)
def session_status(request: Request, settings: Settings = Depends(get_settings)):
    session = get_session(request, settings)
    if session is None:
        return SessionStatusResponse(authenticated=False)
    return SessionStatusResponse(
        authenticated=True, userId=session.user_id, expiresAt=session.expires_at
    )
