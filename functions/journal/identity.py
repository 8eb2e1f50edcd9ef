"""
Firebase Authentication wrapper and an in-memory stand-in for tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from firebase_admin import auth
from firebase_admin import exceptions as firebase_exceptions

logger = logging.getLogger(__name__)


class InvalidIdTokenError(Exception):
    """Raised when a Firebase ID token cannot be verified."""


class AuthClient(Protocol):
    def verify_id_token(self, id_token: str) -> str:
        """Return the uid for a valid ID token."""
        ...

    def delete_user(self, uid: str) -> bool:
        """Delete a user; False when the user was already gone."""
        ...


class FirebaseAuthClient:
    def __init__(self, app=None):
        self.app = app

    def verify_id_token(self, id_token: str) -> str:
        try:
            decoded = auth.verify_id_token(id_token, app=self.app)
        except (ValueError, firebase_exceptions.FirebaseError) as e:
            raise InvalidIdTokenError(str(e)) from e
        return decoded["uid"]

    def delete_user(self, uid: str) -> bool:
        try:
            auth.delete_user(uid, app=self.app)
        except auth.UserNotFoundError:
            logger.info("Auth user %s already deleted", uid)
            return False
        return True


@dataclass
class InMemoryAuthClient:
    """Maps fake ID tokens to uids."""

    tokens: dict[str, str] = field(default_factory=dict)
    users: set[str] = field(default_factory=set)

    def verify_id_token(self, id_token: str) -> str:
        uid: Optional[str] = self.tokens.get(id_token)
        if uid is None:
            raise InvalidIdTokenError("Unknown ID token")
        return uid

    def delete_user(self, uid: str) -> bool:
        if uid not in self.users:
            return False
        self.users.discard(uid)
        return True
