"""
Set a user's role, looking in dev_users first and then users.

Usage: python scripts/update_user_role.py <userId> <User|SysAdmin>
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from journal.db import DbClient
from journal.dependencies import get_db_client
from shared.firebase_constants import (
    DEV_PREFIX,
    PROD_PREFIX,
    USER_ROLES,
    USERS_COLLECTION,
    collection_name,
)

logger = logging.getLogger(__name__)


def update_user_role(db: DbClient, user_id: str, role: str) -> Optional[str]:
    """
    Returns the collection that was updated, or None if the user was not found.
    """
    if role not in USER_ROLES:
        raise ValueError(f"Invalid role. Must be one of {USER_ROLES}, got: {role}")
    now = datetime.now(timezone.utc)
    for prefix in (DEV_PREFIX, PROD_PREFIX):
        collection = collection_name(prefix, USERS_COLLECTION)
        if db.get(collection, user_id) is None:
            continue
        db.update(
            collection,
            user_id,
            {"role": role, "updatedAt": now, "roleChangedAt": now},
        )
        logger.info("Updated user %s role to '%s' in %s", user_id, role, collection)
        return collection
    logger.error("User not found in dev_users or users: %s", user_id)
    return None


def main() -> int:
    parser = argparse.ArgumentParser(description="Update a user's role")
    parser.add_argument("user_id")
    parser.add_argument("role", choices=USER_ROLES)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    db = get_db_client()
    if db is None:
        logger.error("Missing Firebase Admin credentials")
        return 1

    return 0 if update_user_role(db, args.user_id, args.role) else 1


if __name__ == "__main__":
    raise SystemExit(main())
