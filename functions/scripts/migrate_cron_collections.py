"""
Copy cron/system collections into their dev_-prefixed counterparts.

  cron_history     -> dev_cron_history
  cron_stats_daily -> dev_cron_stats_daily
  system_stats     -> dev_system_stats

Source collections are only deleted with --delete-source, and only when every
copy verified.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from journal.db import DbClient
from journal.dependencies import get_db_client
from shared.firebase_constants import (
    CRON_HISTORY_COLLECTION,
    CRON_STATS_DAILY_COLLECTION,
    DEV_PREFIX,
    SYSTEM_STATS_COLLECTION,
    collection_name,
)

logger = logging.getLogger(__name__)

SOURCE_COLLECTIONS = (
    CRON_HISTORY_COLLECTION,
    CRON_STATS_DAILY_COLLECTION,
    SYSTEM_STATS_COLLECTION,
)


@dataclass
class CopyResult:
    source: str
    target: str
    total: int = 0
    copied: int = 0
    verified: bool = False


def copy_collection(db: DbClient, source: str, target: str) -> CopyResult:
    logger.info("Migrating: %s -> %s", source, target)
    records = db.query(source)
    result = CopyResult(source=source, target=target, total=len(records))
    if not records:
        logger.info("No documents found in %s", source)
        return result
    result.copied = db.write_many(
        target, [(record.id, record.data) for record in records]
    )
    return result


def verify_copy(db: DbClient, result: CopyResult) -> bool:
    actual = len(db.query(result.target))
    result.verified = actual == result.total
    if result.verified:
        logger.info("Verification passed for %s: %d documents", result.target, actual)
    else:
        logger.warning(
            "Count mismatch for %s: expected %d, got %d",
            result.target,
            result.total,
            actual,
        )
    return result.verified


def migrate(db: DbClient, *, delete_source: bool = False) -> list[CopyResult]:
    results = [
        copy_collection(db, source, collection_name(DEV_PREFIX, source))
        for source in SOURCE_COLLECTIONS
    ]
    all_verified = all([verify_copy(db, result) for result in results])
    logger.info("Total: %d documents migrated", sum(r.copied for r in results))

    if not delete_source:
        return results
    if not all_verified:
        logger.warning("Some copies did not verify; keeping source collections")
        return results
    for result in results:
        ids = [record.id for record in db.query(result.source)]
        deleted = db.delete_many(result.source, ids)
        logger.info("Deleted %d documents from %s", deleted, result.source)
    return results


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Copy cron collections into dev_-prefixed collections"
    )
    parser.add_argument(
        "--delete-source",
        action="store_true",
        help="Delete the source collections after a verified copy",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    db = get_db_client()
    if db is None:
        logger.error("Missing Firebase Admin credentials")
        return 1

    results = migrate(db, delete_source=args.delete_source)
    return 0 if all(result.verified for result in results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
