"""
Migrate memory documents to the flattened, trimmed structure.

For each document in dev_memories and memories:
  - copies location.city/country/address/coordinates into
    locationCity/locationCountry/locationAddress/locationLat/locationLng
  - drops null fields
  - trims title (200 chars) and description (5000 chars)
  - keeps at most 10 photos and 20 tags
and reports the size saved.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from journal.db import DbClient
from journal.dependencies import get_db_client
from shared.firebase_constants import DEV_PREFIX, MEMORIES_COLLECTION, PROD_PREFIX

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 5000
MAX_PHOTOS = 10
MAX_TAGS = 20

LOCATION_FIELDS = {
    "city": "locationCity",
    "country": "locationCountry",
    "address": "locationAddress",
}


@dataclass
class CollectionReport:
    processed: int = 0
    optimized: int = 0
    errors: int = 0
    size_before: int = 0
    size_after: int = 0

    @property
    def savings(self) -> int:
        return self.size_before - self.size_after


def optimize_memory(data: dict) -> dict:
    optimized = dict(data)
    location = data.get("location")
    if isinstance(location, dict):
        for source, target in LOCATION_FIELDS.items():
            if location.get(source):
                optimized[target] = location[source]
        coordinates = location.get("coordinates")
        if isinstance(coordinates, dict):
            optimized["locationLat"] = coordinates.get("lat")
            optimized["locationLng"] = coordinates.get("lng")

    optimized = {key: value for key, value in optimized.items() if value is not None}

    if isinstance(optimized.get("title"), str):
        optimized["title"] = optimized["title"].strip()[:MAX_TITLE_LENGTH]
    if isinstance(optimized.get("description"), str):
        optimized["description"] = optimized["description"].strip()[
            :MAX_DESCRIPTION_LENGTH
        ]
    if isinstance(optimized.get("photos"), list):
        optimized["photos"] = optimized["photos"][:MAX_PHOTOS]
    if isinstance(optimized.get("tags"), list):
        optimized["tags"] = optimized["tags"][:MAX_TAGS]
    return optimized


def document_size(data: dict) -> int:
    return len(json.dumps(data, default=str, separators=(",", ":")))


def migrate_collection(
    db: DbClient, collection: str, *, dry_run: bool = False
) -> CollectionReport:
    logger.info("Migrating collection: %s", collection)
    report = CollectionReport()
    pending: list[tuple[str, dict]] = []
    for record in db.query(collection):
        try:
            before = document_size(record.data)
            optimized = optimize_memory(record.data)
            after = document_size(optimized)
        except (TypeError, ValueError) as e:
            logger.error("Error processing %s: %s", record.id, e)
            report.errors += 1
            continue

        report.processed += 1
        report.size_before += before
        report.size_after += after
        if optimized != record.data:
            pending.append((record.id, optimized))
            report.optimized += 1
            logger.info(
                "%s: %dB -> %dB (%.1f%% reduction)",
                record.id,
                before,
                after,
                (before - after) / before * 100 if before else 0.0,
            )

    if pending and not dry_run:
        # Full replace so dropped null fields are actually removed.
        db.write_many(collection, pending)

    logger.info(
        "Migration complete for %s: processed=%d optimized=%d errors=%d "
        "before=%.2fKB after=%.2fKB savings=%.2fKB",
        collection,
        report.processed,
        report.optimized,
        report.errors,
        report.size_before / 1024,
        report.size_after / 1024,
        report.savings / 1024,
    )
    return report


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Flatten and trim memory documents in Firestore"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report the savings without writing",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    db = get_db_client()
    if db is None:
        logger.error("Missing Firebase Admin credentials")
        return 1

    for prefix in (DEV_PREFIX, PROD_PREFIX):
        migrate_collection(db, f"{prefix}{MEMORIES_COLLECTION}", dry_run=args.dry_run)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
