"""
Add a userId to legacy memory images whose context is missing one.

Usage: python scripts/backfill_user_ids.py <USER_ID>
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from journal.config import get_settings
from journal.dependencies import get_media_client
from journal.media import MediaClient, iter_resources
from journal.memories import parse_context, user_memories_prefix
from journal.retry import retry_with_backoff

logger = logging.getLogger(__name__)


def backfill(
    media: MediaClient, user_id: str, *, prefix: str = "", dry_run: bool = False
) -> int:
    updated = 0
    for resource in iter_resources(media, user_memories_prefix(None, prefix)):
        if parse_context(resource.get("context")).get("userId"):
            continue
        public_id = resource["public_id"]
        if not dry_run:
            retry_with_backoff(
                lambda: media.add_context({"userId": user_id}, [public_id])
            )
        logger.info("Updated userId for: %s", public_id)
        updated += 1
    return updated


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Set userId on legacy memory images that are missing it"
    )
    parser.add_argument("user_id", help="Firebase uid to assign")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the images that would be updated without writing",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    media = get_media_client()
    if media is None:
        logger.error("Missing Cloudinary config. Please check your .env file!")
        return 1

    updated = backfill(
        media,
        args.user_id,
        prefix=get_settings().cloudinary_folder_prefix,
        dry_run=args.dry_run,
    )
    logger.info("Done. Updated %d images.", updated)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
