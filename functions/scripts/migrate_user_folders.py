"""
Move legacy memory images into per-user folders.

Old structure: love-journal/memories/{year}/
New structure: love-journal/users/{userId}/{year}/{month}/memories/

Images without a userId in their context go under ``users/anonymous``.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from journal.config import get_settings
from journal.dependencies import get_media_client
from journal.media import MediaClient
from journal.memories import (
    LEGACY_MEMORIES_FOLDER,
    USERS_FOLDER,
    memory_folder,
    parse_context,
    parse_date,
    with_prefix,
)
from journal.retry import retry_with_backoff

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"
SEARCH_PAGE_SIZE = 500
RENAME_DELAY_SECONDS = 0.1


@dataclass
class MigrationResult:
    moved: int = 0
    skipped: int = 0
    failed: int = 0


def iter_search(
    media: MediaClient, expression: str, page_size: int = SEARCH_PAGE_SIZE
) -> Iterator[dict]:
    next_cursor = None
    while True:
        result = media.search(
            expression, max_results=page_size, next_cursor=next_cursor
        )
        resources = result.get("resources") or []
        logger.info("Found %d images", len(resources))
        yield from resources
        next_cursor = result.get("next_cursor")
        if not next_cursor:
            return


def target_public_id(resource: dict, prefix: str = "") -> str:
    context = parse_context(resource.get("context"))
    user_id = context.get("userId") or ANONYMOUS_USER
    date = parse_date(context.get("memory_date")) or parse_date(
        resource.get("created_at")
    )
    if date is None:
        raise ValueError(f"No usable date for {resource.get('public_id')}")
    filename = resource["public_id"].rsplit("/", 1)[-1]
    return f"{memory_folder(date, user_id, prefix)}/{filename}"


def migrate(
    media: MediaClient,
    *,
    prefix: str = "",
    dry_run: bool = False,
    delay: float = RENAME_DELAY_SECONDS,
) -> MigrationResult:
    old_folder = with_prefix(LEGACY_MEMORIES_FOLDER, prefix)
    logger.info("Searching for images in %s/**", old_folder)
    resources = list(iter_search(media, f"folder:{old_folder}/*"))
    logger.info("Total images found: %d", len(resources))

    result = MigrationResult()
    for resource in resources:
        public_id = resource["public_id"]
        try:
            new_public_id = target_public_id(resource, prefix)
            if new_public_id == public_id:
                logger.info("Skipping (already migrated): %s", public_id)
                result.skipped += 1
                continue
            if dry_run:
                logger.info("Would move %s -> %s", public_id, new_public_id)
            else:
                retry_with_backoff(
                    lambda: media.rename(public_id, new_public_id)
                )
                logger.info("Moved %s -> %s", public_id, new_public_id)
                if delay:
                    time.sleep(delay)
            result.moved += 1
        except Exception as e:
            logger.error("Error migrating %s: %s", public_id, e)
            result.failed += 1
    return result


def verify(media: MediaClient, *, prefix: str = "", sample_size: int = 10) -> dict:
    """Report sample paths still in the old structure and already in the new one."""
    report = {}
    for label, folder in (
        ("old", with_prefix(LEGACY_MEMORIES_FOLDER, prefix)),
        ("new", with_prefix(USERS_FOLDER, prefix)),
    ):
        result = media.search(f"folder:{folder}/*", max_results=sample_size)
        paths = [r["public_id"] for r in result.get("resources") or []]
        logger.info("Found %d images in %s structure (%s)", len(paths), label, folder)
        for path in paths[:5]:
            logger.info("  - %s", path)
        report[label] = paths
    return report


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Move legacy memory images into per-user Cloudinary folders"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log the planned moves without renaming anything",
    )
    parser.add_argument(
        "--verify",
        action="store_true",
        help="Only report sample paths in the old and new structure",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    settings = get_settings()
    media = get_media_client()
    if media is None:
        logger.error("Missing Cloudinary config")
        return 1

    prefix = settings.cloudinary_folder_prefix
    logger.info("Environment prefix: %s", prefix or "(none)")
    if args.verify:
        verify(media, prefix=prefix)
        return 0

    result = migrate(media, prefix=prefix, dry_run=args.dry_run)
    logger.info(
        "Migration completed: %d moved, %d skipped, %d failed",
        result.moved,
        result.skipped,
        result.failed,
    )
    return 1 if result.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
