"""
Account deletion and cron bookkeeping jobs.

These run from the scheduled Cloud Functions in ``main.py`` but only talk to
the ``DbClient``, ``MediaClient`` and ``AuthClient`` interfaces, so they can be
exercised against the in-memory backends.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional
from urllib.parse import urlparse

from journal.db import DbClient
from journal.identity import AuthClient
from journal.media import MediaClient, MediaError
from shared.api import (
    AccountDeletionSummary,
    CronHistoryEntry,
    CronJobStats,
    DeleteImageResult,
)
from shared.firebase_constants import (
    ANNIVERSARY_COLLECTION,
    CRON_HISTORY_COLLECTION,
    CRON_JOBS_DOCUMENT,
    CRON_STATS_DAILY_COLLECTION,
    MEMORIES_COLLECTION,
    SYSTEM_STATS_COLLECTION,
    USER_EFFECTS_COLLECTION,
    USER_STATUS_REMOVED,
    USERS_COLLECTION,
    collection_name,
)

logger = logging.getLogger(__name__)

GRACE_PERIOD = timedelta(days=7)
ACCOUNTS_PER_RUN = 50
DELETE_ACCOUNTS_JOB = "deleteRemovedAccounts"
DELETE_ACCOUNTS_SCHEDULE = "every day 02:00"

CLEANUP_JOB = "cleanupCronHistory"
CLEANUP_SCHEDULE = "every 6 hours"
HISTORY_RETENTION = timedelta(hours=24)
DAILY_STATS_RETENTION = timedelta(days=7)
CLEANUP_BATCH_LIMIT = 500

DESTROY_OK_RESULTS = ("ok", "not found")


class ImageDeletionError(Exception):
    """Raised when Cloudinary refuses to delete an image."""


def extract_public_id(url_or_id: str) -> str:
    """
    Reduces a Cloudinary delivery URL to its public id.

    ``https://res.cloudinary.com/x/image/upload/v123/a/b.jpg`` becomes ``a/b``.
    Values that are not http(s) URLs are returned unchanged.
    """
    if not url_or_id.startswith(("http://", "https://")):
        return url_or_id
    parts = urlparse(url_or_id).path.split("/")
    if "upload" not in parts:
        return url_or_id
    start = parts.index("upload") + 1
    if start < len(parts) and parts[start][:1] == "v" and parts[start][1:].isdigit():
        start += 1
    with_extension = "/".join(parts[start:])
    stem, dot, _ = with_extension.rpartition(".")
    return stem if dot and stem else with_extension


def delete_single_image(media: MediaClient, public_id: str) -> DeleteImageResult:
    result = media.destroy(public_id).get("result")
    if result not in DESTROY_OK_RESULTS:
        raise ImageDeletionError(f"Failed to delete image: {result}")
    message = (
        "Image already deleted or not found"
        if result == "not found"
        else "Image deleted successfully"
    )
    return DeleteImageResult(success=True, result=result, message=message)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _to_document(record) -> dict:
    """Dataclass -> camelCase Firestore fields, dropping unset counters."""
    return {_camel(k): v for k, v in asdict(record).items() if v is not None}


def _memory_public_ids(memories: Iterable[dict]) -> list[str]:
    public_ids: list[str] = []
    for memory in memories:
        raw_ids = memory.get("cloudinaryPublicIds") or memory.get("photos") or []
        public_ids.extend(extract_public_id(raw) for raw in raw_ids if raw)
    return public_ids


def delete_user_account(
    db: DbClient,
    media: MediaClient,
    auth_client: AuthClient,
    user_id: str,
    prefix: str = "",
) -> None:
    """
    Permanently deletes one user and everything they own.

    Images go first: if any of them cannot be deleted nothing else is touched,
    so the account can be retried on the next run.

    Raises:
        ImageDeletionError: If one or more Cloudinary images were not deleted.
    """
    memories_collection = collection_name(prefix, MEMORIES_COLLECTION)
    memories = db.query(memories_collection, [("userId", "==", user_id)])

    public_ids = _memory_public_ids(record.data for record in memories)
    logger.info(
        "Deleting %d images across %d memories for %s",
        len(public_ids),
        len(memories),
        user_id,
    )
    failed: list[str] = []
    for public_id in public_ids:
        try:
            result = media.destroy(public_id).get("result")
        except MediaError as e:
            logger.error("Error deleting %s: %s", public_id, e)
            failed.append(public_id)
            continue
        if result not in DESTROY_OK_RESULTS:
            logger.error("Failed to delete %s: %s", public_id, result)
            failed.append(public_id)
    if failed:
        raise ImageDeletionError(
            f"Failed to delete {len(failed)}/{len(public_ids)} Cloudinary images "
            f"for user {user_id}. Failed images: {', '.join(failed)}"
        )

    db.delete_many(memories_collection, [record.id for record in memories])

    anniversaries_collection = collection_name(prefix, ANNIVERSARY_COLLECTION)
    anniversaries = db.query(anniversaries_collection, [("userId", "==", user_id)])
    db.delete_many(anniversaries_collection, [record.id for record in anniversaries])

    effects_collection = collection_name(prefix, USER_EFFECTS_COLLECTION)
    if db.get(effects_collection, user_id) is not None:
        db.delete(effects_collection, user_id)

    db.delete(collection_name(prefix, USERS_COLLECTION), user_id)

    if not auth_client.delete_user(user_id):
        logger.info("Auth user %s already deleted", user_id)


def _record_run(
    db: DbClient,
    prefix: str,
    job_name: str,
    stats: CronJobStats,
    history: Optional[CronHistoryEntry] = None,
) -> None:
    stats_document = _to_document(stats)
    stats_document.setdefault("lastError", None)
    db.set(
        collection_name(prefix, SYSTEM_STATS_COLLECTION),
        CRON_JOBS_DOCUMENT,
        {job_name: stats_document},
        merge=True,
    )
    if history is not None:
        document = _to_document(history)
        document.setdefault("error", None)
        db.add(collection_name(prefix, CRON_HISTORY_COLLECTION), document)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def delete_removed_accounts(
    db: DbClient,
    media: MediaClient,
    auth_client: AuthClient,
    *,
    prefixes: Iterable[str],
    now: Optional[datetime] = None,
) -> AccountDeletionSummary:
    """
    Deletes accounts marked ``Removed`` longer than the grace period ago.

    Each environment prefix is processed separately (at most
    ``ACCOUNTS_PER_RUN`` users each) and gets its own ``cron_jobs`` entry and
    ``cron_history`` record. A failure for one user is counted and the run
    continues; any other error is recorded as ``failed`` and re-raised.
    """
    prefixes = list(prefixes)
    start_time = now or datetime.now(timezone.utc)
    started = time.monotonic()
    cutoff = start_time - GRACE_PERIOD
    summary = AccountDeletionSummary()
    logger.info("Deleting accounts removed before %s", cutoff.isoformat())

    try:
        for prefix in prefixes:
            environment = prefix or "production"
            users = db.query(
                collection_name(prefix, USERS_COLLECTION),
                [("status", "==", USER_STATUS_REMOVED), ("removedAt", "<=", cutoff)],
                limit=ACCOUNTS_PER_RUN,
            )
            if not users:
                logger.info("No accounts to delete in %s", environment)
                continue
            logger.info("Found %d accounts to delete in %s", len(users), environment)

            run = AccountDeletionSummary()
            for user in users:
                logger.info("Deleting user %s (%s)", user.id, user.data.get("email"))
                try:
                    delete_user_account(db, media, auth_client, user.id, prefix)
                except Exception as e:
                    logger.exception("Error deleting user %s", user.id)
                    run.failed += 1
                    run.errors.append(f"{user.id}: {e}")
                else:
                    run.deleted += 1

            end_time = datetime.now(timezone.utc)
            last_error = ", ".join(run.errors) if run.errors else None
            _record_run(
                db,
                prefix,
                DELETE_ACCOUNTS_JOB,
                CronJobStats(
                    last_run=end_time,
                    status=run.status,
                    schedule=DELETE_ACCOUNTS_SCHEDULE,
                    execution_time_ms=_elapsed_ms(started),
                    last_error=last_error,
                    accounts_deleted=run.deleted,
                    accounts_failed=run.failed,
                ),
                CronHistoryEntry(
                    job_name=DELETE_ACCOUNTS_JOB,
                    status=run.status,
                    start_time=start_time,
                    end_time=end_time,
                    execution_time_ms=_elapsed_ms(started),
                    created_at=end_time,
                    error=last_error,
                    accounts_deleted=run.deleted,
                    accounts_failed=run.failed,
                ),
            )
            logger.info(
                "Deletion complete for %s: %d deleted, %d failed",
                environment,
                run.deleted,
                run.failed,
            )
            summary.deleted += run.deleted
            summary.failed += run.failed
            summary.errors.extend(run.errors)
    except Exception as e:
        logger.exception("Fatal error in %s", DELETE_ACCOUNTS_JOB)
        end_time = datetime.now(timezone.utc)
        for prefix in prefixes:
            _record_run(
                db,
                prefix,
                DELETE_ACCOUNTS_JOB,
                CronJobStats(
                    last_run=end_time,
                    status="failed",
                    schedule=DELETE_ACCOUNTS_SCHEDULE,
                    execution_time_ms=_elapsed_ms(started),
                    last_error=str(e),
                ),
                CronHistoryEntry(
                    job_name=DELETE_ACCOUNTS_JOB,
                    status="failed",
                    start_time=start_time,
                    end_time=end_time,
                    execution_time_ms=_elapsed_ms(started),
                    created_at=end_time,
                    error=str(e),
                ),
            )
        raise

    logger.info(
        "Total deletion summary: %d deleted, %d failed in %dms",
        summary.deleted,
        summary.failed,
        _elapsed_ms(started),
    )
    return summary


def cleanup_cron_history(
    db: DbClient, prefix: str = "", now: Optional[datetime] = None
) -> dict:
    """
    Trims ``cron_history`` to the last 24 hours and ``cron_stats_daily`` to
    the last 7 days, at most ``CLEANUP_BATCH_LIMIT`` documents of each per run.

    Returns:
        ``{"historyDeleted": int, "statsDeleted": int}``
    """
    now = now or datetime.now(timezone.utc)
    started = time.monotonic()
    try:
        history_collection = collection_name(prefix, CRON_HISTORY_COLLECTION)
        old_history = db.query(
            history_collection,
            [("createdAt", "<", now - HISTORY_RETENTION)],
            limit=CLEANUP_BATCH_LIMIT,
        )
        history_deleted = db.delete_many(
            history_collection, [record.id for record in old_history]
        )
        if history_deleted:
            logger.info("Deleted %d old history records (>24h)", history_deleted)

        stats_collection = collection_name(prefix, CRON_STATS_DAILY_COLLECTION)
        oldest_kept = (now - DAILY_STATS_RETENTION).strftime("%Y-%m-%d")
        old_stats = db.query(
            stats_collection, [("date", "<", oldest_kept)], limit=CLEANUP_BATCH_LIMIT
        )
        stats_deleted = db.delete_many(
            stats_collection, [record.id for record in old_stats]
        )
        if stats_deleted:
            logger.info("Deleted %d old daily stats (>7 days)", stats_deleted)
    except Exception as e:
        logger.exception("Error cleaning up cron history")
        _record_run(
            db,
            prefix,
            CLEANUP_JOB,
            CronJobStats(
                last_run=datetime.now(timezone.utc),
                status="failed",
                schedule=CLEANUP_SCHEDULE,
                execution_time_ms=_elapsed_ms(started),
                last_error=str(e),
            ),
        )
        raise

    total = history_deleted + stats_deleted
    logger.info("Total cleanup: %d records in %dms", total, _elapsed_ms(started))
    _record_run(
        db,
        prefix,
        CLEANUP_JOB,
        CronJobStats(
            last_run=datetime.now(timezone.utc),
            status="success",
            schedule=CLEANUP_SCHEDULE,
            execution_time_ms=_elapsed_ms(started),
            records_deleted=total,
            history_deleted=history_deleted,
            stats_deleted=stats_deleted,
        ),
    )
    return {"historyDeleted": history_deleted, "statsDeleted": stats_deleted}
