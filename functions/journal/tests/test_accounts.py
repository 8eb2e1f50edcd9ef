import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from journal.accounts import (
    CLEANUP_JOB,
    DELETE_ACCOUNTS_JOB,
    ImageDeletionError,
    cleanup_cron_history,
    delete_removed_accounts,
    delete_single_image,
    delete_user_account,
    extract_public_id,
)
from journal.db import InMemoryDbClient
from journal.identity import InMemoryAuthClient
from journal.media import InMemoryMediaClient

NOW = datetime(2025, 3, 10, 2, 0, tzinfo=timezone.utc)


class ExtractPublicIdTests(unittest.TestCase):
    def test_extract_public_id(self):
        cases = {
            "https://res.cloudinary.com/demo/image/upload/v1712345/love-journal/a/b.jpg": "love-journal/a/b",
            "https://res.cloudinary.com/demo/image/upload/love-journal/c.png": "love-journal/c",
            "love-journal/d": "love-journal/d",
            "https://example.com/elsewhere/e.jpg": "https://example.com/elsewhere/e.jpg",
        }
        for value, expected in cases.items():
            with self.subTest(value=value):
                self.assertEqual(extract_public_id(value), expected)


class DeleteSingleImageTests(unittest.TestCase):
    def test_results(self):
        media = InMemoryMediaClient()
        media.add_resource("a")

        result = delete_single_image(media, "a")
        self.assertEqual(result.result, "ok")
        self.assertEqual(result.message, "Image deleted successfully")

        result = delete_single_image(media, "a")
        self.assertTrue(result.success)
        self.assertEqual(result.message, "Image already deleted or not found")

    def test_unexpected_result_raises(self):
        media = MagicMock()
        media.destroy.return_value = {"result": "error"}
        with self.assertRaisesRegex(ImageDeletionError, "Failed to delete image: error"):
            delete_single_image(media, "a")


class AccountTestCase(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.media = InMemoryMediaClient()
        self.auth = InMemoryAuthClient()

    def add_user(self, user_id, prefix="", removed_days_ago=10, status="Removed"):
        self.db.set(
            f"{prefix}users",
            user_id,
            {
                "email": f"{user_id}@example.com",
                "status": status,
                "removedAt": NOW - timedelta(days=removed_days_ago),
            },
        )
        self.auth.users.add(user_id)

    def add_memory(self, memory_id, user_id, photos, prefix=""):
        for photo in photos:
            self.media.add_resource(extract_public_id(photo))
        self.db.set(
            f"{prefix}memories",
            memory_id,
            {"userId": user_id, "photos": photos},
        )


class DeleteUserAccountTests(AccountTestCase):
    def test_deletes_everything_owned(self):
        self.add_user("u1")
        self.add_memory(
            "m1",
            "u1",
            ["https://res.cloudinary.com/demo/image/upload/v1/love-journal/x.jpg"],
        )
        self.db.set("memories", "m2", {"userId": "u1", "cloudinaryPublicIds": ["y"]})
        self.media.add_resource("y")
        self.db.set("memories", "other", {"userId": "u2", "photos": []})
        self.db.set("AnniversaryEvent", "a1", {"userId": "u1"})
        self.db.set("userEffects", "u1", {"snow": True})

        delete_user_account(self.db, self.media, self.auth, "u1")

        self.assertEqual(self.media.resources, {})
        self.assertEqual(list(self.db.collections["memories"]), ["other"])
        self.assertEqual(self.db.collections["AnniversaryEvent"], {})
        self.assertIsNone(self.db.get("userEffects", "u1"))
        self.assertIsNone(self.db.get("users", "u1"))
        self.assertNotIn("u1", self.auth.users)

    def test_image_failure_keeps_data(self):
        self.add_user("u1")
        self.add_memory("m1", "u1", ["good", "bad"])
        self.media.failing_ids.add("bad")

        with self.assertRaises(ImageDeletionError) as ctx:
            delete_user_account(self.db, self.media, self.auth, "u1")

        self.assertIn("Failed to delete 1/2 Cloudinary images for user u1", str(ctx.exception))
        self.assertIn("bad", str(ctx.exception))
        self.assertIsNotNone(self.db.get("memories", "m1"))
        self.assertIsNotNone(self.db.get("users", "u1"))
        self.assertIn("u1", self.auth.users)

    def test_missing_auth_user_is_not_an_error(self):
        self.db.set("dev_users", "u1", {"status": "Removed"})

        delete_user_account(self.db, self.media, self.auth, "u1", prefix="dev_")

        self.assertIsNone(self.db.get("dev_users", "u1"))


class DeleteRemovedAccountsTests(AccountTestCase):
    def test_only_expired_removed_accounts(self):
        self.add_user("old")
        self.add_user("recent", removed_days_ago=2)
        self.add_user("active", status="Active")
        self.add_user("dev-old", prefix="dev_")

        summary = delete_removed_accounts(
            self.db, self.media, self.auth, prefixes=["dev_", ""], now=NOW
        )

        self.assertEqual(summary.deleted, 2)
        self.assertEqual(summary.failed, 0)
        self.assertEqual(summary.status, "success")
        self.assertIsNone(self.db.get("users", "old"))
        self.assertIsNone(self.db.get("dev_users", "dev-old"))
        self.assertIsNotNone(self.db.get("users", "recent"))
        self.assertIsNotNone(self.db.get("users", "active"))

        for prefix in ("dev_", ""):
            stats = self.db.get(f"{prefix}system_stats", "cron_jobs")[DELETE_ACCOUNTS_JOB]
            self.assertEqual(stats["status"], "success")
            self.assertEqual(stats["schedule"], "every day 02:00")
            self.assertEqual(stats["accountsDeleted"], 1)
            self.assertEqual(stats["accountsFailed"], 0)
            self.assertIsNone(stats["lastError"])
            history = self.db.query(f"{prefix}cron_history")
            self.assertEqual(len(history), 1)
            self.assertEqual(history[0].data["jobName"], DELETE_ACCOUNTS_JOB)
            self.assertEqual(history[0].data["triggeredBy"], "auto")
            self.assertEqual(history[0].data["startTime"], NOW)

    def test_partial_failure(self):
        self.add_user("ok")
        self.add_user("stuck")
        self.add_memory("m1", "stuck", ["bad"])
        self.media.failing_ids.add("bad")

        summary = delete_removed_accounts(
            self.db, self.media, self.auth, prefixes=[""], now=NOW
        )

        self.assertEqual((summary.deleted, summary.failed), (1, 1))
        self.assertEqual(summary.status, "partial_success")
        self.assertTrue(summary.errors[0].startswith("stuck: "))
        stats = self.db.get("system_stats", "cron_jobs")[DELETE_ACCOUNTS_JOB]
        self.assertEqual(stats["status"], "partial_success")
        self.assertIn("stuck", stats["lastError"])
        self.assertIsNotNone(self.db.get("users", "stuck"))

    def test_nothing_to_delete_records_nothing(self):
        summary = delete_removed_accounts(
            self.db, self.media, self.auth, prefixes=["dev_", ""], now=NOW
        )
        self.assertEqual(summary.deleted, 0)
        self.assertIsNone(self.db.get("system_stats", "cron_jobs"))
        self.assertEqual(self.db.query("cron_history"), [])

    def test_fatal_error_is_recorded_and_raised(self):
        db = MagicMock(wraps=self.db)
        db.query.side_effect = RuntimeError("quota exceeded")

        with self.assertRaisesRegex(RuntimeError, "quota exceeded"):
            delete_removed_accounts(db, self.media, self.auth, prefixes=["dev_"], now=NOW)

        stats = self.db.get("dev_system_stats", "cron_jobs")[DELETE_ACCOUNTS_JOB]
        self.assertEqual(stats["status"], "failed")
        self.assertEqual(stats["lastError"], "quota exceeded")
        history = self.db.collections["dev_cron_history"]
        self.assertEqual(len(history), 1)


class CleanupCronHistoryTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()

    def test_trims_old_history_and_stats(self):
        self.db.set("cron_history", "old", {"createdAt": NOW - timedelta(hours=30)})
        self.db.set("cron_history", "new", {"createdAt": NOW - timedelta(hours=2)})
        self.db.set("cron_stats_daily", "2025-02-28", {"date": "2025-02-28"})
        self.db.set("cron_stats_daily", "2025-03-09", {"date": "2025-03-09"})

        result = cleanup_cron_history(self.db, now=NOW)

        self.assertEqual(result, {"historyDeleted": 1, "statsDeleted": 1})
        self.assertEqual(list(self.db.collections["cron_history"]), ["new"])
        self.assertEqual(list(self.db.collections["cron_stats_daily"]), ["2025-03-09"])
        stats = self.db.get("system_stats", "cron_jobs")[CLEANUP_JOB]
        self.assertEqual(stats["status"], "success")
        self.assertEqual(stats["schedule"], "every 6 hours")
        self.assertEqual(stats["recordsDeleted"], 2)
        self.assertEqual(stats["historyDeleted"], 1)
        self.assertEqual(stats["statsDeleted"], 1)

    def test_uses_prefixed_collections(self):
        self.db.set("dev_cron_history", "old", {"createdAt": NOW - timedelta(days=2)})
        self.db.set("cron_history", "prod", {"createdAt": NOW - timedelta(days=2)})

        result = cleanup_cron_history(self.db, prefix="dev_", now=NOW)

        self.assertEqual(result["historyDeleted"], 1)
        self.assertIsNotNone(self.db.get("cron_history", "prod"))
        self.assertIn(CLEANUP_JOB, self.db.get("dev_system_stats", "cron_jobs"))

    def test_failure_is_recorded_and_raised(self):
        db = MagicMock(wraps=self.db)
        db.delete_many.side_effect = RuntimeError("unavailable")
        self.db.set("cron_history", "old", {"createdAt": NOW - timedelta(days=2)})

        with self.assertRaises(RuntimeError):
            cleanup_cron_history(db, now=NOW)

        stats = self.db.get("system_stats", "cron_jobs")[CLEANUP_JOB]
        self.assertEqual(stats["status"], "failed")
        self.assertEqual(stats["lastError"], "unavailable")


if __name__ == "__main__":
    unittest.main()
