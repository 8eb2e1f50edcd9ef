import unittest
from datetime import datetime, timezone

from journal.db import InMemoryDbClient
from journal.media import InMemoryMediaClient, MediaError, iter_resources


class InMemoryDbClientTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()

    def test_query_filters_and_limit(self):
        self.db.set("users", "a", {"status": "Removed", "removedAt": datetime(2025, 1, 1, tzinfo=timezone.utc)})
        self.db.set("users", "b", {"status": "Removed"})
        self.db.set("users", "c", {"status": "Active", "removedAt": "not a date"})
        self.db.set("users", "d", {"status": "Removed", "removedAt": datetime(2025, 2, 1, tzinfo=timezone.utc)})

        cutoff = datetime(2025, 1, 15, tzinfo=timezone.utc)
        results = self.db.query(
            "users", [("status", "==", "Removed"), ("removedAt", "<=", cutoff)]
        )
        self.assertEqual([r.id for r in results], ["a"])

        # Mismatched types never match rather than raising.
        results = self.db.query("users", [("removedAt", "<", cutoff)])
        self.assertEqual([r.id for r in results], ["a"])

        self.assertEqual(len(self.db.query("users", limit=2)), 2)

    def test_set_merge_and_update(self):
        self.db.set("system_stats", "cron_jobs", {"jobA": {"status": "success"}})
        self.db.set(
            "system_stats",
            "cron_jobs",
            {"jobB": {"status": "failed"}},
            merge=True,
        )
        self.assertEqual(
            self.db.get("system_stats", "cron_jobs"),
            {"jobA": {"status": "success"}, "jobB": {"status": "failed"}},
        )

        self.db.update("system_stats", "cron_jobs", {"jobA": {"status": "failed"}})
        self.assertEqual(self.db.get("system_stats", "cron_jobs")["jobA"]["status"], "failed")
        with self.assertRaises(KeyError):
            self.db.update("system_stats", "missing", {"x": 1})

    def test_returned_data_is_a_copy(self):
        self.db.set("memories", "m1", {"tags": ["a"]})
        self.db.get("memories", "m1")["tags"].append("b")
        self.assertEqual(self.db.get("memories", "m1"), {"tags": ["a"]})

    def test_bulk_operations(self):
        written = self.db.write_many("memories", [("m1", {"n": 1}), ("m2", {"n": 2})])
        self.assertEqual(written, 2)
        doc_id = self.db.add("memories", {"n": 3})
        self.assertEqual(len(self.db.query("memories")), 3)
        self.assertEqual(self.db.delete_many("memories", ["m1", doc_id]), 2)
        self.assertEqual([r.id for r in self.db.query("memories")], ["m2"])


class InMemoryMediaClientTests(unittest.TestCase):
    def setUp(self):
        self.media = InMemoryMediaClient()

    def test_upload_and_destroy(self):
        result = self.media.upload(
            b"bytes",
            folder="love-journal/memories/2024",
            tags=["memory"],
            public_id="memory-1-0",
            context={"memory_id": "memory-1"},
        )
        self.assertEqual(result["public_id"], "love-journal/memories/2024/memory-1-0")
        self.assertEqual(result["folder"], "love-journal/memories/2024")
        self.assertEqual(result["context"], {"custom": {"memory_id": "memory-1"}})

        self.assertEqual(self.media.destroy(result["public_id"]), {"result": "ok"})
        self.assertEqual(self.media.destroy(result["public_id"]), {"result": "not found"})

    def test_iter_resources_follows_cursor(self):
        for n in range(5):
            self.media.add_resource(f"love-journal/users/u1/img-{n}")
        self.media.add_resource("love-journal/users/u2/img-9")
        self.media.page_size_override = 2

        ids = [r["public_id"] for r in iter_resources(self.media, "love-journal/users/u1")]
        self.assertEqual(ids, [f"love-journal/users/u1/img-{n}" for n in range(5)])

    def test_rename_and_context(self):
        self.media.add_resource("old/a")
        self.media.add_resource("new/b")

        renamed = self.media.rename("old/a", "new/a")
        self.assertEqual(renamed["folder"], "new")
        with self.assertRaises(MediaError) as ctx:
            self.media.rename("new/a", "new/b")
        self.assertEqual(ctx.exception.status, 409)
        with self.assertRaises(MediaError):
            self.media.rename("old/a", "x")

        self.media.add_context({"userId": "u1"}, ["new/a", "gone"])
        self.assertEqual(self.media.resources["new/a"]["context"], {"custom": {"userId": "u1"}})


if __name__ == "__main__":
    unittest.main()
