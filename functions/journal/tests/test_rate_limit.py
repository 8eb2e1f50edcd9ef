import unittest
from types import SimpleNamespace

from journal.rate_limit import RateLimiter, client_ip


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class RateLimiterTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(
            window_seconds=60, sweep_interval_seconds=300, clock=self.clock
        )

    def test_blocks_after_limit(self):
        for expected_remaining in (2, 1, 0):
            decision = self.limiter.hit("1.2.3.4:/api/health", 3)
            self.assertTrue(decision.allowed)
            self.assertEqual(decision.remaining, expected_remaining)

        decision = self.limiter.hit("1.2.3.4:/api/health", 3)
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.remaining, 0)
        self.assertEqual(decision.retry_after, 60)
        headers = decision.headers()
        self.assertEqual(headers["Retry-After"], "60")
        self.assertEqual(headers["X-RateLimit-Reset"], "1970-01-01T00:17:40Z")

    def test_window_resets(self):
        for _ in range(4):
            self.limiter.hit("k", 3)
        self.clock.now += 61
        decision = self.limiter.hit("k", 3)
        self.assertTrue(decision.allowed)
        self.assertEqual(decision.count, 1)

    def test_keys_are_independent(self):
        for _ in range(3):
            self.limiter.hit("a", 3)
        self.assertFalse(self.limiter.hit("a", 3).allowed)
        self.assertTrue(self.limiter.hit("b", 3).allowed)

    def test_sweep_drops_stale_entries(self):
        self.limiter.hit("stale", 3)
        self.clock.now += 100
        self.limiter.hit("fresh", 3)
        self.assertEqual(self.limiter.sweep(), 0)

        self.clock.now += 30
        self.assertEqual(self.limiter.sweep(), 1)
        self.assertEqual(list(self.limiter.entries), ["fresh"])

    def test_sweep_runs_lazily_on_hit(self):
        self.limiter.hit("stale", 3)
        self.clock.now += 301
        self.limiter.hit("other", 3)
        self.assertNotIn("stale", self.limiter.entries)


class ClientIpTests(unittest.TestCase):
    def request(self, headers=None, host="10.0.0.1"):
        client = SimpleNamespace(host=host) if host else None
        return SimpleNamespace(headers=headers or {}, client=client)

    def test_prefers_forwarded_for(self):
        request = self.request({"x-forwarded-for": "203.0.113.7, 10.0.0.2"})
        self.assertEqual(client_ip(request), "203.0.113.7")

    def test_falls_back_to_real_ip_then_peer(self):
        self.assertEqual(client_ip(self.request({"x-real-ip": " 198.51.100.1 "})), "198.51.100.1")
        self.assertEqual(client_ip(self.request()), "10.0.0.1")
        self.assertEqual(client_ip(self.request(host=None)), "unknown")


if __name__ == "__main__":
    unittest.main()
