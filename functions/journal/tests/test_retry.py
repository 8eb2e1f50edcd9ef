import unittest

from journal.media import MediaError
from journal.retry import is_retryable_error, retry_with_backoff, with_retry


class Flaky:
    def __init__(self, errors, result="done"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class RetryTests(unittest.TestCase):
    def setUp(self):
        self.sleeps = []

    def test_delays_double_up_to_the_cap(self):
        fn = Flaky([ConnectionError(str(n)) for n in range(5)])
        retry_with_backoff(fn, max_retries=5, sleep=self.sleeps.append)
        self.assertEqual(fn.calls, 6)
        self.assertEqual(self.sleeps, [1.0, 2.0, 4.0, 8.0, 10.0])

    def test_retryable_errors(self):
        self.assertTrue(is_retryable_error(ConnectionError("reset")))
        self.assertTrue(is_retryable_error(MediaError("server", status=503)))
        self.assertFalse(is_retryable_error(MediaError("missing", status=404)))
        self.assertFalse(is_retryable_error(MediaError("slow down", status=420)))

    def test_retries_until_success(self):
        fn = Flaky([MediaError("a", status=500), ConnectionError("b")])
        result = retry_with_backoff(fn, sleep=self.sleeps.append)
        self.assertEqual(result, "done")
        self.assertEqual(fn.calls, 3)
        self.assertEqual(self.sleeps, [1.0, 2.0])

    def test_gives_up_after_max_retries(self):
        fn = Flaky([MediaError(str(n), status=502) for n in range(5)])
        with self.assertRaisesRegex(MediaError, "3"):
            retry_with_backoff(fn, max_retries=3, sleep=self.sleeps.append)
        self.assertEqual(fn.calls, 4)

    def test_client_errors_are_not_retried(self):
        fn = Flaky([MediaError("exists", status=409)])
        with self.assertRaises(MediaError):
            retry_with_backoff(fn, sleep=self.sleeps.append)
        self.assertEqual(fn.calls, 1)
        self.assertEqual(self.sleeps, [])

    def test_custom_predicate_and_callback(self):
        seen = []
        fn = Flaky([ValueError("once")])
        retry_with_backoff(
            fn,
            should_retry=lambda error, attempt: isinstance(error, ValueError),
            on_retry=lambda error, attempt, delay: seen.append((attempt, delay)),
            initial_delay=0.5,
            sleep=self.sleeps.append,
        )
        self.assertEqual(seen, [(1, 0.5)])

    def test_default_logs_each_retry(self):
        fn = Flaky([ConnectionError("reset")])
        with self.assertLogs("journal.retry", level="WARNING") as logs:
            retry_with_backoff(fn, sleep=self.sleeps.append)
        self.assertEqual(len(logs.records), 1)

    def test_decorator(self):
        fn = Flaky([ConnectionError("x")], result=7)

        @with_retry(sleep=self.sleeps.append)
        def call(offset):
            return fn() + offset

        self.assertEqual(call(1), 8)
        self.assertEqual(len(self.sleeps), 1)


if __name__ == "__main__":
    unittest.main()
