import unittest

import requests

from uam_analytics.beacon import BeaconClient, RetryPolicy, new_session_id


class _Response:
    def __init__(self, status_code: int):
        self.status_code = status_code
        self.ok = 200 <= status_code < 400


class _FakeSession:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls: list[tuple[str, dict]] = []

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return _Response(outcome)

    def close(self):
        pass


class RetryPolicyTests(unittest.TestCase):
    def test_delay_doubles_per_attempt(self) -> None:
        policy = RetryPolicy(max_retries=3, base_delay=1.0)
        self.assertEqual([policy.delay(i) for i in range(3)], [1.0, 2.0, 4.0])


class BeaconClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sleeps: list[float] = []

    def _client(self, outcomes, policy=None):
        session = _FakeSession(outcomes)
        client = BeaconClient(
            "http://collector.test/api/analytics/",
            policy or RetryPolicy(max_retries=3, base_delay=0.5),
            session=session,
            sleep=self.sleeps.append,
        )
        return client, session

    def test_first_success_sends_once(self) -> None:
        client, session = self._client([200])
        self.assertTrue(client.track_pageview("s1", "/home", pageTitle="Home"))
        self.assertEqual(
            session.calls,
            [("http://collector.test/api/analytics/pageview", {"sessionId": "s1", "pageUrl": "/home", "pageTitle": "Home"})],
        )
        self.assertEqual(self.sleeps, [])

    def test_transient_failures_back_off_then_succeed(self) -> None:
        client, session = self._client([503, requests.ConnectionError("reset"), 200])
        self.assertTrue(client.track_event("s1", "signup"))
        self.assertEqual(len(session.calls), 3)
        self.assertEqual(self.sleeps, [0.5, 1.0])

    def test_exhausted_retries_drop_the_payload(self) -> None:
        client, session = self._client([500, 500, 500, 500])
        with self.assertLogs("uam.beacon", level="ERROR"):
            self.assertFalse(client.end_session("s1", 1200))
        self.assertEqual(len(session.calls), 4)
        self.assertEqual(self.sleeps, [0.5, 1.0, 2.0])
        self.assertEqual(session.calls[0][1], {"sessionId": "s1", "totalTimeSpent": 1200})

    def test_zero_retries_means_a_single_attempt(self) -> None:
        client, session = self._client([500], policy=RetryPolicy(max_retries=0))
        with self.assertLogs("uam.beacon", level="ERROR"):
            self.assertFalse(client.send("event", {"sessionId": "s1", "eventType": "x"}))
        self.assertEqual(len(session.calls), 1)


class SessionIdTests(unittest.TestCase):
    def test_session_ids_are_prefixed_and_unique(self) -> None:
        first, second = new_session_id(), new_session_id()
        self.assertTrue(first.startswith("session_"))
        self.assertNotEqual(first, second)
        self.assertEqual(len(first.rsplit("_", 1)[1]), 9)


if __name__ == "__main__":
    unittest.main()
