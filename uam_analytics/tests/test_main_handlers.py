import json
import types
import unittest
from unittest.mock import patch

from fastapi.exceptions import RequestValidationError

from uam_analytics import main
from uam_analytics.errors import AuthError, MissingFieldError, StorageError


def _request():
    return types.SimpleNamespace(
        headers={},
        method="POST",
        url=types.SimpleNamespace(path="/api/analytics/pageview"),
    )


def _body(response) -> dict:
    return json.loads(response.body)


class ErrorEnvelopeTests(unittest.IsolatedAsyncioTestCase):
    async def test_validation_errors_render_as_400(self) -> None:
        response = await main.analytics_error_handler(_request(), MissingFieldError(["sessionId", "pageUrl"]))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(_body(response), {"error": "sessionId and pageUrl are required"})

    async def test_auth_errors_render_as_401(self) -> None:
        response = await main.analytics_error_handler(_request(), AuthError("Unauthorized"))
        self.assertEqual(response.status_code, 401)

    async def test_storage_detail_only_in_development(self) -> None:
        exc = StorageError("Failed to track page view", detail="database is locked")
        with patch.object(main.config, "ENVIRONMENT", "production"):
            response = await main.analytics_error_handler(_request(), exc)
        self.assertEqual(response.status_code, 500)
        self.assertEqual(_body(response), {"error": "Failed to track page view"})

        with patch.object(main.config, "ENVIRONMENT", "development"):
            response = await main.analytics_error_handler(_request(), exc)
        self.assertEqual(_body(response), {"error": "Failed to track page view", "message": "database is locked"})

    async def test_malformed_body_is_a_400(self) -> None:
        response = await main.request_validation_handler(_request(), RequestValidationError([]))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(_body(response), {"error": "Invalid request body"})

    async def test_unexpected_errors_are_masked(self) -> None:
        with self.assertLogs("uam", level="ERROR"):
            response = await main.unhandled_error_handler(_request(), RuntimeError("secret internals"))
        self.assertEqual(response.status_code, 500)
        self.assertEqual(_body(response), {"error": "Internal server error"})


def _scope(content_length: str | None = None) -> dict:
    headers = [(b"content-type", b"application/json")]
    if content_length is not None:
        headers.append((b"content-length", content_length.encode()))
    return {"type": "http", "method": "POST", "path": "/api/analytics/pageview", "headers": headers}


class BodyLimitTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.seen_body: bytes | None = None
        self.middleware = main.BodySizeLimitMiddleware(self._downstream)

    async def _downstream(self, scope, receive, send) -> None:
        body = b""
        while True:
            message = await receive()
            body += message.get("body", b"")
            if not message.get("more_body", False):
                break
        self.seen_body = body
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b"ok"})

    async def _run(self, scope: dict, chunks: list[bytes]) -> list[dict]:
        messages = [
            {"type": "http.request", "body": chunk, "more_body": i < len(chunks) - 1}
            for i, chunk in enumerate(chunks)
        ]
        sent: list[dict] = []

        async def receive():
            return messages.pop(0) if messages else {"type": "http.disconnect"}

        async def send(message):
            sent.append(message)

        await self.middleware(scope, receive, send)
        return sent

    def _status(self, sent: list[dict]) -> int:
        return sent[0]["status"]

    async def test_oversized_declared_length_is_rejected_before_routing(self) -> None:
        with patch.object(main.config, "MAX_BODY_BYTES", 1024):
            with self.assertLogs("uam", level="WARNING"):
                sent = await self._run(_scope("2048"), [b"{}"])
        self.assertEqual(self._status(sent), 413)
        self.assertEqual(json.loads(sent[1]["body"]), {"error": "Request body too large"})
        self.assertIsNone(self.seen_body)

    async def test_body_within_limit_is_forwarded_intact(self) -> None:
        with patch.object(main.config, "MAX_BODY_BYTES", 1024):
            sent = await self._run(_scope("35"), [b'{"sessionId": "s1", "pa', b'geUrl": "/"}'])
        self.assertEqual(self._status(sent), 200)
        self.assertEqual(self.seen_body, b'{"sessionId": "s1", "pageUrl": "/"}')

    async def test_chunked_body_without_length_is_counted_as_it_streams(self) -> None:
        with patch.object(main.config, "MAX_BODY_BYTES", 1024):
            with self.assertLogs("uam", level="WARNING"):
                sent = await self._run(_scope(), [b"x" * 600, b"x" * 600, b"x" * 600])
        self.assertEqual(self._status(sent), 413)
        self.assertIsNone(self.seen_body)

    async def test_small_chunked_body_reaches_the_app(self) -> None:
        with patch.object(main.config, "MAX_BODY_BYTES", 1024):
            sent = await self._run(_scope(), [b"x" * 500, b"x" * 500])
        self.assertEqual(self._status(sent), 200)
        self.assertEqual(len(self.seen_body), 1000)

    async def test_garbage_length_is_a_400(self) -> None:
        sent = await self._run(_scope("lots"), [b"{}"])
        self.assertEqual(self._status(sent), 400)
        self.assertIsNone(self.seen_body)

    async def test_non_http_scopes_pass_through(self) -> None:
        scope = {"type": "lifespan"}
        calls = []

        async def app(s, receive, send):
            calls.append(s)

        await main.BodySizeLimitMiddleware(app)(scope, None, None)
        self.assertEqual(calls, [scope])


class HealthTests(unittest.TestCase):
    def test_health_reports_status_and_db_state(self) -> None:
        payload = main.health()
        self.assertEqual(payload["status"], "healthy")
        self.assertIn(payload["db"], {"connected", "disconnected"})
        self.assertGreaterEqual(payload["uptime"], 0)


if __name__ == "__main__":
    unittest.main()
