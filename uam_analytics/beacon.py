"""Server-side tracker client for the collector endpoints.

Posts JSON payloads with a bounded exponential-backoff retry. A payload that
still fails after the last retry is logged and dropped; delivery order is not
preserved and a retried payload may be stored twice.
"""
from __future__ import annotations

import logging
import random
import string
import time
from dataclasses import dataclass
from typing import Any, Callable

import requests

from uam_analytics import config

logger = logging.getLogger("uam.beacon")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0

    def delay(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt`` (0-based)."""
        return self.base_delay * (2 ** attempt)

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(
            max_retries=max(0, config.BEACON_MAX_RETRIES),
            base_delay=max(0.0, config.BEACON_RETRY_DELAY_SECONDS),
        )


def new_session_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


class BeaconClient:
    def __init__(
        self,
        endpoint: str | None = None,
        policy: RetryPolicy | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float | None = None,
    ):
        self.endpoint = (endpoint or config.BEACON_ENDPOINT).rstrip("/")
        self.policy = policy or RetryPolicy.from_config()
        self.session = session or requests.Session()
        self.sleep = sleep
        self.timeout = config.BEACON_TIMEOUT_SECONDS if timeout is None else timeout

    def _url(self, path: str) -> str:
        return f"{self.endpoint}/{path.lstrip('/')}"

    def _post(self, url: str, payload: dict[str, Any]) -> bool:
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Analytics tracking failed for %s: %s", url, exc)
            return False
        if not response.ok:
            logger.warning("Analytics tracking failed for %s: HTTP %s", url, response.status_code)
            return False
        return True

    def send(self, path: str, payload: dict[str, Any]) -> bool:
        """POST ``payload`` to ``path``; True once any attempt is accepted."""
        url = self._url(path)
        if self._post(url, payload):
            return True
        for attempt in range(self.policy.max_retries):
            self.sleep(self.policy.delay(attempt))
            if self._post(url, payload):
                return True
        logger.error("Dropping %s payload after %s retries", path, self.policy.max_retries)
        return False

    def track_pageview(self, session_id: str, page_url: str, **fields: Any) -> bool:
        return self.send("pageview", {"sessionId": session_id, "pageUrl": page_url, **fields})

    def track_event(self, session_id: str, event_type: str, **fields: Any) -> bool:
        return self.send("event", {"sessionId": session_id, "eventType": event_type, **fields})

    def end_session(self, session_id: str, total_time_spent: float, **fields: Any) -> bool:
        return self.send(
            "session-end",
            {"sessionId": session_id, "totalTimeSpent": total_time_spent, **fields},
        )

    def close(self) -> None:
        self.session.close()
