"""Constants and test doubles shared across the suite."""

from typing import Any, List, Optional

import httpx

API = "/api"
ADMIN_PASSWORD = "autumn-admin-pw"


class FakeEmailProvider:
    """Records outgoing requests and replays scripted outcomes.

    Each outcome is a status code or an exception to raise; once the script is
    exhausted every request succeeds.
    """

    def __init__(self, outcomes: Optional[List[Any]] = None):
        self.requests: List[httpx.Request] = []
        self.outcomes = list(outcomes or [])

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if self.outcomes else 200
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, json={"id": "email_123"})

    def fail_always(self, outcome: Any) -> None:
        self.outcomes = [outcome] * 100
