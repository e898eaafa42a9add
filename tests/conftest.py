"""Shared fixtures: a scripted transport double and canned service payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import pytest

from libre_config import Configuration


@dataclass
class Call:
    method: str
    url: str
    headers: dict[str, str]
    body: Optional[dict]


@dataclass
class FakeTransport:
    """Replays queued responses (or raises queued exceptions) in order."""

    responses: list[Any] = field(default_factory=list)
    calls: list[Call] = field(default_factory=list)

    def request(self, method: str, url: str, headers: dict[str, str], body: Optional[dict] = None) -> dict:
        self.calls.append(Call(method, url, dict(headers), body))
        if not self.responses:
            raise AssertionError(f"unexpected request: {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


def login_ok(token: str = "tok-123", user_id: Optional[str] = "user-1") -> dict:
    data: dict[str, Any] = {"authTicket": {"token": token, "expires": 1700000000, "duration": 15552000000}}
    if user_id is not None:
        data["user"] = {"id": user_id, "firstName": "Ada"}
    return {"status": 0, "data": data}


def login_redirect(region: str) -> dict:
    return {"status": 0, "data": {"redirect": True, "region": region}}


def connections_ok(value: float = 100, trend: int = 4, mg_field: str = "ValueInMgPerDl") -> dict:
    measurement = {
        mg_field: value,
        "TrendArrow": trend,
        "Timestamp": "10/19/2026 8:15:00 AM",
        "isHigh": False,
        "isLow": False,
    }
    return {"status": 0, "data": [{"patientId": "p-1", "glucoseMeasurement": measurement}]}


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def config() -> Configuration:
    return Configuration(
        username="follower@example.com",
        password="s3cret",
        glucose_unit="mmol/L",
        low_threshold=4.0,
        high_threshold=10.0,
    )
