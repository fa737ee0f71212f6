"""Shared test fixtures for the DentalCare test suite."""

from __future__ import annotations

import json
import os
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import httpx
import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("CAL_API_KEY", "test-cal-key-456")
    os.environ.setdefault("CAL_EVENT_TYPE_ID", "4133458")
    os.environ.setdefault("METRICS_ENABLED", "false")


CAL_TEST_BASE_URL = "https://api.cal.test/v1"
EVENT_TYPE_ID = 4133458


class StubCalProvider:
    """In-memory stand-in for the Cal.com bookings API.

    ``fail_create`` / ``fail_list`` hold a ``(status, json_body)`` pair that
    the next matching request answers with instead of succeeding.
    """

    def __init__(self) -> None:
        self.bookings: list[dict] = []
        self.requests: list[httpx.Request] = []
        self.fail_create: tuple[int, dict] | None = None
        self.fail_list: tuple[int, dict] | None = None
        self._next_id = 1

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "GET" and path.endswith("/bookings"):
            if self.fail_list:
                return httpx.Response(self.fail_list[0], json=self.fail_list[1])
            return httpx.Response(200, json={"bookings": list(self.bookings)})

        if request.method == "POST" and path.endswith("/bookings"):
            if self.fail_create:
                return httpx.Response(self.fail_create[0], json=self.fail_create[1])
            body = json.loads(request.content)
            start = body["start"]
            end = datetime.fromisoformat(start.replace("Z", "+00:00")) + timedelta(minutes=30)
            booking = {
                "id": self._next_id,
                "uid": f"uid-{self._next_id}",
                "title": f"Dental check-up with {body['responses']['name']}",
                "description": body["responses"].get("notes", ""),
                "startTime": start,
                "endTime": end.isoformat().replace("+00:00", "Z"),
                "attendees": [
                    {
                        "name": body["responses"]["name"],
                        "email": body["responses"]["email"],
                        "timeZone": body["timeZone"],
                    }
                ],
                "status": "ACCEPTED",
            }
            self._next_id += 1
            self.bookings.append(booking)
            return httpx.Response(200, json=booking)

        if request.method == "DELETE" and "/bookings/" in path:
            booking_id = int(path.rsplit("/", 1)[-1])
            before = len(self.bookings)
            self.bookings = [b for b in self.bookings if b["id"] != booking_id]
            if len(self.bookings) == before:
                return httpx.Response(404, json={"message": "Booking not found"})
            return httpx.Response(200, json={"message": "Booking successfully deleted."})

        return httpx.Response(404, json={"message": "Not found"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def cal_provider() -> StubCalProvider:
    return StubCalProvider()


@pytest.fixture
def notifier() -> MagicMock:
    from dentalcare.services.notifier import Notifier

    mock = MagicMock(spec=Notifier)
    mock.send_confirmation.return_value = True
    return mock


@pytest.fixture
def scheduling_client(cal_provider, notifier):
    from dentalcare.services.scheduling_client import SchedulingClient

    client = SchedulingClient(
        api_key="test-cal-key",
        event_type_id=EVENT_TYPE_ID,
        base_url=CAL_TEST_BASE_URL,
        notifier=notifier,
        timezone="Europe/London",
        transport=cal_provider.transport,
    )
    yield client
    client.close()


@pytest.fixture
def mock_cal_response():
    """Factory fixture for creating mock Cal.com API responses."""

    def _make(data: dict, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = json.dumps(data)
        mock.content = mock.text.encode()
        return mock

    return _make
