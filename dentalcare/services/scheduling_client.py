"""HTTP client for the Cal.com v1 bookings API.

Cal.com docs: https://cal.com/docs/api-reference/v1
Every request carries the static API key as the ``apiKey`` query parameter.

The public methods never raise for provider or transport failures: listing
degrades to an empty schedule, creation returns a :class:`BookingOutcome`
and cancellation returns a bool.  Callers must treat an empty list as
"unknown", not as proof of a free calendar.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dentalcare.config import CAL_API_KEY, CAL_BASE_URL, CAL_EVENT_TYPE_ID, CLINIC_TIMEZONE
from dentalcare.services.metrics import metrics
from dentalcare.services.notifier import Notifier

logger = logging.getLogger(__name__)

# ── Retry configuration (idempotent requests only) ──────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 15.0

DEFAULT_NOTES = "Booked via DentalCare App"


class CalAPIError(Exception):
    """Raised by the transport layer when Cal.com rejects or drops a request."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


# ── Provider records ────────────────────────────────────────────────


class Attendee(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str | None = None
    email: str | None = None
    time_zone: str | None = Field(None, alias="timeZone")


class Appointment(BaseModel):
    """A booking as Cal.com reports it.  Never cached locally."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    uid: str | None = None
    title: str | None = None
    description: str | None = None
    start_time: str = Field(..., alias="startTime")
    end_time: str = Field(..., alias="endTime")
    attendees: list[Attendee] = Field(default_factory=list)
    status: str | None = None

    def has_attendee(self, email: str) -> bool:
        wanted = email.lower()
        return any((a.email or "").lower() == wanted for a in self.attendees)


class BookingOutcome(BaseModel):
    """Result of a booking attempt; failures are data, not exceptions."""

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None


def _error_message(response: httpx.Response) -> str:
    """Prefer the provider's ``message`` field over the raw body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if isinstance(message, str) and message:
            return message
    return response.text


def _raw_id(raw: Any) -> Any:
    return raw.get("id") if isinstance(raw, dict) else None


class SchedulingClient:
    """Thin wrapper around the Cal.com bookings endpoints for one event type."""

    def __init__(
        self,
        api_key: str | None = None,
        event_type_id: int | None = None,
        base_url: str | None = None,
        *,
        notifier: Notifier | None = None,
        timezone: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self._event_type_id = event_type_id or CAL_EVENT_TYPE_ID
        self._timezone = timezone or CLINIC_TIMEZONE
        self._notifier = notifier or Notifier()
        self._client = httpx.Client(
            base_url=base_url or CAL_BASE_URL,
            params={"apiKey": api_key or CAL_API_KEY},
            headers={"Content-Type": "application/json"},
            timeout=REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    # ── Internal helpers ─────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Execute an HTTP request and return the 2xx response unparsed.

        GET and DELETE retry timeouts, connection errors and 5xx responses
        with exponential backoff.  POST is attempted exactly once so a slow
        provider can never produce a duplicate booking.
        """
        attempts = MAX_RETRIES if method in ("GET", "DELETE") else 1
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                with metrics.track("cal", f"{method} {path}"):
                    response = self._client.request(method, path, params=params, json=json_body)
                    if response.status_code >= 400:
                        raise CalAPIError(_error_message(response), status_code=response.status_code)
                return response

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = exc
            except CalAPIError as exc:
                if exc.status_code is None or exc.status_code < 500:
                    raise  # 4xx errors are not retried
                last_error = exc

            if attempt == attempts:
                break
            backoff = INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1))
            logger.warning(
                "Cal.com %s %s attempt %d/%d failed (%s). Retrying in %.1fs…",
                method, path, attempt, attempts, last_error, backoff,
            )
            time.sleep(backoff)

        if isinstance(last_error, CalAPIError) and attempts == 1:
            raise last_error
        raise CalAPIError(
            f"Cal.com request failed after {attempts} attempt(s): {last_error}",
            status_code=getattr(last_error, "status_code", None),
        )

    # ── Public API ───────────────────────────────────────────────────

    def list_appointments(self) -> list[Appointment]:
        """Return upcoming bookings for the clinic's event type, or ``[]``."""
        try:
            response = self._request(
                "GET",
                "/bookings",
                params={"eventTypeId": self._event_type_id, "status": "upcoming"},
            )
            data = response.json()
        except (CalAPIError, httpx.HTTPError, ValueError) as exc:
            logger.warning("Failed to fetch bookings, treating schedule as empty: %s", exc)
            return []

        bookings = data.get("bookings") if isinstance(data, dict) else None
        appointments = []
        for raw in bookings or []:
            try:
                appointments.append(Appointment.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping malformed booking %r: %s", _raw_id(raw), exc)
        return appointments

    def create_appointment(
        self,
        start_time: str,
        name: str,
        email: str,
        notes: str | None = None,
    ) -> BookingOutcome:
        """Book *start_time* (ISO 8601) for the given attendee.

        On success the attendee gets a confirmation email.  A notifier
        failure is logged and the outcome stays successful: the provider
        has already accepted the booking.
        """
        payload: dict[str, Any] = {
            "eventTypeId": self._event_type_id,
            "start": start_time,
            "responses": {
                "name": name,
                "email": email,
                "notes": notes or DEFAULT_NOTES,
                "location": {"value": "inPerson", "optionValue": ""},
            },
            "metadata": {},
            "timeZone": self._timezone,
            "language": "en",
        }

        try:
            response = self._request("POST", "/bookings", json_body=payload)
        except CalAPIError as exc:
            logger.error("Cal.com rejected booking for %s at %s: %s", email, start_time, exc)
            return BookingOutcome(success=False, error=str(exc) or "Failed to create booking")
        except httpx.HTTPError as exc:
            logger.error("Error creating booking for %s: %s", email, exc)
            return BookingOutcome(
                success=False,
                error=str(exc) or "Network error occurred while booking",
            )

        # Any 2xx means the booking exists, whatever the body looks like
        try:
            data = response.json() if response.content else {}
        except ValueError:
            logger.warning("Cal.com accepted booking for %s with a non-JSON body", email)
            data = {}
        if not isinstance(data, dict):
            data = {}

        logger.info("Booked %s for %s", start_time, email)
        try:
            self._notifier.send_confirmation(email, name, start_time)
        except Exception:
            logger.exception("Confirmation email to %s failed; booking stands", email)

        return BookingOutcome(success=True, data=data)

    def cancel_appointment(self, booking_id: int) -> bool:
        """Delete a booking.  ``True`` only when the provider confirmed it."""
        try:
            self._request("DELETE", f"/bookings/{booking_id}")
        except (CalAPIError, httpx.HTTPError) as exc:
            logger.error("Error deleting booking %s: %s", booking_id, exc)
            return False
        logger.info("Cancelled booking %s", booking_id)
        return True

    def close(self) -> None:
        self._client.close()


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: SchedulingClient | None = None
_client_lock = threading.Lock()


def get_scheduling_client() -> SchedulingClient:
    """Return a process-wide SchedulingClient (double-checked locking)."""
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = SchedulingClient()
    return _client
