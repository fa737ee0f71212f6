"""Patient and doctor views over the orchestrator and scheduling client.

These hold no business rules of their own: they re-fetch the authoritative
schedule whenever they need it and only ever drop an item locally after the
provider has confirmed a cancellation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from dentalcare.agent import ConversationOrchestrator, Session, Turn, create_orchestrator
from dentalcare.services.auth_client import User
from dentalcare.services.scheduling_client import Appointment, SchedulingClient
from dentalcare.tools.booking import ToolExecutor

logger = logging.getLogger(__name__)

MANUAL_BOOKING_NOTES = "Manual Web Booking"


def format_dt(iso_str: str) -> str:
    """Convert an ISO 8601 string to a friendly 'Mon 17 Feb 2026 at 10:30' format."""
    try:
        dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
    except ValueError:
        return iso_str
    return dt.strftime("%a %d %b %Y at %H:%M")


def to_utc_iso(start: datetime) -> str:
    """Local (or aware) datetime → ``2026-02-17T09:00:00.000Z``."""
    return start.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.000Z")


@dataclass
class BookingStatus:
    success: bool
    message: str


class PatientDashboard:
    """Chat, manual booking and booking history for one patient."""

    def __init__(
        self,
        user: User | None,
        client: SchedulingClient,
        orchestrator: ConversationOrchestrator | None = None,
    ):
        self.user = user
        self._client = client
        self._orchestrator = orchestrator
        self.session = Session(on_booking_change=self.refresh_history)
        self.history: list[Appointment] = []

    def refresh_history(self) -> list[Appointment]:
        """Re-fetch the bookings that list this patient as an attendee."""
        if self.user is None or not self.user.email:
            return self.history
        self.history = [
            appointment
            for appointment in self._client.list_appointments()
            if appointment.has_attendee(self.user.email)
        ]
        logger.debug("History refreshed: %d booking(s) for %s", len(self.history), self.user.email)
        return self.history

    def chat(self, text: str) -> Turn:
        if self._orchestrator is None:
            self._orchestrator = create_orchestrator(executor=ToolExecutor(self._client))
        return self._orchestrator.send(self.session, text)

    def reset_chat(self) -> None:
        self.session.reset()

    def book_manually(self, start: datetime, email: str | None = None) -> BookingStatus:
        email = email or (self.user.email if self.user else "")
        if not email:
            return BookingStatus(False, "An email address is required to book.")

        name = self.user.name if self.user else "Patient"
        outcome = self._client.create_appointment(
            to_utc_iso(start), name, email, MANUAL_BOOKING_NOTES,
        )
        if not outcome.success:
            return BookingStatus(False, outcome.error or "Failed to book appointment.")

        self.refresh_history()
        return BookingStatus(
            True, f"Appointment booked! A confirmation email has been sent to {email}.",
        )


class DoctorDashboard:
    """The clinic's upcoming schedule with cancellation."""

    def __init__(self, client: SchedulingClient):
        self._client = client
        self.appointments: list[Appointment] = []

    def refresh(self) -> list[Appointment]:
        self.appointments = self._client.list_appointments()
        return self.appointments

    def cancel(self, booking_id: int) -> bool:
        if not self._client.cancel_appointment(booking_id):
            return False
        self.appointments = [a for a in self.appointments if a.id != booking_id]
        return True
