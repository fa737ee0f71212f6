"""FastAPI route definitions for the DentalCare booking API."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Query, Request

from dentalcare.agent import ConversationOrchestrator, SessionStore
from dentalcare.api.schemas import (
    AppointmentList,
    BookingOutcomeResponse,
    CancelResponse,
    ChatRequest,
    ChatResponse,
    HealthResponse,
    ManualBookingRequest,
)
from dentalcare.dashboards import MANUAL_BOOKING_NOTES, to_utc_iso
from dentalcare.errors import SessionBusyError
from dentalcare.services.scheduling_client import SchedulingClient
from dentalcare.tools.booking import validate_email

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_state(request: Request) -> tuple[ConversationOrchestrator, SessionStore, SchedulingClient]:
    """Fetch the shared resources created by the server lifespan."""
    state = request.app.state
    orchestrator = getattr(state, "orchestrator", None)
    sessions = getattr(state, "sessions", None)
    scheduling = getattr(state, "scheduling", None)
    if orchestrator is None or sessions is None or scheduling is None:
        raise HTTPException(
            status_code=503,
            detail="The assistant is still starting up. Please try again in a moment.",
        )
    return orchestrator, sessions, scheduling


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse()


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, http_request: Request):
    """Send a message to the receptionist and get its final reply.

    A whole multi-round tool resolution is one request.  While it runs the
    session rejects further messages with 409.  ``orchestrator.send`` blocks
    on the model and Cal.com, so it runs in the default thread pool.
    """
    orchestrator, sessions, _ = _get_state(http_request)
    request_id = getattr(http_request.state, "request_id", "?")
    session = sessions.get_or_create(request.session_id)

    try:
        turn = await asyncio.to_thread(orchestrator.send, session, request.message)
    except SessionBusyError as e:
        raise HTTPException(
            status_code=409,
            detail="Your previous message is still being processed.",
        ) from e
    except Exception as e:
        # Full traceback stays server-side; the client gets a generic message
        logger.exception("[%s] Error processing chat request", request_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e

    return ChatResponse(
        reply=turn.text,
        session_id=session.session_id,
        is_error=turn.is_error,
        bookings_changed=session.bookings_changed,
    )


@router.post("/chat/{session_id}/reset", response_model=HealthResponse)
async def reset_chat(session_id: str, http_request: Request):
    _, sessions, _ = _get_state(http_request)
    try:
        sessions.get_or_create(session_id).reset()
    except SessionBusyError as e:
        raise HTTPException(
            status_code=409,
            detail="Your previous message is still being processed.",
        ) from e
    return HealthResponse()


@router.get("/bookings", response_model=AppointmentList)
async def list_bookings(
    http_request: Request,
    email: str | None = Query(None, description="Only bookings with this attendee"),
):
    """Upcoming bookings: the doctor's full schedule, or one patient's history."""
    _, _, scheduling = _get_state(http_request)
    appointments = await asyncio.to_thread(scheduling.list_appointments)
    if email:
        appointments = [a for a in appointments if a.has_attendee(email)]
    return AppointmentList(appointments=appointments)


@router.post("/bookings", response_model=BookingOutcomeResponse)
async def create_booking(request: ManualBookingRequest, http_request: Request):
    _, _, scheduling = _get_state(http_request)
    email_error = validate_email(request.email)
    if email_error:
        raise HTTPException(status_code=422, detail=email_error)

    outcome = await asyncio.to_thread(
        scheduling.create_appointment,
        to_utc_iso(request.start_time),
        request.name,
        request.email.strip(),
        request.notes or MANUAL_BOOKING_NOTES,
    )
    if outcome.success:
        message = f"Appointment booked! A confirmation email has been sent to {request.email.strip()}."
    else:
        message = outcome.error or "Failed to book appointment."
    return BookingOutcomeResponse(success=outcome.success, message=message, data=outcome.data)


@router.delete("/bookings/{booking_id}", response_model=CancelResponse)
async def cancel_booking(booking_id: int, http_request: Request):
    _, _, scheduling = _get_state(http_request)
    cancelled = await asyncio.to_thread(scheduling.cancel_appointment, booking_id)
    if not cancelled:
        raise HTTPException(
            status_code=502,
            detail=f"The scheduling provider did not cancel booking {booking_id}.",
        )
    return CancelResponse(cancelled=True, booking_id=booking_id)
