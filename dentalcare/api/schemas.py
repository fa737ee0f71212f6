"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from dentalcare.services.scheduling_client import Appointment


class ChatRequest(BaseModel):
    """Incoming chat message from the patient's chat view."""

    message: str = Field(..., min_length=1, max_length=2000, description="The user's message")
    session_id: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Unique session identifier for conversation continuity",
    )


class ChatResponse(BaseModel):
    reply: str = Field(..., description="The assistant's final reply for this message")
    session_id: str
    is_error: bool = Field(False, description="True when the reply is a sanitized error")
    bookings_changed: bool = Field(
        False, description="True when this turn touched a booking; re-fetch history",
    )


class ManualBookingRequest(BaseModel):
    start_time: datetime = Field(..., description="Appointment start; naive values are server-local")
    email: str = Field(..., min_length=3, max_length=254)
    name: str = Field("Patient", min_length=1, max_length=200)
    notes: str | None = Field(None, max_length=500)


class BookingOutcomeResponse(BaseModel):
    success: bool
    message: str
    data: dict | None = None


class AppointmentList(BaseModel):
    appointments: list[Appointment]


class CancelResponse(BaseModel):
    cancelled: bool
    booking_id: int


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "dentalcare-booking-agent"
