"""Booking tools the receptionist model can call, and their executor.

The model sees two tools, ``bookAppointment`` and ``checkAvailability``.
:class:`ToolExecutor` turns each invocation into a call against the
scheduling client and always answers with exactly one :class:`ToolResult`
per invocation.  Unknown tools, malformed arguments and exceptions inside a
tool all become error text the model can apologise about; nothing raises
out of :meth:`ToolExecutor.execute`.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from langchain_core.messages import ToolMessage
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from dentalcare.services.scheduling_client import SchedulingClient, get_scheduling_client

logger = logging.getLogger(__name__)

BOOK_APPOINTMENT = "bookAppointment"
CHECK_AVAILABILITY = "checkAvailability"

TOOL_NOT_FOUND = "Error: Tool not found."
AVAILABILITY_HINT = (
    "These are the currently booked slots. "
    "All other times between 9am and 5pm are available."
)

# RFC 5322-ish pattern
_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)


def validate_email(email: str) -> str | None:
    """Return an error message if *email* looks invalid, else ``None``."""
    if not email or not email.strip():
        return "No email address was provided. Please ask the patient for their email."
    email = email.strip()
    if not _EMAIL_RE.match(email):
        return (
            f'"{email}" does not look like a valid email address. '
            "Please ask the patient to double-check and provide a corrected email."
        )
    return None


# ── Argument records ─────────────────────────────────────────────────


class BookAppointmentArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date_time: str = Field(
        ...,
        alias="dateTime",
        description=(
            "The start time for the appointment in ISO 8601 format "
            '(e.g., 2024-03-25T10:00:00Z). Convert user relative time (like "tomorrow '
            'at 2pm") to this format based on current date.'
        ),
    )
    name: str = Field(..., min_length=1, description="The full name of the patient.")
    email: str = Field(..., description="The email address of the patient.")
    notes: str | None = Field(
        None,
        description="Any specific reason for the visit (e.g., cleaning, toothache).",
    )

    @field_validator("date_time")
    @classmethod
    def _must_be_iso_8601(cls, value: str) -> str:
        try:
            datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError(f"{value!r} is not an ISO 8601 date-time") from exc
        return value


class CheckAvailabilityArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")


TOOL_DECLARATIONS: list[dict[str, Any]] = [
    {
        "name": BOOK_APPOINTMENT,
        "description": (
            "Book a dental appointment for a patient. PRE-CONDITION: You must have "
            "the patient's Name, Email, and Desired Date/Time."
        ),
        "input_schema": BookAppointmentArgs.model_json_schema(by_alias=True),
    },
    {
        "name": CHECK_AVAILABILITY,
        "description": (
            "Check current existing appointments to see busy slots. "
            "Use this before booking to ensure the slot is free."
        ),
        "input_schema": {"type": "object", "properties": {}},
    },
]


# ── Invocation / result records ──────────────────────────────────────


@dataclass(frozen=True)
class ToolInvocation:
    call_id: str
    name: str
    args: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_tool_call(cls, tool_call: Mapping[str, Any]) -> ToolInvocation:
        """Build from a LangChain ``ToolCall`` dict (``id``/``name``/``args``)."""
        return cls(
            call_id=tool_call.get("id") or "",
            name=tool_call.get("name") or "",
            args=tool_call.get("args") or {},
        )


@dataclass(frozen=True)
class ToolResult:
    call_id: str
    name: str
    payload: str

    @property
    def is_error(self) -> bool:
        return self.payload.startswith("Error")

    def to_message(self) -> ToolMessage:
        return ToolMessage(content=self.payload, tool_call_id=self.call_id, name=self.name)


def _summarize_validation(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "arguments"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


# ── Executor ─────────────────────────────────────────────────────────


class ToolExecutor:
    """Dispatch model tool invocations to the scheduling client."""

    def __init__(self, client: SchedulingClient | None = None):
        self._client = client
        self._handlers: dict[str, Callable[[Mapping[str, Any]], str]] = {
            BOOK_APPOINTMENT: self._book_appointment,
            CHECK_AVAILABILITY: self._check_availability,
        }

    @property
    def client(self) -> SchedulingClient:
        if self._client is None:
            self._client = get_scheduling_client()
        return self._client

    def execute(self, invocations: Sequence[ToolInvocation]) -> list[ToolResult]:
        """Run every invocation in order; one result per invocation, always."""
        return [self._execute_one(invocation) for invocation in invocations]

    def _execute_one(self, invocation: ToolInvocation) -> ToolResult:
        logger.info("Tool call: %s %s", invocation.name, dict(invocation.args))
        handler = self._handlers.get(invocation.name)
        if handler is None:
            logger.warning("Unknown tool called: %s", invocation.name)
            return ToolResult(invocation.call_id, invocation.name, TOOL_NOT_FOUND)

        try:
            payload = handler(invocation.args)
        except ValidationError as exc:
            logger.warning("Rejected %s arguments: %s", invocation.name, exc)
            payload = f"Error: Invalid arguments for {invocation.name}. {_summarize_validation(exc)}."
        except Exception as exc:
            logger.exception("Tool %s failed", invocation.name)
            payload = f"Error executing tool: {exc}"

        result = ToolResult(invocation.call_id, invocation.name, payload)
        if result.is_error:
            logger.warning("Tool %s returned an error: %s", invocation.name, payload)
        return result

    # ── Tools ────────────────────────────────────────────────────────

    def _book_appointment(self, raw_args: Mapping[str, Any]) -> str:
        args = BookAppointmentArgs.model_validate(raw_args)
        email_error = validate_email(args.email)
        if email_error:
            return f"Error: Failed to book. {email_error}"

        email = args.email.strip()
        outcome = self.client.create_appointment(args.date_time, args.name, email, args.notes)
        if outcome.success:
            return (
                f"Success: Appointment booked for {args.date_time}. "
                f"Confirmation email sent to {email}."
            )
        return f"Error: Failed to book. {outcome.error or 'Unknown error'}."

    def _check_availability(self, raw_args: Mapping[str, Any]) -> str:
        CheckAvailabilityArgs.model_validate(raw_args)
        busy_slots = [
            {"start": a.start_time, "end": a.end_time}
            for a in self.client.list_appointments()
        ]
        return json.dumps({"busySlots": busy_slots, "message": AVAILABILITY_HINT})
