"""Tests for the booking tools and the ToolExecutor."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from dentalcare.services.scheduling_client import Appointment, BookingOutcome, SchedulingClient
from dentalcare.tools.booking import (
    AVAILABILITY_HINT,
    BOOK_APPOINTMENT,
    CHECK_AVAILABILITY,
    TOOL_DECLARATIONS,
    TOOL_NOT_FOUND,
    ToolExecutor,
    ToolInvocation,
    validate_email,
)

_JANE = {"dateTime": "2026-03-02T10:00:00Z", "name": "Jane Doe", "email": "jane@x.com"}


def _appointment(i: int, start: str, end: str) -> Appointment:
    return Appointment.model_validate(
        {"id": i, "startTime": start, "endTime": end, "attendees": []}
    )


@pytest.fixture
def client() -> MagicMock:
    mock = MagicMock(spec=SchedulingClient)
    mock.create_appointment.return_value = BookingOutcome(success=True, data={"id": 1})
    mock.list_appointments.return_value = [
        _appointment(1, "2026-03-02T10:00:00Z", "2026-03-02T10:30:00Z"),
        _appointment(2, "2026-03-02T14:00:00Z", "2026-03-02T14:30:00Z"),
    ]
    return mock


@pytest.fixture
def executor(client) -> ToolExecutor:
    return ToolExecutor(client)


# ── Cardinality & correlation ────────────────────────────────────────


class TestCardinality:
    @pytest.mark.parametrize("count", [0, 1, 2, 5])
    def test_one_result_per_invocation(self, executor, count):
        names = [CHECK_AVAILABILITY, BOOK_APPOINTMENT, "sendFax"]
        invocations = [
            ToolInvocation(f"call-{i}", names[i % 3], _JANE if names[i % 3] == BOOK_APPOINTMENT else {})
            for i in range(count)
        ]
        results = executor.execute(invocations)
        assert len(results) == count
        assert [r.call_id for r in results] == [i.call_id for i in invocations]
        assert [r.name for r in results] == [i.name for i in invocations]

    def test_failing_tool_does_not_block_others(self, executor, client):
        client.list_appointments.side_effect = RuntimeError("calendar exploded")
        results = executor.execute([
            ToolInvocation("a", CHECK_AVAILABILITY),
            ToolInvocation("b", BOOK_APPOINTMENT, _JANE),
        ])
        assert results[0].payload == "Error executing tool: calendar exploded"
        assert results[1].payload.startswith("Success")

    def test_error_results_are_logged(self, executor, client, caplog):
        client.create_appointment.return_value = BookingOutcome(success=False, error="Slot taken")
        executor.execute([ToolInvocation("1", BOOK_APPOINTMENT, _JANE), ToolInvocation("2", CHECK_AVAILABILITY)])
        logged = [r.getMessage() for r in caplog.records if "returned an error" in r.getMessage()]
        assert logged == ["Tool bookAppointment returned an error: Error: Failed to book. Slot taken."]

    def test_builds_invocation_from_tool_call(self):
        invocation = ToolInvocation.from_tool_call(
            {"name": CHECK_AVAILABILITY, "args": {}, "id": "toolu_1", "type": "tool_call"}
        )
        assert invocation == ToolInvocation("toolu_1", CHECK_AVAILABILITY, {})

    def test_result_converts_to_tool_message(self, executor):
        [result] = executor.execute([ToolInvocation("toolu_9", CHECK_AVAILABILITY)])
        message = result.to_message()
        assert message.tool_call_id == "toolu_9"
        assert message.name == CHECK_AVAILABILITY
        assert message.content == result.payload


# ── Unknown tools ────────────────────────────────────────────────────


class TestUnknownTool:
    def test_unknown_tool_yields_error_result(self, executor):
        [result] = executor.execute([ToolInvocation("x", "deleteEverything", {"all": True})])
        assert result.payload == TOOL_NOT_FOUND
        assert result.is_error

    def test_unknown_tool_logs_warning(self, executor, caplog):
        executor.execute([ToolInvocation("x", "deleteEverything")])
        assert any("Unknown tool" in r.message for r in caplog.records)

    def test_empty_name_is_unknown(self, executor):
        [result] = executor.execute([ToolInvocation.from_tool_call({"args": {}})])
        assert result.payload == TOOL_NOT_FOUND


# ── bookAppointment ──────────────────────────────────────────────────


class TestBookAppointment:
    def test_success_message_echoes_time_and_email(self, executor, client):
        [result] = executor.execute([ToolInvocation("1", BOOK_APPOINTMENT, {**_JANE, "notes": "cleaning"})])
        assert result.payload == (
            "Success: Appointment booked for 2026-03-02T10:00:00Z. "
            "Confirmation email sent to jane@x.com."
        )
        client.create_appointment.assert_called_once_with(
            "2026-03-02T10:00:00Z", "Jane Doe", "jane@x.com", "cleaning",
        )

    def test_provider_failure_message(self, executor, client):
        client.create_appointment.return_value = BookingOutcome(
            success=False, error="Internal booking failure",
        )
        [result] = executor.execute([ToolInvocation("1", BOOK_APPOINTMENT, _JANE)])
        assert result.payload == "Error: Failed to book. Internal booking failure."

    def test_missing_required_field_is_soft_error(self, executor, client):
        args = {"dateTime": "2026-03-02T10:00:00Z", "name": "Jane"}
        [result] = executor.execute([ToolInvocation("1", BOOK_APPOINTMENT, args)])
        assert result.payload.startswith("Error: Invalid arguments for bookAppointment")
        assert "email" in result.payload
        client.create_appointment.assert_not_called()

    def test_non_iso_datetime_is_rejected(self, executor, client):
        args = {**_JANE, "dateTime": "tomorrow at 10"}
        [result] = executor.execute([ToolInvocation("1", BOOK_APPOINTMENT, args)])
        assert result.is_error
        assert "ISO 8601" in result.payload
        client.create_appointment.assert_not_called()

    def test_invalid_email_is_rejected(self, executor, client):
        args = {**_JANE, "email": "jane-at-x"}
        [result] = executor.execute([ToolInvocation("1", BOOK_APPOINTMENT, args)])
        assert result.payload.startswith("Error: Failed to book.")
        assert "valid email" in result.payload
        client.create_appointment.assert_not_called()


# ── checkAvailability ────────────────────────────────────────────────


class TestCheckAvailability:
    def test_returns_busy_slots_json(self, executor):
        [result] = executor.execute([ToolInvocation("1", CHECK_AVAILABILITY)])
        data = json.loads(result.payload)
        assert data["busySlots"] == [
            {"start": "2026-03-02T10:00:00Z", "end": "2026-03-02T10:30:00Z"},
            {"start": "2026-03-02T14:00:00Z", "end": "2026-03-02T14:30:00Z"},
        ]
        assert data["message"] == AVAILABILITY_HINT

    def test_empty_schedule(self, executor, client):
        client.list_appointments.return_value = []
        [result] = executor.execute([ToolInvocation("1", CHECK_AVAILABILITY)])
        assert json.loads(result.payload)["busySlots"] == []

    def test_is_idempotent_without_bookings(self, scheduling_client):
        scheduling_client.create_appointment("2026-03-02T10:00:00Z", "Jane", "jane@x.com")
        executor = ToolExecutor(scheduling_client)
        first = executor.execute([ToolInvocation("1", CHECK_AVAILABILITY)])[0].payload
        second = executor.execute([ToolInvocation("2", CHECK_AVAILABILITY)])[0].payload
        assert first == second
        assert len(json.loads(first)["busySlots"]) == 1


# ── Declarations ─────────────────────────────────────────────────────


class TestToolDeclarations:
    def test_declares_both_tools(self):
        assert [d["name"] for d in TOOL_DECLARATIONS] == [BOOK_APPOINTMENT, CHECK_AVAILABILITY]

    def test_booking_schema_uses_wire_names(self):
        schema = TOOL_DECLARATIONS[0]["input_schema"]
        assert set(schema["properties"]) == {"dateTime", "name", "email", "notes"}
        assert set(schema["required"]) == {"dateTime", "name", "email"}


# ── Email validation ─────────────────────────────────────────────────


class TestValidateEmail:
    @pytest.mark.parametrize(
        "email",
        ["alice@example.com", "bob.jones@clinic.co.uk", "jane+tag@gmail.com", "UPPER@CASE.COM"],
    )
    def test_accepts_valid_emails(self, email: str):
        assert validate_email(email) is None

    @pytest.mark.parametrize(
        "email",
        ["", "   ", "not-an-email", "missing@", "@no-local.com", "double@@at.com", "no-tld@localhost"],
    )
    def test_rejects_invalid_emails(self, email: str):
        result = validate_email(email)
        assert result is not None
        assert "does not look like a valid email" in result or "No email" in result
