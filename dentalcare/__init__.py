"""DentalCare booking assistant: an AI receptionist for a dental clinic.

Architecture Overview
=====================

Patients book appointments either through a manual form or by chatting with
a Claude-powered receptionist; doctors list and cancel the schedule.  All
appointments live in Cal.com.

The conversational path is a **LangGraph** state machine:

1. **assistant** — sends the dialogue to Claude with two bound tools,
   ``checkAvailability`` and ``bookAppointment``, retrying transient
   overload errors with linear backoff.
2. **tools** — the ToolExecutor runs each requested tool against the
   Cal.com client and returns exactly one result per call.

Routing: assistant → (tool calls?) → tools → assistant, until the model
answers in plain text or the per-message tool-round budget runs out.

Key Design Decisions
--------------------
- **Failures as data**: the scheduling client never raises to its callers
  (empty list, BookingOutcome, bool) and tool failures become error text
  for the model, so a broken tool never crashes a conversation.
- **Best-effort notifications**: a confirmation email that fails to send is
  logged; it never undoes an accepted booking.
- **Explicit sessions**: each Session carries its transcript and dialogue
  handle and is passed into the orchestrator, so many conversations can run
  side by side.
- **Dual Interface**: FastAPI server (production) + CLI (development).

Package Structure
-----------------
- ``dentalcare/agent.py`` — sessions, retry policy and the orchestrator graph
- ``dentalcare/errors.py`` — error classification and user-facing messages
- ``dentalcare/config.py`` — configuration from env vars / SSM
- ``dentalcare/prompts.py`` — receptionist system prompt
- ``dentalcare/dashboards.py`` — patient and doctor views
- ``dentalcare/server.py`` — FastAPI application
- ``dentalcare/main.py`` — CLI
- ``dentalcare/services/`` — Cal.com, auth, email and metrics clients
- ``dentalcare/tools/`` — tool declarations and the ToolExecutor
- ``dentalcare/api/`` — FastAPI routes and Pydantic schemas
"""
