"""CLI entry point for the DentalCare booking assistant.

A terminal stand-in for the patient and doctor dashboards, for development
and testing.  For production, use the FastAPI server (dentalcare/server.py).

Usage:
    python -m dentalcare.main                     # chat with the receptionist
    python -m dentalcare.main --debug chat        # chat, showing API calls
    python -m dentalcare.main login alice
    python -m dentalcare.main book 2026-03-02T10:00
    python -m dentalcare.main schedule            # doctors only
    python -m dentalcare.main cancel 1234         # doctors only
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from datetime import datetime

from dotenv import load_dotenv

from dentalcare.agent import create_orchestrator
from dentalcare.dashboards import DoctorDashboard, PatientDashboard, format_dt
from dentalcare.prompts import GREETING
from dentalcare.services.auth_client import AuthClient, AuthError, User
from dentalcare.services.scheduling_client import get_scheduling_client
from dentalcare.tools.booking import ToolExecutor

logger = logging.getLogger(__name__)

ASSISTANT_NAME = "Assistant"


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("dentalcare").setLevel(logging.DEBUG if debug else logging.INFO)


def _require_user(auth: AuthClient, role: str | None = None) -> User | None:
    user = auth.current_user()
    if user is None:
        print("You are not logged in. Run the 'login' command first.")
        return None
    if role and user.role != role:
        print(f"This command is only available to {role}s.")
        return None
    return user


def _print_appointments(appointments) -> None:
    if not appointments:
        print("No upcoming appointments.")
        return
    for a in appointments:
        who = ", ".join(f"{att.name or 'Unknown'} <{att.email or '?'}>" for att in a.attendees) or "N/A"
        print(f"  • [{a.id}] {format_dt(a.start_time)} – {format_dt(a.end_time)}  {who}  ({a.status or 'unknown'})")


# ── Commands ─────────────────────────────────────────────────────────


def cmd_chat(args, auth: AuthClient) -> int:
    client = get_scheduling_client()
    user = auth.current_user()
    dashboard = PatientDashboard(
        user if user and user.role == "patient" else None,
        client,
        create_orchestrator(executor=ToolExecutor(client)),
    )
    dashboard.refresh_history()
    logger.info("Started new session: %s", dashboard.session.session_id)

    print("\n" + "=" * 60)
    print("  DentalCare Assistant - CLI Chat")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new session.")
    print("=" * 60 + "\n")
    print(f"{ASSISTANT_NAME}: {GREETING}\n")

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            return 0

        if not user_input:
            continue
        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye! Have a great day!")
            return 0
        if user_input.lower() == "new":
            dashboard.reset_chat()
            print(f"\n>> New session started: {dashboard.session.thread_id[:8]}...\n")
            continue

        turn = dashboard.chat(user_input)
        prefix = "[error] " if turn.is_error else ""
        print(f"\n{ASSISTANT_NAME}: {prefix}{turn.text}\n")
        if dashboard.session.bookings_changed and dashboard.user is not None:
            print(f">> Booking history refreshed: {len(dashboard.history)} upcoming appointment(s).\n")


def cmd_register(args, auth: AuthClient) -> int:
    password = getpass.getpass("Password: ")
    user = auth.register(args.username, args.email, password, args.name, args.role)
    print(f"Registered {user.username} as a {user.role}. You can now log in.")
    return 0


def cmd_login(args, auth: AuthClient) -> int:
    password = getpass.getpass("Password: ")
    user = auth.login(args.username, password)
    print(f"Welcome, {user.name} ({user.role}).")
    return 0


def cmd_logout(args, auth: AuthClient) -> int:
    auth.logout()
    print("Logged out.")
    return 0


def cmd_forgot_password(args, auth: AuthClient) -> int:
    auth.forgot_password(args.identifier)
    print("A verification code has been sent. Use 'reset-password' to choose a new password.")
    return 0


def cmd_reset_password(args, auth: AuthClient) -> int:
    new_password = getpass.getpass("New password: ")
    auth.reset_password(args.identifier, args.otp, new_password)
    print("Password reset successfully. You can now log in.")
    return 0


def cmd_history(args, auth: AuthClient) -> int:
    user = _require_user(auth, "patient")
    if user is None:
        return 1
    dashboard = PatientDashboard(user, get_scheduling_client())
    _print_appointments(dashboard.refresh_history())
    return 0


def cmd_book(args, auth: AuthClient) -> int:
    user = _require_user(auth, "patient")
    if user is None:
        return 1
    try:
        start = datetime.fromisoformat(args.start)
    except ValueError:
        print(f"'{args.start}' is not a valid date/time (expected e.g. 2026-03-02T10:00).")
        return 1

    dashboard = PatientDashboard(user, get_scheduling_client())
    status = dashboard.book_manually(start, args.email)
    print(status.message)
    return 0 if status.success else 1


def cmd_schedule(args, auth: AuthClient) -> int:
    if _require_user(auth, "doctor") is None:
        return 1
    _print_appointments(DoctorDashboard(get_scheduling_client()).refresh())
    return 0


def cmd_cancel(args, auth: AuthClient) -> int:
    if _require_user(auth, "doctor") is None:
        return 1
    answer = input(f"Are you sure you want to cancel appointment {args.booking_id}? [y/N] ")
    if answer.strip().lower() not in ("y", "yes"):
        print("Kept.")
        return 0
    if DoctorDashboard(get_scheduling_client()).cancel(args.booking_id):
        print(f"Appointment {args.booking_id} cancelled.")
        return 0
    print(f"Could not cancel appointment {args.booking_id}.")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="DentalCare booking assistant CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("chat", help="Chat with the AI receptionist (default)")

    p = sub.add_parser("register", help="Create an account")
    p.add_argument("username")
    p.add_argument("email")
    p.add_argument("name")
    p.add_argument("--role", choices=["patient", "doctor"], default="patient")

    p = sub.add_parser("login", help="Log in and remember the user locally")
    p.add_argument("username")

    sub.add_parser("logout", help="Forget the logged-in user")

    p = sub.add_parser("forgot-password", help="Request a password-reset code")
    p.add_argument("identifier", help="Username or email")

    p = sub.add_parser("reset-password", help="Set a new password with a reset code")
    p.add_argument("identifier", help="Username or email")
    p.add_argument("otp", help="The 6-digit verification code")

    sub.add_parser("history", help="List your upcoming appointments (patients)")

    p = sub.add_parser("book", help="Book an appointment without the assistant (patients)")
    p.add_argument("start", help="Local start time, e.g. 2026-03-02T10:00")
    p.add_argument("--email", help="Attendee email (defaults to your account email)")

    sub.add_parser("schedule", help="List all upcoming appointments (doctors)")

    p = sub.add_parser("cancel", help="Cancel an appointment (doctors)")
    p.add_argument("booking_id", type=int)

    return parser


COMMANDS = {
    None: cmd_chat,
    "chat": cmd_chat,
    "register": cmd_register,
    "login": cmd_login,
    "logout": cmd_logout,
    "forgot-password": cmd_forgot_password,
    "reset-password": cmd_reset_password,
    "history": cmd_history,
    "book": cmd_book,
    "schedule": cmd_schedule,
    "cancel": cmd_cancel,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    load_dotenv()
    _configure_logging(debug=args.debug)

    auth = AuthClient()
    try:
        return COMMANDS[args.command](args, auth)
    except AuthError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
