"""Patient email notifications.

Sends through SMTP when ``SMTP_HOST`` is configured.  Without it the message
is written to the log instead, which is how local development and the test
suite see confirmations.

Delivery is best-effort: callers decide what a failure means.  The
scheduling client, for one, never lets a failed confirmation undo a booking.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from datetime import datetime
from email.message import EmailMessage

from dentalcare.config import EMAIL_FROM, SMTP_HOST, SMTP_PASSWORD, SMTP_PORT, SMTP_USERNAME

logger = logging.getLogger(__name__)

CLINIC_NAME = "DentalCare Hospital"

_CONFIRMATION_BODY = """Dear {name},

Your appointment has been successfully booked.

Date & Time: {when}
Location: {clinic}

Please arrive 10 minutes early.

Regards,
DentalCare Team
"""


def _friendly_time(iso_str: str) -> str:
    """Render an ISO 8601 timestamp for humans, or return it unchanged."""
    try:
        dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
    except ValueError:
        return iso_str
    return dt.strftime("%a %d %b %Y at %H:%M %Z").strip()


class Notifier:
    """Email sender with an SMTP transport and a log-only fallback."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        sender: str | None = None,
    ):
        self._host = host if host is not None else SMTP_HOST
        self._port = port or SMTP_PORT
        self._username = username if username is not None else SMTP_USERNAME
        self._password = password if password is not None else SMTP_PASSWORD
        self._sender = sender or EMAIL_FROM

    def send_confirmation(self, to: str, name: str, start_time: str) -> bool:
        """Tell *to* that their appointment at *start_time* is booked."""
        logger.info("Preparing confirmation email for %s", to)
        body = _CONFIRMATION_BODY.format(
            name=name, when=_friendly_time(start_time), clinic=CLINIC_NAME,
        )
        return self._send(to, f"Appointment Confirmation - {CLINIC_NAME}", body)

    def _send(self, to: str, subject: str, body: str) -> bool:
        if not self._host:
            logger.info("MOCK EMAIL to %s | %s\n%s", to, subject, body)
            return True

        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        with smtplib.SMTP(self._host, self._port, timeout=15) as smtp:
            smtp.starttls(context=ssl.create_default_context())
            if self._username and self._password:
                smtp.login(self._username, self._password)
            smtp.send_message(message)
        logger.info("Email '%s' sent to %s", subject, to)
        return True
