"""Classification of model-dialogue failures.

The orchestrator retries only transient upstream failures and shows users a
sanitized message for everything else.  Both decisions go through
:func:`classify_error`, which looks at exception types and HTTP status codes
first and only falls back to message markers for errors that carry neither.
"""

from __future__ import annotations

import enum

import anthropic
import httpx

TRANSIENT_STATUS_CODES = frozenset({503, 529})
CONFIGURATION_STATUS_CODES = frozenset({401, 403})
_TRANSIENT_MARKERS = ("503", "overloaded", "UNAVAILABLE")


class ErrorKind(enum.Enum):
    TRANSIENT = "transient"
    CONFIGURATION = "configuration"
    CONNECTIVITY = "connectivity"
    UNKNOWN = "unknown"


class ModelUnavailableError(Exception):
    """The model stayed overloaded for every allowed attempt."""


class SessionBusyError(Exception):
    """A message was submitted while the session still had a turn in flight."""


USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.TRANSIENT: "I'm currently experiencing high traffic. Please try again in a moment.",
    ErrorKind.CONFIGURATION: "Configuration Error: Invalid model API key.",
    ErrorKind.CONNECTIVITY: "Connection Error: Could not reach the server.",
    ErrorKind.UNKNOWN: "An unexpected error occurred. Please try again.",
}


def classify_error(exc: BaseException) -> ErrorKind:
    if isinstance(exc, ModelUnavailableError):
        return ErrorKind.TRANSIENT
    if isinstance(exc, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return ErrorKind.CONFIGURATION
    # APITimeoutError is a subclass of APIConnectionError
    if isinstance(exc, (anthropic.APIConnectionError, httpx.TransportError, ConnectionError)):
        return ErrorKind.CONNECTIVITY

    status = getattr(exc, "status_code", None)
    if status in TRANSIENT_STATUS_CODES:
        return ErrorKind.TRANSIENT
    if status in CONFIGURATION_STATUS_CODES:
        return ErrorKind.CONFIGURATION
    if status is not None:
        return ErrorKind.UNKNOWN

    # Untyped errors: the upstream message is all we have
    text = str(exc)
    if any(marker in text for marker in _TRANSIENT_MARKERS):
        return ErrorKind.TRANSIENT
    if "api key" in text.lower():
        return ErrorKind.CONFIGURATION
    return ErrorKind.UNKNOWN


def user_facing_message(exc: BaseException) -> str:
    """Sanitized transcript text for a failed turn."""
    return USER_MESSAGES[classify_error(exc)]
