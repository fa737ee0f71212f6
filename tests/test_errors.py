"""Tests for model-error classification and user-facing messages."""

from __future__ import annotations

import anthropic
import httpx
import pytest

from dentalcare.errors import (
    USER_MESSAGES,
    ErrorKind,
    ModelUnavailableError,
    classify_error,
    user_facing_message,
)

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _status_error(cls, status: int):
    response = httpx.Response(status, request=_REQUEST, json={"error": {"message": "x"}})
    return cls("upstream said no", response=response, body=None)


class _StatusError(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"status {status_code}")
        self.status_code = status_code


class TestClassifyError:
    def test_authentication_error_is_configuration(self):
        exc = _status_error(anthropic.AuthenticationError, 401)
        assert classify_error(exc) is ErrorKind.CONFIGURATION

    def test_permission_denied_is_configuration(self):
        exc = _status_error(anthropic.PermissionDeniedError, 403)
        assert classify_error(exc) is ErrorKind.CONFIGURATION

    def test_internal_server_503_is_transient(self):
        exc = _status_error(anthropic.InternalServerError, 503)
        assert classify_error(exc) is ErrorKind.TRANSIENT

    @pytest.mark.parametrize("status", [503, 529])
    def test_overload_status_codes_are_transient(self, status):
        assert classify_error(_StatusError(status)) is ErrorKind.TRANSIENT

    def test_other_status_codes_are_unknown(self):
        assert classify_error(_StatusError(400)) is ErrorKind.UNKNOWN

    def test_api_connection_error_is_connectivity(self):
        exc = anthropic.APIConnectionError(request=_REQUEST)
        assert classify_error(exc) is ErrorKind.CONNECTIVITY

    def test_httpx_transport_error_is_connectivity(self):
        assert classify_error(httpx.ConnectError("refused")) is ErrorKind.CONNECTIVITY

    def test_model_unavailable_is_transient(self):
        assert classify_error(ModelUnavailableError("gave up")) is ErrorKind.TRANSIENT

    @pytest.mark.parametrize(
        "message",
        ["503 Service Unavailable", "Model is overloaded", "UNAVAILABLE: try later"],
    )
    def test_untyped_overload_messages_are_transient(self, message):
        assert classify_error(RuntimeError(message)) is ErrorKind.TRANSIENT

    def test_untyped_api_key_message_is_configuration(self):
        assert classify_error(RuntimeError("Invalid API key provided")) is ErrorKind.CONFIGURATION

    def test_anything_else_is_unknown(self):
        assert classify_error(KeyError("messages")) is ErrorKind.UNKNOWN


class TestUserFacingMessage:
    def test_every_kind_has_a_message(self):
        assert set(USER_MESSAGES) == set(ErrorKind)

    def test_transient_message(self):
        assert user_facing_message(ModelUnavailableError("x")) == (
            "I'm currently experiencing high traffic. Please try again in a moment."
        )

    def test_unknown_message_hides_internals(self):
        message = user_facing_message(RuntimeError("secret stack detail"))
        assert "secret" not in message
        assert message == USER_MESSAGES[ErrorKind.UNKNOWN]
