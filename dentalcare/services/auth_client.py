"""Client for the clinic's user directory service.

The service owns credentials and OTP password resets; this module only
speaks its JSON API.  After a successful login the returned user record is
written to a small local JSON file so the "current user" can be read back
without a network call.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dentalcare.config import AUTH_API_URL, CURRENT_USER_FILE

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10.0

UserRole = Literal["doctor", "patient"]


class AuthError(Exception):
    """Raised when the auth service refuses a request or cannot be reached."""


class User(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., alias="_id")
    username: str
    email: str
    name: str
    role: UserRole


class CurrentUserStore:
    """Local key-value persistence for the logged-in user."""

    def __init__(self, path: Path | None = None):
        self._path = path or CURRENT_USER_FILE

    def save(self, user: User) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(user.model_dump_json(by_alias=True), encoding="utf-8")

    def load(self) -> User | None:
        try:
            return User.model_validate_json(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except ValidationError:
            logger.warning("Ignoring unreadable session file %s", self._path)
            return None

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


class AuthClient:
    def __init__(
        self,
        base_url: str | None = None,
        *,
        store: CurrentUserStore | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client = httpx.Client(
            base_url=base_url or AUTH_API_URL,
            timeout=REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )
        self._store = store or CurrentUserStore()

    def _post(self, path: str, body: dict[str, Any], fallback_error: str) -> dict[str, Any]:
        try:
            response = self._client.post(path, json=body)
        except httpx.HTTPError as exc:
            raise AuthError(f"Connection Error: Could not reach the server ({exc}).") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.status_code >= 400:
            raise AuthError(data.get("error") or fallback_error)
        return data

    def register(
        self,
        username: str,
        email: str,
        password: str,
        name: str,
        role: UserRole,
    ) -> User:
        data = self._post(
            "/register",
            {"username": username, "email": email, "password": password, "name": name, "role": role},
            "Registration failed",
        )
        return User.model_validate(data)

    def login(self, username: str, password: str) -> User:
        """Authenticate and remember the user locally."""
        data = self._post(
            "/login", {"username": username, "password": password}, "Login failed",
        )
        user = User.model_validate(data)
        self._store.save(user)
        logger.info("Logged in as %s (%s)", user.username, user.role)
        return user

    def forgot_password(self, identifier: str) -> None:
        """Ask the service to issue a reset OTP for a username or email."""
        self._post("/forgot-password", {"identifier": identifier}, "Failed to send OTP")

    def reset_password(self, identifier: str, otp: str, new_password: str) -> None:
        self._post(
            "/reset-password",
            {"identifier": identifier, "otp": otp, "newPassword": new_password},
            "Failed to reset password",
        )

    def current_user(self) -> User | None:
        return self._store.load()

    def logout(self) -> None:
        self._store.clear()
