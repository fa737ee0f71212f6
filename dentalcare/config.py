"""Centralized configuration for the DentalCare booking assistant.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/dentalcare/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store, or ``None``."""
    try:
        import boto3  # noqa: PLC0415

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/dentalcare/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /dentalcare/{name} (AWS)."
    )


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")

# Anti-loop guard: how many chained tool rounds one user message may trigger
MAX_TOOL_ROUNDS: int = int(os.getenv("MAX_TOOL_ROUNDS", "5"))

# ── Cal.com ─────────────────────────────────────────────────────────
CAL_API_KEY: str = _require_env("CAL_API_KEY")
CAL_EVENT_TYPE_ID: int = int(_require_env("CAL_EVENT_TYPE_ID"))
CAL_BASE_URL: str = os.getenv("CAL_BASE_URL", "https://api.cal.com/v1")
CLINIC_TIMEZONE: str = os.getenv("CLINIC_TIMEZONE", "Europe/London")

# ── Auth service ────────────────────────────────────────────────────
AUTH_API_URL: str = os.getenv("AUTH_API_URL", "http://localhost:5000/api")
CURRENT_USER_FILE: Path = Path(
    os.getenv("CURRENT_USER_FILE", str(Path.home() / ".dentalcare" / "current_user.json"))
)

# ── Email ───────────────────────────────────────────────────────────
SMTP_HOST: str | None = os.getenv("SMTP_HOST") or None
SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME: str | None = os.getenv("SMTP_USERNAME") or None
SMTP_PASSWORD: str | None = os.getenv("SMTP_PASSWORD") or None
EMAIL_FROM: str = os.getenv("EMAIL_FROM", "DentalCare Hospital <no-reply@dentalcare.example>")

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
