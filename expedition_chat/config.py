"""Centralized configuration for the Expedition Chat service.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/curated-ascents/<VARIABLE_NAME>``.

Unlike the server settings, the DeepSeek API key is *optional* at import
time: a missing key is represented as ``None`` on :class:`Settings` and the
chat orchestrator answers with a configuration error instead of crashing
the whole process.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/curated-ascents/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _optional_secret(name: str) -> str | None:
    """Return a secret from env-var or SSM, or ``None`` when it is not set."""
    # 1. Env var / .env (always checked first, allows local override)
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    # 2. SSM Parameter Store (only on AWS)
    if _ON_AWS:
        return _get_ssm_parameter(name)

    return None


def _env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes")


# ── Settings value object ────────────────────────────────────────────


@dataclass(frozen=True)
class Settings:
    """Everything the orchestrator and the HTTP layer need to run.

    Built once at start-up by :func:`load_settings` and passed explicitly to
    the components that need it, so tests can construct their own instance
    without touching the process environment.
    """

    deepseek_api_key: str | None = None
    deepseek_base_url: str = "https://api.deepseek.com/v1"
    deepseek_model: str = "deepseek-chat"
    temperature: float = 0.7
    request_timeout_seconds: float = 60.0
    max_retries: int = 0
    web_max_tokens: int = 2000
    whatsapp_max_tokens: int = 1500
    max_tool_iterations: int = 10
    redact_output_leaks: bool = False

    server_host: str = "0.0.0.0"
    server_port: int = 8000
    cors_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"],
    )

    @property
    def ai_configured(self) -> bool:
        return bool(self.deepseek_api_key)

    def max_tokens_for(self, source: str) -> int:
        """Shorter completions for WhatsApp, where replies are read on a phone."""
        return self.whatsapp_max_tokens if source == "whatsapp" else self.web_max_tokens


def load_settings() -> Settings:
    """Resolve :class:`Settings` from the environment (and SSM on AWS)."""
    settings = Settings(
        deepseek_api_key=_optional_secret("DEEPSEEK_API_KEY"),
        deepseek_base_url=os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com/v1"),
        deepseek_model=os.getenv("DEEPSEEK_MODEL", "deepseek-chat"),
        temperature=float(os.getenv("DEEPSEEK_TEMPERATURE", "0.7")),
        request_timeout_seconds=float(os.getenv("DEEPSEEK_TIMEOUT_SECONDS", "60")),
        max_retries=int(os.getenv("DEEPSEEK_MAX_RETRIES", "0")),
        max_tool_iterations=int(os.getenv("MAX_TOOL_ITERATIONS", "10")),
        redact_output_leaks=_env_bool("OUTPUT_GUARDRAILS_REDACT"),
        server_host=os.getenv("SERVER_HOST", "0.0.0.0"),
        server_port=int(os.getenv("SERVER_PORT", "8000")),
        cors_origins=os.getenv(
            "CORS_ORIGINS",
            "http://localhost:3000,http://localhost:5173",
        ).split(","),
    )
    if not settings.ai_configured:
        logger.warning("DEEPSEEK_API_KEY is not set, chat requests will be refused")
    return settings
