"""Simple configuration management.

This module defines a ``Settings`` class that reads configuration
values from environment variables and provides sensible defaults.
``.env`` support is implemented by loading files from the repository
root in a defined order.  You can override any value via environment
variables.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from dotenv import load_dotenv, find_dotenv

# -----------------------------------------------------------------------------
# .env loading
#
# Prefer a .env in the repository root but allow fallback to whatever
# python-dotenv discovers from the current working directory.  Files are
# loaded in order without overriding already-set variables.

_THIS_FILE = Path(__file__).resolve()
_REPO_ROOT = _THIS_FILE.parents[2]
_ROOT_ENV = _REPO_ROOT / ".env"

_candidate_envs: list[str] = []
if _ROOT_ENV.exists():
    _candidate_envs.append(str(_ROOT_ENV))

_FOUND_ENV = find_dotenv(usecwd=True)
if _FOUND_ENV and _FOUND_ENV not in _candidate_envs:
    _candidate_envs.append(_FOUND_ENV)

for _env_path in _candidate_envs:
    load_dotenv(dotenv_path=_env_path, override=False)


class Settings(BaseSettings):
    """Application settings.

    Values are loaded from the environment with sensible defaults.  Any
    attribute defined here can be overridden by setting the corresponding
    environment variable.
    """

    model_config = SettingsConfigDict(
        env_file=tuple(_candidate_envs) if _candidate_envs else (".env",),
        case_sensitive=True,
        extra="allow",
    )

    # API Settings
    PROJECT_NAME: str = "Receipt Item Ledger"
    ENVIRONMENT: str = Field(default="development")

    # Database
    DATABASE_URL: Optional[str] = Field(default=None)
    # Dev DB fallback (fail fast by default)
    DB_DEV_FALLBACK_SQLITE: bool = Field(default=False)
    SQL_ECHO: bool = Field(default=False)

    # Redis / Dramatiq
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    DRAMATIQ_BROKER_URL: Optional[str] = Field(default=None)
    CATEGORIZATION_CRON_ENABLED: bool = Field(default=False)
    CATEGORIZATION_CRON_INTERVAL_SECONDS: int = Field(default=3600)
    # Comma separated user scopes the cron loop enqueues the rule job for
    CATEGORIZATION_CRON_USERS: Optional[str] = Field(default=None)

    # Classifier oracle (Ollama compatible /api/generate endpoint)
    OLLAMA_BASE_URL: str = Field(default="http://127.0.0.1:11434")
    OLLAMA_MODEL: str = Field(default="llama3")
    ORACLE_TIMEOUT_SECONDS: float = Field(default=300.0)

    # Categorization
    CATEGORIZATION_RULES_PATH: Optional[str] = Field(default=None)
    ITEM_NAME_MAX_LENGTH: int = Field(default=200)

    # Reconciliation
    RECONCILE_MAX_ATTEMPTS: int = Field(default=3)
    RECONCILE_BACKOFF_BASE_MS: int = Field(default=100)

    # Auth (issuance is handled upstream; only the caller's scope is read)
    DEV_AUTH_BYPASS: bool = Field(default=False)
    DEV_USER_ID: str = Field(default="user_dev123")

    # CORS
    BACKEND_CORS_ORIGINS: list[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
    )

    # Sentry
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.0)
    SENTRY_PROFILES_SAMPLE_RATE: float = Field(default=0.0)
    SENTRY_RELEASE: Optional[str] = Field(default=None)


# Instantiate global settings
settings = Settings()


def get_cron_user_list() -> list[str]:
    """Return the user scopes the categorization cron loop should cover."""
    if not settings.CATEGORIZATION_CRON_USERS:
        return []
    return [u.strip() for u in settings.CATEGORIZATION_CRON_USERS.split(",") if u.strip()]
