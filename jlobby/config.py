"""
LobbySettings — the one configuration object for a jlobby process.

Values come from JLOBBY_* environment variables (or a .env file) when the
object is built, and the object is then handed to LobbyService explicitly.
Protocol code never reads the environment itself.

Environment names are normalised the way deployments spell them:

  local, dev, development  → local
  stage, staging           → staging
  prod, production         → prod
  anything else            → local

effective_log_level follows the environment (local: DEBUG, staging: INFO,
prod: WARNING) unless JLOBBY_LOG_LEVEL is set.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from jlobby.core.retry import RetryPolicy

Environment = Literal["local", "staging", "prod"]

_ENV_ALIASES: dict[str, Environment] = {
    "local": "local",
    "dev": "local",
    "development": "local",
    "stage": "staging",
    "staging": "staging",
    "prod": "prod",
    "production": "prod",
}

_DEFAULT_LOG_LEVELS: dict[Environment, str] = {
    "local": "DEBUG",
    "staging": "INFO",
    "prod": "WARNING",
}


class LobbySettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="JLOBBY_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    environment: Environment = "local"
    log_level: str | None = None

    # Callers without an app attestation token are rejected when True.
    enforce_app_check: bool = True

    users_keyspace: str = "users"
    usernames_keyspace: str = "usernames"
    queue_keyspace: str = "quick_matchmaking_queue"
    presence_keyspace: str = "presence"

    username_attempts: int = Field(default=3, ge=1)
    identity_attempts: int = Field(default=3, ge=1)
    identity_retry_delay: float = Field(default=0.5, ge=0)
    leave_attempts: int = Field(default=10, ge=1)
    leave_retry_delay: float = Field(default=0.5, ge=0)
    cas_max_retries: int = Field(default=10, ge=1)

    @field_validator("environment", mode="before")
    @classmethod
    def _normalise_environment(cls, v: object) -> str:
        if not isinstance(v, str):
            return "local"
        return _ENV_ALIASES.get(v.strip().lower(), "local")

    @property
    def effective_log_level(self) -> str:
        if self.log_level:
            return self.log_level.upper()
        return _DEFAULT_LOG_LEVELS[self.environment]

    @property
    def username_policy(self) -> RetryPolicy:
        """Reservation phase: no pause between attempts."""
        return RetryPolicy(attempts=self.username_attempts)

    @property
    def identity_policy(self) -> RetryPolicy:
        return RetryPolicy(
            attempts=self.identity_attempts, delay=self.identity_retry_delay
        )

    @property
    def leave_policy(self) -> RetryPolicy:
        return RetryPolicy(attempts=self.leave_attempts, delay=self.leave_retry_delay)
