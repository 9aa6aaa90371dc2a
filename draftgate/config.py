"""Runtime settings for the draft lifecycle and safety gating core."""

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)

APP_NAME = "draftgate"

DEFAULT_DECISION_ROLES: Tuple[str, ...] = ("doctor", "admin")

# Environments allowed to run with a generated, process-local JWT secret.
LOCAL_ENVIRONMENTS = frozenset({"development", "dev", "local", "test"})


def get_int_env(name: str, default: Optional[int] = None) -> Optional[int]:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer; got {raw!r}") from exc


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a number; got {raw!r}") from exc


def _get_roles_env(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    roles = tuple(part.strip().lower() for part in raw.split(",") if part.strip())
    return roles or default


def _require_jwt_secret(environment: str) -> str:
    """Return the configured token secret or fail loudly.

    Local environments get a random secret for the life of the process;
    everywhere else a missing secret stops start-up.
    """

    secret = (os.getenv("DRAFTGATE_JWT_SECRET") or "").strip()
    if secret:
        return secret
    if environment in LOCAL_ENVIRONMENTS:
        logger.warning("jwt_secret_generated", environment=environment)
        return secrets.token_urlsafe(48)
    raise RuntimeError(
        "JWT signing secret is not configured. Provide DRAFTGATE_JWT_SECRET, "
        "or set DRAFTGATE_ENV=development to use a throwaway local secret."
    )


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one process."""

    stale_after_hours: float = 24.0
    min_rejection_reason_chars: int = 5
    decision_roles: Tuple[str, ...] = DEFAULT_DECISION_ROLES
    generation_url: Optional[str] = None
    generation_timeout: float = 30.0
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    log_level: str = "INFO"
    environment: str = "production"

    def is_decision_role(self, role: Optional[str]) -> bool:
        if not role:
            return False
        return role.strip().lower() in self.decision_roles


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the active settings derived from the environment."""

    environment = os.getenv("DRAFTGATE_ENV", "production").strip().lower()
    generation_url = os.getenv("DRAFTGATE_GENERATION_URL") or None
    return Settings(
        stale_after_hours=_get_float_env("DRAFTGATE_STALE_AFTER_HOURS", 24.0),
        min_rejection_reason_chars=get_int_env("DRAFTGATE_MIN_REJECTION_REASON_CHARS", 5),
        decision_roles=_get_roles_env("DRAFTGATE_DECISION_ROLES", DEFAULT_DECISION_ROLES),
        generation_url=generation_url.rstrip("/") if generation_url else None,
        generation_timeout=_get_float_env("DRAFTGATE_GENERATION_TIMEOUT", 30.0),
        jwt_secret=_require_jwt_secret(environment),
        jwt_algorithm=os.getenv("DRAFTGATE_JWT_ALGORITHM", "HS256"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        environment=environment,
    )


__all__ = ["APP_NAME", "DEFAULT_DECISION_ROLES", "LOCAL_ENVIRONMENTS", "Settings", "get_int_env", "get_settings"]
