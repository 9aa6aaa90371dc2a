"""Database configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict

from platformdirs import user_data_dir

from draftgate.config import APP_NAME, get_int_env


# Environment variable, create_engine keyword.
POOL_ENV_OPTIONS = (
    ("DB_POOL_SIZE", "pool_size"),
    ("DB_MAX_OVERFLOW", "max_overflow"),
    ("DB_POOL_TIMEOUT", "pool_timeout"),
)


@dataclass(frozen=True)
class DatabaseSettings:
    """Resolved database configuration for the application."""

    url: str
    echo: bool = False

    def engine_options(self, *, pooled: bool = True) -> Dict[str, object]:
        """Return keyword arguments for :func:`sqlalchemy.create_engine`.

        ``pooled=False`` leaves out the queue-pool sizing so the options can be
        combined with ``NullPool`` for one-shot engines such as migrations.
        """

        options: Dict[str, object] = {"echo": self.echo, "future": True}
        if pooled:
            for env_name, option in POOL_ENV_OPTIONS:
                value = get_int_env(env_name)
                if value is not None:
                    options[option] = value
        if self.is_postgres:
            options["pool_pre_ping"] = True
        connect_args = self._connect_args()
        if connect_args:
            options["connect_args"] = connect_args
        return options

    def _connect_args(self) -> Dict[str, object]:
        if self.is_sqlite:
            return {"check_same_thread": False}
        if not self.is_postgres:
            return {}
        connect_args: Dict[str, object] = {}
        connect_timeout = get_int_env("PGCONNECT_TIMEOUT")
        if connect_timeout is not None:
            connect_args["connect_timeout"] = connect_timeout
        statements = ["timezone=UTC"]
        statement_timeout = get_int_env("STATEMENT_TIMEOUT_MS")
        if statement_timeout is not None:
            statements.append(f"statement_timeout={statement_timeout}")
        connect_args["options"] = " ".join(f"-c {value}" for value in statements)
        return connect_args

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith("postgresql") or self.url.startswith("postgres")


def _default_sqlite_path() -> Path:
    data_dir = Path(user_data_dir(APP_NAME, APP_NAME))
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir / "drafts.db"


def _normalise_sqlite_path(path: str | os.PathLike[str]) -> Path:
    resolved = Path(path).expanduser()
    if resolved.is_dir():
        resolved = resolved / "drafts.db"
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return resolved


def _normalise_postgres_url(url: str) -> str:
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
    """Return the active database settings derived from the environment."""

    url = os.getenv("DRAFTGATE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if url:
        return DatabaseSettings(url=_normalise_postgres_url(url))

    path_override = os.getenv("DRAFTGATE_DB_PATH")
    if path_override:
        db_path = _normalise_sqlite_path(path_override)
    else:
        db_path = _default_sqlite_path()

    return DatabaseSettings(url=f"sqlite:///{db_path}")


__all__ = ["DatabaseSettings", "get_database_settings"]
