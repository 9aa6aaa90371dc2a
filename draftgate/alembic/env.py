"""Alembic environment for draftgate."""

from __future__ import annotations

from alembic import context
import sqlalchemy as sa
from sqlalchemy import pool

from draftgate.db.config import DatabaseSettings, get_database_settings
from draftgate.db.models import Base

config = context.config
configured_url = config.get_main_option("sqlalchemy.url")
settings = DatabaseSettings(url=configured_url) if configured_url else get_database_settings()
config.set_main_option("sqlalchemy.url", settings.url)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""

    context.configure(
        url=settings.url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""

    engine = sa.create_engine(settings.url, poolclass=pool.NullPool, **settings.engine_options(pooled=False))

    with engine.begin() as connection:
        if settings.is_postgres:
            connection.execute(sa.text("SET TIME ZONE 'UTC'"))
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            transaction_per_migration=True,
        )
        context.run_migrations()


def run_migrations() -> None:
    if context.is_offline_mode():
        run_migrations_offline()
    else:
        run_migrations_online()


run_migrations()
