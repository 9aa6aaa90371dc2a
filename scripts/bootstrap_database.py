#!/usr/bin/env python3
"""Create or upgrade the draftgate database schema with Alembic."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from draftgate.db.config import get_database_settings  # noqa: E402

ALEMBIC_DIR = ROOT / "draftgate" / "alembic"


def build_config(database_url: str) -> Config:
    cfg = Config(str(ALEMBIC_DIR / "alembic.ini"))
    cfg.set_main_option("script_location", str(ALEMBIC_DIR))
    cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Apply draftgate migrations to the configured database.",
    )
    parser.add_argument(
        "--database-url",
        default=os.getenv("DRAFTGATE_DATABASE_URL") or None,
        help="SQLAlchemy URL (default: resolved from DRAFTGATE_DATABASE_URL / DATABASE_URL / DRAFTGATE_DB_PATH)",
    )
    parser.add_argument(
        "--revision",
        default="head",
        help="Target revision (default: %(default)s)",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    url = args.database_url or get_database_settings().url

    command.upgrade(build_config(url), args.revision)

    print(f"Database migrated to {args.revision} at {url}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
