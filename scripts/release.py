#!/usr/bin/env python3
"""
Deploy step for FYNDR: bring the schema to head, then seed roles and the admin account.

Run before the web workers start (scripts/start.py calls run_release()).
Seeding never resets an existing admin password.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _database_url() -> str:
    url = (os.environ.get("DATABASE_URL") or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is not set; release needs the target database.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and url.startswith("sqlite"):
        raise RuntimeError("SQLite is not supported in production; point DATABASE_URL at Postgres.")
    return url


def _alembic_config(db_url: str):
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def migrate(db_url: str) -> None:
    from alembic import command

    command.upgrade(_alembic_config(db_url), "head")


def run_release() -> None:
    db_url = _database_url()

    print("[release] migrating schema to head", flush=True)
    migrate(db_url)

    print("[release] seeding roles, permissions and admin", flush=True)
    from scripts import init_db

    init_db.seed_only(database_url=db_url)
    print("[release] ok", flush=True)


def main() -> None:
    run_release()


if __name__ == "__main__":
    main()
