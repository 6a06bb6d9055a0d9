"""
Release phase: migrate, verify, seed.

- Refuses to run without DATABASE_URL, and refuses SQLite when ENV=production.
- Runs `alembic upgrade head`.
- Checks every table the models declare exists afterwards (catches a migration that was never written).
- Seeds the librarian account unless --no-seed is given (idempotent; never overwrites a password).

Usage:
  python scripts/release.py [--no-seed]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _require_env(name: str) -> str:
    v = (os.environ.get(name) or "").strip()
    if not v:
        raise RuntimeError(f"Missing required environment variable {name}.")
    return v


def migrate(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    # ConfigParser interpolation: a literal % in a password must be doubled.
    cfg.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))
    command.upgrade(cfg, "head")


def missing_tables(db_url: str) -> list[str]:
    from sqlalchemy import inspect

    from app.murrs.db import make_engine
    from app.murrs.models import Base

    engine = make_engine(db_url)
    try:
        present = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    return sorted(set(Base.metadata.tables) - present)


def run_release(*, seed: bool = True) -> None:
    db_url = _require_env("DATABASE_URL")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to run release on sqlite DATABASE_URL in production. Set DATABASE_URL to Postgres.")

    print("=== MURRS release start ===", flush=True)
    print(f"ENV={env or '(unset)'}", flush=True)

    print("Running Alembic migrations...", flush=True)
    migrate(db_url)
    missing = missing_tables(db_url)
    if missing:
        raise RuntimeError(f"Schema is missing tables after migration: {', '.join(missing)}")
    print("Migrations complete.", flush=True)

    if seed:
        print("Seeding librarian account (idempotent)...", flush=True)
        from scripts import init_db

        init_db.seed_only(database_url=db_url)
        print("Seed complete.", flush=True)
    print("=== MURRS release done ===", flush=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run MURRS migrations and seed the librarian account.")
    parser.add_argument("--no-seed", action="store_true", help="only migrate")
    args = parser.parse_args()
    run_release(seed=not args.no_seed)


if __name__ == "__main__":
    main()
