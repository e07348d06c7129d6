#!/usr/bin/env python3
"""Release phase: migrate the schema to head, then seed roles and the default tenant.

Usage:
  python scripts/release.py
  python scripts/release.py --skip-seed
"""

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

from scripts import init_db  # noqa: E402


def release_database_url(environ: dict[str, str] | None = None) -> str:
    """DATABASE_URL for the release, refusing a missing value or sqlite in production."""
    environ = os.environ if environ is None else environ
    db_url = (environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL is not set; the release needs the production database.")
    env = (environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against sqlite with ENV=production.")
    return db_url


def migrate(db_url: str) -> None:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")


def run_release(*, seed: bool = True) -> None:
    db_url = release_database_url()
    print(f"[release] migrating ({os.environ.get('ENV') or 'development'})", flush=True)
    migrate(db_url)
    if seed:
        init_db.seed_only(database_url=db_url)
        print("[release] roles, default organization and admin seeded", flush=True)
    print("[release] done", flush=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run migrations and idempotent seeding.")
    parser.add_argument("--skip-seed", action="store_true", help="Only run migrations")
    args = parser.parse_args()
    run_release(seed=not args.skip_seed)


if __name__ == "__main__":
    main()
