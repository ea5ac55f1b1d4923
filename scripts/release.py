"""
Release phase for the dealership: bring the schema to head, then seed.

Seeding is idempotent (roles, permissions, the bootstrap admin). Demo inventory is
only added when SEED_DEMO_DATA=1 and the cars table is still empty.

Usage:
  python scripts/release.py [--skip-seed]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def release_database_url() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL must be set for a release.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Production releases need a Postgres DATABASE_URL, got sqlite.")
    return db_url


def migrate(db_url: str, revision: str = "head") -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, revision)


def inventory_summary(db_url: str) -> dict[str, int]:
    from sqlalchemy import func

    from app.dealership.modules.inventory.models import Car
    from scripts._db_utils import script_session

    with script_session(db_url) as s:
        return {status: int(n) for status, n in s.query(Car.status, func.count()).group_by(Car.status).all()}


def run_release(*, seed: bool = True) -> None:
    db_url = release_database_url()
    print("Release: upgrading schema to head", flush=True)
    migrate(db_url)

    if seed:
        from scripts import init_db

        demo = (os.environ.get("SEED_DEMO_DATA") or "").strip() == "1"
        print(f"Release: seeding roles and admin (demo inventory: {'yes' if demo else 'no'})", flush=True)
        init_db.seed_only(database_url=db_url, demo=demo)

    counts = inventory_summary(db_url)
    listed = ", ".join(f"{k.lower()}={v}" for k, v in sorted(counts.items())) or "empty"
    print(f"Release: inventory {listed}", flush=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run dealership migrations and seed data.")
    parser.add_argument("--skip-seed", action="store_true", help="Only run migrations.")
    args = parser.parse_args()
    run_release(seed=not args.skip_seed)


if __name__ == "__main__":
    main()
