#!/usr/bin/env python3
"""
Prepare the payment hub database: wait for it, apply Alembic migrations and
seed default fraud rules and notification templates.

Run on container start before the API process:

    python scripts/init_db.py [--skip-migrations] [--no-seed]
"""

import argparse
import os
import subprocess
import sys
import time

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import text  # noqa: E402
from sqlalchemy.exc import OperationalError, SQLAlchemyError  # noqa: E402

from core.dependencies import get_settings, init_settings  # noqa: E402
from db.seed import seed_defaults  # noqa: E402
from db.session import create_db_engine, get_session_context  # noqa: E402


def wait_for_db(database_url: str, attempts: int = 30, delay: float = 2) -> bool:
    engine = create_db_engine(database_url)
    try:
        for attempt in range(1, attempts + 1):
            try:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
            except OperationalError:
                print(f"⏳ Database not reachable ({attempt}/{attempts})")
                time.sleep(delay)
                continue
            print(f"✅ Database reachable after {attempt} attempt(s)")
            return True
    finally:
        engine.dispose()
    return False


def upgrade_schema() -> bool:
    """``alembic upgrade head``; tables created by ``init_db()`` count as migrated."""
    print("🔄 Applying migrations")
    try:
        result = subprocess.run(
            ["alembic", "upgrade", "head"], capture_output=True, text=True
        )
    except OSError as e:
        print(f"❌ Could not start alembic: {e}")
        return False

    if result.returncode == 0:
        return True
    if "already exists" in result.stderr or "DuplicateTable" in result.stderr:
        print("⚠️  Schema already present, continuing")
        return True
    print(f"❌ Migration failed:\n{result.stderr}")
    return False


def seed(settings) -> bool:
    try:
        with get_session_context(settings) as db:
            added = seed_defaults(db)
    except SQLAlchemyError as e:
        print(f"❌ Seeding failed: {e}")
        return False

    for table, count in added.items():
        print(f"🌱 {table}: {count} added")
    return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--skip-migrations", action="store_true")
    parser.add_argument("--no-seed", action="store_true")
    parser.add_argument("--wait-attempts", type=int, default=30)
    args = parser.parse_args(argv)

    init_settings()
    settings = get_settings()

    if not wait_for_db(settings.DATABASE_URL, args.wait_attempts):
        print("❌ Database never became reachable")
        return 1
    if not args.skip_migrations and not upgrade_schema():
        return 1
    if not args.no_seed and not seed(settings):
        return 1

    print("🎉 Database ready")
    return 0


if __name__ == "__main__":
    sys.exit(main())
