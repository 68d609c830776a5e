"""
Create missing tables and seed the admin user (plus sample records unless
SEED_SAMPLE_DATA=0). Safe to re-run: nothing existing is overwritten.

Usage:
  python scripts/init_db.py            # seed only (schema managed by alembic)
  python scripts/init_db.py --create   # also create missing tables (dev)
"""
import argparse
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import create_engine  # noqa: E402

from app.crm.config import load_settings  # noqa: E402
from app.crm.db import engine_options  # noqa: E402
from app.crm.models import Base  # noqa: E402
from app.crm.seed import seed_database  # noqa: E402
from scripts._db_utils import resolve_database_url, script_session  # noqa: E402


def create_tables(db_url: str) -> None:
    engine = create_engine(db_url, **engine_options(db_url))
    try:
        Base.metadata.create_all(bind=engine)
    finally:
        engine.dispose()


def seed_only(*, database_url: str | None = None) -> None:
    """Does NOT overwrite an existing admin user's password."""
    settings = load_settings()
    db_url = resolve_database_url(database_url)

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        seed_database(
            s,
            admin_username=settings.admin_username,
            admin_password=settings.admin_password,
            sample_data=settings.seed_sample_data,
        )

    print("Initialized database (seed_only).")
    print(f"Admin username: {settings.admin_username}")
    print("Admin password: (from ADMIN_PASSWORD)")
    print(f"Sample data: {'yes' if settings.seed_sample_data else 'no'}")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--create", action="store_true", help="create missing tables before seeding")
    parser.add_argument("--database-url", default=None, help="defaults to $DATABASE_URL")
    args = parser.parse_args()

    if args.create:
        create_tables(resolve_database_url(args.database_url))
    seed_only(database_url=args.database_url)


if __name__ == "__main__":
    main()
