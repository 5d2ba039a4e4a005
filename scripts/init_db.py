"""
Initialize the database schema for the KPI dashboard.

Creates the storage_slot table that backs the KPI store and, optionally,
writes an empty KPI list into the configured slot.

Usage:
    python scripts/init_db.py
    python scripts/init_db.py --database-url sqlite:///kpi_dashboard.db --drop-existing
"""

import argparse
import sys
import os

# Add parent directory to path to import kpi_dashboard modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kpi_dashboard.models import Base
from sqlalchemy import create_engine

try:
    from dotenv import load_dotenv
except ImportError:
    load_dotenv = None


def main():
    parser = argparse.ArgumentParser(description='Initialize database schema for the KPI dashboard')
    parser.add_argument('--database-url', help='Database URL (default: from DATABASE_URL env var or SQLite)')
    parser.add_argument('--drop-existing', action='store_true', help='Drop existing tables before creating')
    parser.add_argument('--seed-empty-store', action='store_true', help='Write an empty KPI list into the store slot')

    args = parser.parse_args()

    if args.database_url:
        db_url = args.database_url
    else:
        if load_dotenv:
            load_dotenv()

        db_url = os.getenv('DATABASE_URL')
        if not db_url:
            db_url = 'sqlite:///kpi_dashboard.db'
            print(f"No DATABASE_URL found, using default: {db_url}")

    print(f"Connecting to database: {db_url.split('@')[-1] if '@' in db_url else db_url}")

    engine = create_engine(db_url)

    if args.drop_existing:
        print("Dropping existing tables...")
        Base.metadata.drop_all(engine)
        print("✓ Existing tables dropped")

    print("Creating tables from current models...")
    Base.metadata.create_all(engine)
    print("✓ Database initialized successfully")

    print("\nCreated tables:")
    for table_name in Base.metadata.tables.keys():
        print(f"  - {table_name}")

    if args.seed_empty_store:
        from kpi_dashboard.db import reset_db
        from kpi_dashboard.services.kpi_store import KpiStore, SqlStorage

        reset_db(engine)
        store = KpiStore(SqlStorage(), slot=os.getenv('KPI_STORE_SLOT', 'kpi-store-data'))
        store.clear_all()
        print("✓ KPI store slot reset to an empty list")


if __name__ == '__main__':
    main()
