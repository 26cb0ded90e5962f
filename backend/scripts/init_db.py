#!/usr/bin/env python3
"""
Initialize the carpool scheduler database.

Usage:
    python scripts/init_db.py [--database-url URL]

Steps:
1. Connect to the configured database
2. Create missing tables
3. Give every group without one the default schedule configuration
"""

import argparse
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import inspect

from db import database
from services.schedule_config_service import ScheduleConfigService


def main(argv=None):
    parser = argparse.ArgumentParser(description="Initialize the carpool scheduler database")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    args = parser.parse_args(argv)

    print("=" * 60)
    print("Carpool Scheduler Database Initialization")
    print("=" * 60)

    if not database.USE_DATABASE:
        print("\nDatabase is disabled (USE_DATABASE=false)")
        print("   Set USE_DATABASE=true to enable persistence.")
        return 0

    engine = database.init_engine(args.database_url)
    if engine is None:
        print("\nFailed to connect to database!")
        print("  Check DATABASE_URL and that the server is running.")
        return 1
    print("Database connection successful")

    database.create_tables()
    print("\nTables:")
    for table_name in inspect(engine).get_table_names():
        print(f"   - {table_name}")

    db = database.SessionLocal()
    try:
        created = ScheduleConfigService(db).initialize_default_configs()
    finally:
        db.close()
    print(f"\nDefault schedule configs created: {created}")

    print("\n" + "=" * 60)
    print("Database initialization complete!")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
