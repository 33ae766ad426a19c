#!/usr/bin/env python3
"""
Create the file_records table in the configured database (DATABASE_URL).
"""
import sys

from sqlalchemy import inspect

from oneshot.core.config import get_settings
from oneshot.db import build_engine, init_db as create_tables


def init_db():
    """Create all tables in the database"""
    settings = get_settings()
    engine = build_engine(settings.DATABASE_URL)
    print(f"Creating tables in {engine.url.render_as_string(hide_password=True)}...")

    try:
        create_tables(engine)
        print("Tables created successfully!")

        # List created tables
        inspector = inspect(engine)
        tables = inspector.get_table_names()
        print(f"\nTables ({len(tables)}):")
        for table in tables:
            print(f"   - {table}")

        return True
    except Exception as e:
        print(f"Failed to create tables: {e}")
        import traceback
        traceback.print_exc()
        return False
    finally:
        engine.dispose()

if __name__ == "__main__":
    success = init_db()
    sys.exit(0 if success else 1)
