#!/usr/bin/env python3
# backend/init_db.py
"""
Database initialization script.

Creates the holdings and snapshot tables in DATABASE_URL (default: a SQLite
file in the working directory). Can be run from any directory:
    python backend/init_db.py
    cd backend && python init_db.py
"""
import sys
from pathlib import Path

# Add the backend directory to Python path so 'portfolio_tracker' is importable
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from portfolio_tracker.config import settings
from portfolio_tracker.database import create_db_engine
from portfolio_tracker.models import Base


def init_db() -> None:
    """Create all database tables defined in models."""
    print(f"Creating database tables in {settings.database_url} ...")
    engine = create_db_engine()
    Base.metadata.create_all(bind=engine)
    engine.dispose()
    print("Tables created successfully!")


if __name__ == "__main__":
    init_db()
