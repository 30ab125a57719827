"""Utility script to reset the local database.

Usage:
    python scripts/reset_local_db.py

Environment:
    Ensure DATABASE_URL (and other required settings) are available in
    the current shell before running this script.
"""

from __future__ import annotations

from franchise_approval.config import get_settings
from franchise_approval.db import Base, create_db_engine
from franchise_approval import models  # noqa: F401  registers tables on Base


def reset_database(database_url: str) -> None:
    engine = create_db_engine(database_url)
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    print("Local database reset.")


if __name__ == "__main__":
    reset_database(get_settings().database_url)
