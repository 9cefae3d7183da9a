"""
Persistence layer: warnings, tombstones, insider submissions, chat messages.

SQLite by default via Database and get_database(); any SQLAlchemy URL via DATABASE_URL.
"""

from rugwatch.database.database import Database, get_database

__all__ = ["Database", "get_database"]
