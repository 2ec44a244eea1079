"""
Database adapter.
"""
from .schema import CURRENT_SCHEMA_VERSION, migrate_schema
from .sqlite import Sqlite

__all__ = ["Sqlite", "migrate_schema", "CURRENT_SCHEMA_VERSION"]
