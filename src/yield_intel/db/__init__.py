"""Journal storage exports."""

from yield_intel.db.connection import get_connection, parse_database_url
from yield_intel.db.journal import LifecycleJournal
from yield_intel.db.migrate import MigrationDrift, migrate, pending_migrations

__all__ = [
    "LifecycleJournal",
    "MigrationDrift",
    "get_connection",
    "migrate",
    "parse_database_url",
    "pending_migrations",
]
