"""Numbered SQL migrations for the journal database."""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import logging
from pathlib import Path
import re
import time
from typing import Optional

from yield_intel.db.connection import get_connection


logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"
_FILENAME = re.compile(r"^(\d+)_(\w+)\.sql$")


class MigrationDrift(RuntimeError):
    """An applied migration file was edited after it ran."""


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    sql: str

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.sql.encode("utf-8")).hexdigest()


def load_migrations(directory: Path = MIGRATIONS_DIR) -> list[Migration]:
    if not directory.exists():
        raise FileNotFoundError(f"Missing migrations dir: {directory}")
    found = []
    for path in directory.iterdir():
        match = _FILENAME.match(path.name)
        if match is None:
            continue
        found.append(
            Migration(
                version=int(match.group(1)),
                name=match.group(2),
                sql=path.read_text(encoding="utf-8"),
            )
        )
    found.sort(key=lambda m: m.version)
    return found


def _applied(conn) -> dict[int, str]:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            checksum TEXT NOT NULL,
            applied_at INTEGER NOT NULL
        );
        """
    )
    rows = conn.execute("SELECT version, checksum FROM schema_version").fetchall()
    return {row["version"]: row["checksum"] for row in rows}


def pending_migrations(
    database_url: Optional[str] = None, directory: Path = MIGRATIONS_DIR
) -> list[Migration]:
    with get_connection(database_url) as conn:
        applied = _applied(conn)
    return [m for m in load_migrations(directory) if m.version not in applied]


def migrate(
    database_url: Optional[str] = None, directory: Path = MIGRATIONS_DIR
) -> list[int]:
    """Apply pending migrations in version order and return the versions applied.

    Raises MigrationDrift when an already applied file no longer matches the
    checksum stored for it.
    """
    applied_now: list[int] = []
    with get_connection(database_url) as conn:
        applied = _applied(conn)
        for migration in load_migrations(directory):
            recorded = applied.get(migration.version)
            if recorded is not None:
                if recorded != migration.checksum:
                    raise MigrationDrift(
                        f"migration {migration.version}_{migration.name} changed after it was applied"
                    )
                continue
            conn.executescript(migration.sql)
            conn.execute(
                "INSERT INTO schema_version (version, name, checksum, applied_at) VALUES (?, ?, ?, ?)",
                (migration.version, migration.name, migration.checksum, int(time.time())),
            )
            conn.commit()
            logger.info("Applied journal migration %s_%s", migration.version, migration.name)
            applied_now.append(migration.version)
    return applied_now
