"""sqlite access for the lifecycle journal."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import sqlite3
from typing import Optional

from yield_intel.config import settings


SQLITE_PREFIX = "sqlite://"
BUSY_TIMEOUT_MS = 10_000


@dataclass(frozen=True)
class JournalTarget:
    path: str

    @property
    def in_memory(self) -> bool:
        return self.path in {"", ":memory:"}


def parse_database_url(url: str) -> JournalTarget:
    """Accept ``sqlite:///relative.db``, ``sqlite:////abs/path.db`` or ``sqlite://:memory:``."""
    if not url.startswith(SQLITE_PREFIX):
        raise ValueError(f"Journal needs a sqlite DATABASE_URL, got: {url}")
    rest = url[len(SQLITE_PREFIX) :]
    # One slash separates the empty host from the path, as in SQLAlchemy URLs.
    path = rest[1:] if rest.startswith("/") else rest
    return JournalTarget(path=path)


def get_connection(database_url: Optional[str] = None) -> sqlite3.Connection:
    target = parse_database_url(database_url or settings.database_url)
    if not target.in_memory:
        Path(target.path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(target.path or ":memory:", timeout=BUSY_TIMEOUT_MS / 1000)
    conn.row_factory = sqlite3.Row
    conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS};")
    if not target.in_memory:
        # Concurrent writers from the attestation pool append while readers query history.
        conn.execute("PRAGMA journal_mode = WAL;")
    return conn
