"""Persistent token store backed by SQLite — survives process restarts.

Usage:
    store = SqliteTokenStore(db_path="~/.privacy-vault/tokens.db")
    store.upsert_if_absent("EMAIL_3f2a9c0d1b7e", "ana@example.com", "email")
    store.fetch_many({"EMAIL_3f2a9c0d1b7e"})  # {"EMAIL_3f2a9c0d1b7e": "ana@example.com"}
"""

from __future__ import annotations
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from .errors import StoreUnavailableError
from .types import TokenRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS token_records (
    token TEXT PRIMARY KEY,
    original TEXT NOT NULL,
    category TEXT NOT NULL CHECK (category IN ('email', 'phone', 'name')),
    created_at TEXT NOT NULL
);
"""

# SQLite's default SQLITE_MAX_VARIABLE_NUMBER on older builds is 999
_FETCH_CHUNK = 500


class SqliteTokenStore:
    """Durable token store.  One shared connection, serialized by a lock."""

    __slots__ = ("_db", "_lock")

    def __init__(self, db_path: str | Path = "tokens.db") -> None:
        path = Path(db_path).expanduser()
        self._lock = threading.Lock()
        try:
            if str(path) != ":memory:":
                path.parent.mkdir(parents=True, exist_ok=True)
            self._db = sqlite3.connect(str(path), check_same_thread=False)
            self._db.executescript(_SCHEMA)
        except (sqlite3.Error, OSError) as e:
            logger.error("cannot open token store at %s: %s", path, e)
            raise StoreUnavailableError("token store unavailable") from e

    def upsert_if_absent(self, token: str, original: str, category: str) -> None:
        created_at = datetime.now(timezone.utc).isoformat()
        with self._lock:
            try:
                # Only a token conflict is a no-op (first write wins); CHECK failures raise
                self._db.execute(
                    "INSERT INTO token_records (token, original, category, created_at) "
                    "VALUES (?, ?, ?, ?) ON CONFLICT(token) DO NOTHING",
                    (token, original, category, created_at),
                )
                self._db.commit()
            except sqlite3.Error as e:
                logger.error("token insert failed: %s", e)
                raise StoreUnavailableError("token store unavailable") from e

    def fetch_many(self, tokens: Iterable[str]) -> dict[str, str]:
        wanted = sorted(set(tokens))
        if not wanted:
            return {}
        found: dict[str, str] = {}
        with self._lock:
            try:
                for i in range(0, len(wanted), _FETCH_CHUNK):
                    chunk = wanted[i:i + _FETCH_CHUNK]
                    marks = ",".join("?" * len(chunk))
                    rows = self._db.execute(
                        f"SELECT token, original FROM token_records WHERE token IN ({marks})",
                        chunk,
                    ).fetchall()
                    found.update(rows)
            except sqlite3.Error as e:
                logger.error("token lookup failed: %s", e)
                raise StoreUnavailableError("token store unavailable") from e
        return found

    def get(self, token: str) -> TokenRecord | None:
        with self._lock:
            try:
                row = self._db.execute(
                    "SELECT token, original, category, created_at FROM token_records WHERE token = ?",
                    (token,),
                ).fetchone()
            except sqlite3.Error as e:
                logger.error("token lookup failed: %s", e)
                raise StoreUnavailableError("token store unavailable") from e
        if row is None:
            return None
        return TokenRecord(
            token=row[0],
            original=row[1],
            category=row[2],
            created_at=datetime.fromisoformat(row[3]),
        )

    @property
    def size(self) -> int:
        with self._lock:
            try:
                (count,) = self._db.execute("SELECT COUNT(*) FROM token_records").fetchone()
            except sqlite3.Error as e:
                logger.error("token count failed: %s", e)
                raise StoreUnavailableError("token store unavailable") from e
        return count

    def close(self) -> None:
        with self._lock:
            self._db.close()
