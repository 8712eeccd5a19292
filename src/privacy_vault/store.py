"""Token store — durable token → original mapping with insert-once writes.

Design goals:
  - First write wins: ``upsert_if_absent`` never overwrites an existing record
  - Categories are checked: anything outside email/phone/name is refused
  - Atomic: the create-if-absent check happens inside one critical section
    (or one SQL statement), never as a separate read then write
  - Batch reads: detokenization resolves all tokens in one ``fetch_many``
"""

from __future__ import annotations
import threading
from datetime import datetime, timezone
from typing import Iterable, Protocol

from .codec import CATEGORIES
from .errors import StoreUnavailableError
from .types import TokenRecord


class TokenStore(Protocol):
    """Contract shared by every store backend."""

    def upsert_if_absent(self, token: str, original: str, category: str) -> None: ...

    def fetch_many(self, tokens: Iterable[str]) -> dict[str, str]: ...

    def get(self, token: str) -> TokenRecord | None: ...

    @property
    def size(self) -> int: ...

    def close(self) -> None: ...


class MemoryTokenStore:
    """In-process token store.  Thread-safe; contents die with the process."""

    __slots__ = ("_records", "_lock")

    def __init__(self) -> None:
        self._records: dict[str, TokenRecord] = {}
        self._lock = threading.Lock()

    def upsert_if_absent(self, token: str, original: str, category: str) -> None:
        if category not in CATEGORIES:
            raise StoreUnavailableError(f"unknown token category: {category!r}")
        with self._lock:
            if token in self._records:
                return
            self._records[token] = TokenRecord(
                token=token,
                original=original,
                category=category,
                created_at=datetime.now(timezone.utc),
            )

    def fetch_many(self, tokens: Iterable[str]) -> dict[str, str]:
        with self._lock:
            return {
                t: self._records[t].original
                for t in set(tokens)
                if t in self._records
            }

    def get(self, token: str) -> TokenRecord | None:
        with self._lock:
            return self._records.get(token)

    @property
    def size(self) -> int:
        return len(self._records)

    def close(self) -> None:
        pass
