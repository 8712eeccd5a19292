"""Token codec — deterministic, salted pseudonyms for PII values.

A token is ``<PREFIX><12 hex chars>`` where the hex part is a truncated
SHA-256 over ``secret|normalized_value``.  Truncating to 48 bits leaves a
birthday-collision risk around 2**24 distinct values per category; the
store's first-write-wins insert means a collision resolves to whichever
value was committed first.
"""

from __future__ import annotations
import hashlib
import re

TOKEN_LENGTH = 12

CATEGORY_PREFIXES: dict[str, str] = {
    "email": "EMAIL_",
    "phone": "PHONE_",
    "name": "NAME_",
}

CATEGORIES = tuple(CATEGORY_PREFIXES)

# Surface form of a token inside arbitrary text
TOKEN_PATTERN = re.compile(r"\b(?:NAME|EMAIL|PHONE)_[0-9a-f]{12}\b")

MAX_TOKEN_LEN = max(len(p) for p in CATEGORY_PREFIXES.values()) + TOKEN_LENGTH


def digest(normalized: str, secret: str) -> str:
    """Return the truncated hex digest for a normalized value."""
    payload = f"{secret}|{normalized}".encode("utf-8")
    return hashlib.sha256(payload).hexdigest()[:TOKEN_LENGTH]


def derive_token(category: str, normalized: str, secret: str) -> str:
    """Derive the token for ``(category, normalized)`` under ``secret``."""
    return f"{CATEGORY_PREFIXES[category]}{digest(normalized, secret)}"


def is_token(value: str) -> bool:
    return TOKEN_PATTERN.fullmatch(value) is not None
