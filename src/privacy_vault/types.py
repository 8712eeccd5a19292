"""Core types."""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True, slots=True)
class TokenRecord:
    """A persisted token → original mapping."""
    token: str             # e.g. "EMAIL_3f2a9c0d1b7e"
    original: str          # first raw value committed for this token
    category: str          # "email" | "phone" | "name"
    created_at: datetime


@dataclass(frozen=True, slots=True)
class Detection:
    """A single candidate PII occurrence emitted by a detector."""
    category: str
    start: int
    end: int
    key: str               # normalized lookup key
    raw: str               # text as it appeared in the input


@dataclass(slots=True)
class TokenizedText:
    """Result of tokenizing a message."""
    text: str                                   # text with tokens substituted
    detections: list[Detection] = field(default_factory=list)
    token_map: dict[str, str] = field(default_factory=dict)  # token → raw value
