"""PII detectors — regex matchers for emails, phones and full names.

Each detector scans text and yields ``Detection`` candidates with a
normalized key.  They never raise; text that doesn't look like PII is
simply not reported.

The detectors are meant to run in the order of ``DETECTION_PIPELINE``,
each over the output of the previous pass.  Tokens are an uppercase
prefix, an underscore and lowercase hex, so a phone pass can't see a digit
run that starts inside a token (no word boundary after ``_``) and a name
pass can't see a capitalized word in ``EMAIL``/``PHONE``/``NAME``.
"""

from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Callable

from .types import Detection

PHONE_MIN_DIGITS = 7
PHONE_MAX_DIGITS = 15

_EMAIL_RE = re.compile(
    r"\b[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}\b"
)

# Digits with separators (space, hyphen, dot, parentheses), optional leading +
_PHONE_RE = re.compile(r"\b(?:\+?\d[\d\s\-().]{5,}\d)\b", re.ASCII)

# Latin letters: Basic Latin through Latin Extended-B (U+0000..U+024F)
_LATIN = [chr(c) for c in range(0x250) if chr(c).isalpha()]
_LATIN_UPPER = "".join(c for c in _LATIN if c.isupper())
_LATIN_LOWER = "".join(c for c in _LATIN if c.islower())
_CAP_WORD = f"[{_LATIN_UPPER}][{_LATIN_LOWER}]+"
_NAME_RE = re.compile(rf"\b{_CAP_WORD}(?:\s+{_CAP_WORD}){{1,2}}\b")

_NON_DIGIT = re.compile(r"\D", re.ASCII)


def _phone_digits(raw: str) -> str:
    return _NON_DIGIT.sub("", raw)


def _phone_in_range(key: str) -> bool:
    return PHONE_MIN_DIGITS <= len(key) <= PHONE_MAX_DIGITS


@dataclass(frozen=True)
class Detector:
    """A single-category PII matcher."""

    category: str
    pattern: re.Pattern
    normalize: Callable[[str], str]
    accept: Callable[[str], bool] | None = None   # filter on the normalized key

    def detect(self, text: str) -> list[Detection]:
        """Return every candidate occurrence in ``text``, left to right."""
        found: list[Detection] = []
        for m in self.pattern.finditer(text):
            raw = m.group()
            key = self.normalize(raw)
            if self.accept is not None and not self.accept(key):
                continue
            found.append(Detection(
                category=self.category,
                start=m.start(),
                end=m.end(),
                key=key,
                raw=raw,
            ))
        return found


EMAIL_DETECTOR = Detector("email", _EMAIL_RE, str.lower)
PHONE_DETECTOR = Detector("phone", _PHONE_RE, _phone_digits, _phone_in_range)
# Names are keyed on the exact matched text, case included
NAME_DETECTOR = Detector("name", _NAME_RE, lambda raw: raw)

# Order matters: emails -> phones -> names
DETECTION_PIPELINE: tuple[Detector, ...] = (
    EMAIL_DETECTOR,
    PHONE_DETECTOR,
    NAME_DETECTOR,
)
