"""Tokenizer and detokenizer — the anonymize / deanonymize operations.

Usage:
    store = SqliteTokenStore("tokens.db")
    tokenizer = Tokenizer(store, secret="s3cret")
    detokenizer = Detokenizer(store)

    result = tokenizer.tokenize("Write to Ana Pérez at ana@example.com")
    print(result.text)       # "Write to NAME_… at EMAIL_…"
    print(detokenizer.detokenize(result.text))
"""

from __future__ import annotations
import logging
from typing import Sequence

from .codec import TOKEN_PATTERN, derive_token
from .errors import InvalidInputError
from .patterns import DETECTION_PIPELINE, Detector
from .store import TokenStore
from .types import Detection, TokenizedText

logger = logging.getLogger(__name__)


def require_text(value: object, field: str = "text") -> str:
    """Reject anything that is not a non-blank string."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f'"{field}" must be a non-empty string')
    return value


class Tokenizer:
    """Replaces detected PII with deterministic tokens, recording each mapping.

    Passes run in ``detectors`` order, each over the output of the previous
    one.  Within a pass, raw forms sharing a normalized key get one token and
    one store write; the first raw form seen is the one offered to the store.
    """

    def __init__(
        self,
        store: TokenStore,
        secret: str = "",
        detectors: Sequence[Detector] = DETECTION_PIPELINE,
    ) -> None:
        self.store = store
        self.secret = secret
        self.detectors = tuple(detectors)

    def tokenize(self, text: str) -> TokenizedText:
        result = require_text(text)
        detections: list[Detection] = []
        token_map: dict[str, str] = {}

        for detector in self.detectors:
            found = detector.detect(result)
            if not found:
                continue

            tokens_by_key: dict[str, str] = {}
            for d in found:
                if d.key in tokens_by_key:
                    continue
                token = derive_token(d.category, d.key, self.secret)
                self.store.upsert_if_absent(token, d.raw, d.category)
                tokens_by_key[d.key] = token
                token_map[token] = d.raw

            # Right-to-left keeps earlier offsets valid
            for d in reversed(found):
                result = result[:d.start] + tokens_by_key[d.key] + result[d.end:]
            detections.extend(found)
            logger.debug(
                "%s pass: %d occurrence(s), %d token(s)",
                detector.category, len(found), len(tokens_by_key),
            )

        return TokenizedText(text=result, detections=detections, token_map=token_map)


class Detokenizer:
    """Restores originals for every known token in a text.

    Unknown tokens (foreign salt, purged store, coincidental text) are left
    exactly as they are.
    """

    def __init__(self, store: TokenStore) -> None:
        self.store = store

    def detokenize(self, text: str) -> str:
        return self.resolve(require_text(text))

    def resolve(self, text: str) -> str:
        """Like ``detokenize`` but accepts any string, blank included."""
        tokens = set(TOKEN_PATTERN.findall(text))
        if not tokens:
            return text

        originals = self.store.fetch_many(tokens)
        logger.debug("resolved %d of %d token(s)", len(originals), len(tokens))
        return TOKEN_PATTERN.sub(lambda m: originals.get(m.group(), m.group()), text)
