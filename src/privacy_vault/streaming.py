"""Streaming detokenizer — restores tokens in a response that arrives in chunks.

Tokens can arrive split across chunks:
    EMA  →  EMAIL_3f2  →  EMAIL_3f2a9c0d1b7e

Tokens are made only of word characters, so a cut right after a non-word
character can never land inside one.  The detokenizer emits everything up
to the last such character and holds back the trailing partial word.

Usage:
    stream = StreamingDetokenizer(detokenizer)
    for chunk in completion_chunks:
        ready = stream.feed(chunk)
        if ready:
            yield ready
    yield stream.flush()
"""

from __future__ import annotations
import re

from .codec import MAX_TOKEN_LEN
from .tokenizer import Detokenizer

# Greedy: everything up to and including the last non-word character
_UP_TO_LAST_BREAK = re.compile(r".*\W", re.DOTALL)
_FIRST_BREAK = re.compile(r"\W")


class StreamingDetokenizer:
    """Buffers streamed chunks and detokenizes complete words."""

    __slots__ = ("_detokenizer", "_buffer", "_passthrough")

    def __init__(self, detokenizer: Detokenizer) -> None:
        self._detokenizer = detokenizer
        self._buffer = ""
        # Inside a word already too long to be a token
        self._passthrough = False

    def feed(self, chunk: str) -> str:
        """Feed a chunk, return any text ready to emit."""
        self._buffer += chunk
        out: list[str] = []

        if self._passthrough:
            m = _FIRST_BREAK.search(self._buffer)
            if m is None:
                out.append(self._buffer)
                self._buffer = ""
                return "".join(out)
            out.append(self._buffer[:m.start()])
            self._buffer = self._buffer[m.start():]
            self._passthrough = False

        m = _UP_TO_LAST_BREAK.match(self._buffer)
        cut = m.end() if m else 0
        head, tail = self._buffer[:cut], self._buffer[cut:]

        if len(tail) > MAX_TOKEN_LEN:
            # A word this long can never match the token pattern
            head, tail = self._buffer, ""
            self._passthrough = True

        self._buffer = tail
        if head:
            out.append(self._detokenizer.resolve(head))
        return "".join(out)

    def flush(self) -> str:
        """Flush the remaining buffer (call at end of stream)."""
        out, self._buffer = self._buffer, ""
        if self._passthrough:
            self._passthrough = False
            return out
        return self._detokenizer.resolve(out) if out else ""
