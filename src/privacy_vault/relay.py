"""Secure relay — tokenize, call the completion service, detokenize.

Usage:
    relay = SecureRelay(Tokenizer(store, secret), Detokenizer(store), OpenAICompletionClient())
    answer = relay.relay("Draft a reply to ana@example.com", CompletionParams(temperature=0.2))

The completion service only ever receives the tokenized prompt.  If
tokenization fails the call is never made; if the call fails nothing is
detokenized and the tokenized prompt is discarded.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Iterator

from .completion import CompletionClient, CompletionParams
from .errors import CompletionFailedError, ConfigurationError
from .streaming import StreamingDetokenizer
from .tokenizer import Detokenizer, Tokenizer, require_text
from .types import TokenizedText

logger = logging.getLogger(__name__)


@dataclass
class SecureRelay:
    """Sits between the caller and the external completion service."""

    tokenizer: Tokenizer
    detokenizer: Detokenizer
    completion: CompletionClient | None = None

    def anonymize(self, text: str) -> TokenizedText:
        return self.tokenizer.tokenize(text)

    def deanonymize(self, text: str) -> str:
        return self.detokenizer.detokenize(text)

    def _tokenize_prompt(
        self,
        prompt: str,
        completion: CompletionClient | None,
    ) -> tuple[str, CompletionClient]:
        require_text(prompt, "prompt")
        client = completion or self.completion
        if client is None:
            raise ConfigurationError("no completion client configured")
        # Any failure here propagates before the external call is attempted
        tokenized = self.tokenizer.tokenize(prompt)
        logger.info(
            "prompt tokenized: %d chars, %d token(s)",
            len(tokenized.text), len(tokenized.token_map),
        )
        return tokenized.text, client

    def relay(
        self,
        prompt: str,
        params: CompletionParams | None = None,
        completion: CompletionClient | None = None,
    ) -> str:
        """Run the full pipeline and return the restored response."""
        params = params or CompletionParams()
        tokenized_prompt, client = self._tokenize_prompt(prompt, completion)

        try:
            tokenized_response = client.complete(tokenized_prompt, params)
        except Exception as e:
            logger.exception("completion call failed")
            raise CompletionFailedError("completion service failed") from e
        logger.info("completion received: %d chars", len(tokenized_response))

        if not tokenized_response:
            return tokenized_response
        return self.detokenizer.resolve(tokenized_response)

    def relay_stream(
        self,
        prompt: str,
        params: CompletionParams | None = None,
        completion: CompletionClient | None = None,
    ) -> Iterator[str]:
        """Streaming variant of ``relay``: yields restored text as it arrives.

        The prompt is tokenized eagerly, before the first ``next()``.

        Unlike ``relay``, a failure mid-stream is not all-or-nothing: pieces
        already yielded stay with the caller.  The held-back tail is dropped
        and ``CompletionFailedError`` is raised, so callers that must not show
        partial answers should use ``relay`` instead.
        """
        params = params or CompletionParams()
        tokenized_prompt, client = self._tokenize_prompt(prompt, completion)
        return self._stream(client, tokenized_prompt, params)

    def _stream(
        self,
        client: CompletionClient,
        tokenized_prompt: str,
        params: CompletionParams,
    ) -> Iterator[str]:
        restorer = StreamingDetokenizer(self.detokenizer)
        chunks: Iterator[str] | None = None
        while True:
            try:
                if chunks is None:
                    chunks = iter(client.stream(tokenized_prompt, params))
                chunk = next(chunks)
            except StopIteration:
                break
            except Exception as e:
                logger.exception("completion stream failed")
                raise CompletionFailedError("completion service failed") from e
            ready = restorer.feed(chunk)
            if ready:
                yield ready
        tail = restorer.flush()
        if tail:
            yield tail
