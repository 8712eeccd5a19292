"""Text-completion collaborator — the external service behind the relay.

Anything with ``complete(prompt, params)`` and ``stream(prompt, params)``
works; ``OpenAICompletionClient`` is the production adapter.
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from typing import Any, Iterator, Protocol

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_OUTPUT_LENGTH = 512


@dataclass(frozen=True)
class CompletionParams:
    """Caller-supplied knobs for one completion."""
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    model: str | None = None            # None = client default
    temperature: float = DEFAULT_TEMPERATURE
    max_output_length: int = DEFAULT_MAX_OUTPUT_LENGTH

    @classmethod
    def from_request(
        cls,
        *,
        system_prompt: Any = None,
        model: Any = None,
        temperature: Any = None,
        max_output_length: Any = None,
    ) -> "CompletionParams":
        """Build params from loosely-typed input, falling back to defaults."""
        return cls(
            system_prompt=system_prompt if isinstance(system_prompt, str) and system_prompt else DEFAULT_SYSTEM_PROMPT,
            model=model if isinstance(model, str) and model else None,
            temperature=float(temperature) if _is_number(temperature) else DEFAULT_TEMPERATURE,
            max_output_length=int(max_output_length) if _is_number(max_output_length) else DEFAULT_MAX_OUTPUT_LENGTH,
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class CompletionClient(Protocol):
    def complete(self, prompt: str, params: CompletionParams) -> str: ...

    def stream(self, prompt: str, params: CompletionParams) -> Iterator[str]: ...


class OpenAICompletionClient:
    """Chat Completions adapter built on the official ``openai`` SDK."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        api_key = api_key or os.environ.get("OPENAI_API_KEY", "")
        if not api_key:
            raise ConfigurationError("Missing OpenAI API key. Set OPENAI_API_KEY or pass api_key.")

        from openai import OpenAI
        self.client = OpenAI(api_key=api_key, timeout=timeout)
        self.model = model or os.environ.get("OPENAI_MODEL") or DEFAULT_MODEL

    def _request(self, prompt: str, params: CompletionParams) -> dict[str, Any]:
        return {
            "model": params.model or self.model,
            "temperature": params.temperature,
            "max_tokens": params.max_output_length,
            "messages": [
                {"role": "system", "content": params.system_prompt},
                {"role": "user", "content": prompt},
            ],
        }

    def complete(self, prompt: str, params: CompletionParams) -> str:
        response = self.client.chat.completions.create(**self._request(prompt, params))
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def stream(self, prompt: str, params: CompletionParams) -> Iterator[str]:
        stream = self.client.chat.completions.create(stream=True, **self._request(prompt, params))
        for chunk in stream:
            if chunk.choices and chunk.choices[0].delta.content:
                yield chunk.choices[0].delta.content
