"""Mock model provider for local development and testing.

Returns canned responses and deterministic bag-of-words embeddings.
No network calls.
"""

from __future__ import annotations

import hashlib
import math
import re

from fieldwise.core.exceptions import ProviderError
from fieldwise.model_providers.base import ChatCompletion, EmbeddingResponse, TokenUsage

_TOKEN = re.compile(r"\w+")


class MockModelProvider:
    """IModelProvider implementation that returns deterministic mock responses."""

    chat_model = "mock-chat"
    embedding_model = "mock-embedding"

    def __init__(
        self,
        default_response: str = "{}",
        *,
        configured: bool = True,
        dimensions: int = 64,
    ) -> None:
        self._default_response = default_response
        self._canned_responses: dict[str, str] = {}
        self._configured = configured
        self._dimensions = dimensions
        self._failure: ProviderError | None = None
        self.chat_calls: list[list[dict[str, str]]] = []
        self.embedding_calls: list[list[str]] = []

    def set_response(self, prompt_contains: str, response: str) -> None:
        """Register a canned response for prompts containing a keyword."""
        self._canned_responses[prompt_contains] = response

    def fail_with(self, error: ProviderError | None) -> None:
        """Make every subsequent call raise ``error`` (None clears it)."""
        self._failure = error

    def is_configured(self) -> bool:
        return self._configured

    @property
    def call_count(self) -> int:
        return len(self.chat_calls) + len(self.embedding_calls)

    async def chat_completion(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.2,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> ChatCompletion:
        self.chat_calls.append(messages)
        if self._failure is not None:
            raise self._failure

        last_content = messages[-1].get("content", "") if messages else ""
        text = self._default_response
        for keyword, response in self._canned_responses.items():
            if keyword in last_content:
                text = response
                break

        prompt_tokens = sum(len(m.get("content", "")) for m in messages) // 4
        completion_tokens = len(text) // 4
        return ChatCompletion(
            text=text,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            model=self.chat_model,
        )

    async def create_embedding(self, texts: list[str]) -> EmbeddingResponse:
        self.embedding_calls.append(list(texts))
        if self._failure is not None:
            raise self._failure
        return EmbeddingResponse(
            vectors=[self.embed_text(t) for t in texts],
            usage=TokenUsage(total_tokens=sum(len(t) for t in texts) // 4),
            model=self.embedding_model,
        )

    def embed_text(self, text: str) -> list[float]:
        """Hashed bag-of-words vector, L2-normalized. Shared words -> higher cosine."""
        vector = [0.0] * self._dimensions
        for token in _TOKEN.findall(text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "big") % self._dimensions] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]
