"""GenerationClient: one JSON-mode chat completion per prompt."""

from __future__ import annotations

import logging

from pydantic import BaseModel

from fieldwise.ai.prompt_builder import BuiltPrompt
from fieldwise.core.config import LLMConfig
from fieldwise.core.exceptions import EmptyResponseError
from fieldwise.core.logging import get_logger, log_with_context
from fieldwise.core.protocols import IModelProvider

logger = get_logger(__name__)


class GenerationResult(BaseModel):
    text: str
    tokens_used: int = 0


class GenerationClient:
    def __init__(self, provider: IModelProvider, config: LLMConfig | None = None) -> None:
        self._provider = provider
        self._config = config or LLMConfig()

    def is_available(self) -> bool:
        return self._provider.is_configured()

    async def generate(self, prompt: BuiltPrompt) -> GenerationResult:
        """Run the prompt; ProviderError subclasses propagate to the caller."""
        completion = await self._provider.chat_completion(
            prompt.messages(),
            temperature=self._config.temperature,
            max_tokens=self._config.max_tokens,
            json_mode=True,
        )
        if not completion.text.strip():
            raise EmptyResponseError("Model returned empty content")

        log_with_context(
            logger, logging.INFO, "Generation complete",
            prompt_tokens=completion.usage.prompt_tokens,
            completion_tokens=completion.usage.completion_tokens,
        )
        return GenerationResult(text=completion.text, tokens_used=completion.usage.total_tokens)
