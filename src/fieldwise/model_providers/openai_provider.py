"""OpenAI-compatible chat and embedding provider (OpenRouter by default).

Transient failures (rate limit, 5xx, connection, timeout) are retried with
exponential backoff; everything else surfaces immediately as a classified
ProviderError.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    BadRequestError,
    NotFoundError,
    OpenAIError,
    RateLimitError,
)

from fieldwise.core.config import LLMConfig
from fieldwise.core.exceptions import (
    AuthenticationFailedError,
    ContentFilteredError,
    ContextLengthExceededError,
    EmptyResponseError,
    ModelNotFoundError,
    NetworkError,
    ProviderError,
    RateLimitedError,
    ServerError,
)
from fieldwise.core.logging import get_logger, log_with_context
from fieldwise.model_providers.base import ChatCompletion, EmbeddingResponse, TokenUsage

logger = get_logger(__name__)


def classify_error(exc: OpenAIError) -> ProviderError:
    """Map an SDK exception onto the Fieldwise provider error taxonomy."""
    if isinstance(exc, APITimeoutError):
        return NetworkError(f"Request timed out: {exc}")
    if isinstance(exc, APIConnectionError):
        return NetworkError(f"Network error: {exc}")
    if isinstance(exc, AuthenticationError):
        return AuthenticationFailedError("Invalid API key", status=exc.status_code)
    if isinstance(exc, RateLimitError):
        return RateLimitedError("Rate limited, please try again later", status=exc.status_code)
    if isinstance(exc, NotFoundError):
        return ModelNotFoundError(f"Model not found: {exc.message}", status=exc.status_code)
    if isinstance(exc, BadRequestError):
        message = exc.message.lower()
        if "context length" in message or "context_length" in message:
            return ContextLengthExceededError("Context length exceeded", status=exc.status_code)
        if "content" in message:
            return ContentFilteredError("Content was filtered", status=exc.status_code)
        return ProviderError(exc.message, status=exc.status_code)
    if isinstance(exc, APIStatusError):
        if exc.status_code >= 500:
            return ServerError(f"Server error: {exc.status_code}", status=exc.status_code)
        return ProviderError(exc.message, status=exc.status_code)
    return ProviderError(str(exc))


def _usage(raw: Any) -> TokenUsage:
    if raw is None:
        return TokenUsage()
    prompt = getattr(raw, "prompt_tokens", 0) or 0
    completion = getattr(raw, "completion_tokens", 0) or 0
    total = getattr(raw, "total_tokens", 0) or prompt + completion
    return TokenUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


class OpenAIProvider:
    """IModelProvider over any OpenAI-compatible endpoint."""

    def __init__(self, config: LLMConfig, client: AsyncOpenAI | None = None) -> None:
        self._config = config
        # Retries are handled here so that only transient classes are retried.
        self._client = client or AsyncOpenAI(
            api_key=config.api_key or "unset",
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=0,
        )

    @property
    def chat_model(self) -> str:
        return self._config.chat_model

    @property
    def embedding_model(self) -> str:
        return self._config.embedding_model

    def is_configured(self) -> bool:
        return bool(self._config.api_key)

    async def chat_completion(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.2,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> ChatCompletion:
        kwargs: dict[str, Any] = {
            "model": self._config.chat_model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens or self._config.max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self._with_retry(
            "chat_completion", lambda: self._client.chat.completions.create(**kwargs)
        )
        if not response.choices or not response.choices[0].message.content:
            raise EmptyResponseError("Empty response from model")

        return ChatCompletion(
            text=response.choices[0].message.content,
            usage=_usage(response.usage),
            model=response.model or self._config.chat_model,
        )

    async def create_embedding(self, texts: list[str]) -> EmbeddingResponse:
        if not texts:
            return EmbeddingResponse(vectors=[], model=self._config.embedding_model)

        response = await self._with_retry(
            "create_embedding",
            lambda: self._client.embeddings.create(
                model=self._config.embedding_model, input=texts,
            ),
        )
        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(texts):
            raise EmptyResponseError(
                f"Embedding count mismatch: sent {len(texts)}, received {len(data)}"
            )

        return EmbeddingResponse(
            vectors=[list(item.embedding) for item in data],
            usage=_usage(response.usage),
            model=response.model or self._config.embedding_model,
        )

    async def test_connection(self) -> bool:
        """Cheap round-trip to verify credentials and model availability."""
        try:
            await self.chat_completion(
                [{"role": "user", "content": "Say 'ok'"}], max_tokens=5,
            )
        except ProviderError as exc:
            log_with_context(
                logger, logging.WARNING, "Provider connection test failed",
                code=exc.code, status=exc.status,
            )
            return False
        return True

    async def _with_retry(self, operation: str, call: Any) -> Any:
        attempts = max(1, self._config.max_retries)
        delay = self._config.retry_delay

        for attempt in range(attempts):
            try:
                return await call()
            except OpenAIError as exc:
                error = classify_error(exc)
                if not error.retryable or attempt == attempts - 1:
                    log_with_context(
                        logger, logging.ERROR, "Provider call failed",
                        operation=operation, code=error.code, status=error.status,
                        attempt=attempt + 1,
                    )
                    raise error from exc

                log_with_context(
                    logger, logging.WARNING, "Provider call failed, retrying",
                    operation=operation, code=error.code, attempt=attempt + 1,
                    max_attempts=attempts, delay=delay,
                )
                await asyncio.sleep(delay)
                delay *= self._config.retry_backoff

        raise ProviderError(f"{operation} exhausted retries")  # unreachable
