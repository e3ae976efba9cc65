"""Select the configured model provider."""

from __future__ import annotations

from fieldwise.core.config import LLMConfig
from fieldwise.core.protocols import IModelProvider
from fieldwise.model_providers.mock_provider import MockModelProvider
from fieldwise.model_providers.openai_provider import OpenAIProvider


def create_provider(config: LLMConfig) -> IModelProvider:
    if config.provider == "openai":
        return OpenAIProvider(config)
    # No credentials, no generative tier; the mock included.
    return MockModelProvider(configured=bool(config.api_key))
