"""Application configuration using pydantic-settings with grouped env prefixes."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class LLMConfig(BaseSettings):
    """Remote chat/embedding provider configuration."""

    model_config = {"env_prefix": "FIELDWISE_LLM_"}

    provider: Literal["mock", "openai"] = "mock"
    api_key: str = ""
    base_url: str = "https://openrouter.ai/api/v1"
    chat_model: str = "openai/gpt-4o-mini"
    embedding_model: str = "openai/text-embedding-3-small"
    temperature: float = 0.2
    max_tokens: int = 2048
    timeout: float = 30.0  # seconds, per request
    max_retries: int = 3
    retry_delay: float = 1.0
    retry_backoff: float = 2.0


class EmbeddingConfig(BaseSettings):
    """Embedding gateway batching and cache sizing."""

    model_config = {"env_prefix": "FIELDWISE_EMBEDDING_"}

    batch_size: int = 20
    cache_size: int = 500


class RetrievalConfig(BaseSettings):
    """Retrieval-augmented context assembly."""

    model_config = {"env_prefix": "FIELDWISE_RAG_"}

    top_k: int = 5
    similarity_threshold: float = 0.5
    max_context_tokens: int = 1500
    min_truncation_tokens: int = 50
    max_query_fields: int = 10
    chunk_size: int = 500


class PromptConfig(BaseSettings):
    """Prompt assembly budget."""

    model_config = {"env_prefix": "FIELDWISE_PROMPT_"}

    max_tokens: int = 3000
    document_summary_chars: int = 500


class FillCacheConfig(BaseSettings):
    """LLM fill response cache."""

    model_config = {"env_prefix": "FIELDWISE_CACHE_"}

    ttl_seconds: int = 7 * 24 * 60 * 60
    key_salt: str = "fieldwise-fill-v1"
    key_prefix: str = "llm_fill_"


class LearningConfig(BaseSettings):
    """Learn-from-correction policy."""

    model_config = {"env_prefix": "FIELDWISE_LEARNING_"}

    enabled: bool = True
    min_confidence_to_learn: float = 0.95
    max_examples_per_profile: int = 100


class DynamoDBConfig(BaseSettings):
    """DynamoDB configuration."""

    model_config = {"env_prefix": "FIELDWISE_DYNAMO_"}

    table_suffix: str = ""  # "-dev", "-uat", or "" for prod
    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override


class RedisConfig(BaseSettings):
    """Redis cache configuration."""

    model_config = {"env_prefix": "FIELDWISE_REDIS_"}

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    decode_responses: bool = True


class AppSettings(BaseSettings):
    """Root application settings aggregating all sub-configs."""

    model_config = {"env_prefix": "FIELDWISE_"}

    environment: Literal["dev", "uat", "prod"] = "dev"
    log_level: str = "INFO"
    storage_backend: Literal["memory", "aws"] = "memory"

    llm: LLMConfig = LLMConfig()
    embedding: EmbeddingConfig = EmbeddingConfig()
    retrieval: RetrievalConfig = RetrievalConfig()
    prompt: PromptConfig = PromptConfig()
    cache: FillCacheConfig = FillCacheConfig()
    learning: LearningConfig = LearningConfig()
    dynamodb: DynamoDBConfig = DynamoDBConfig()
    redis: RedisConfig = RedisConfig()
