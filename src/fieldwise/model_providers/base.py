"""Provider-neutral result types for chat and embedding calls."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletion(BaseModel):
    text: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = ""


class EmbeddingResponse(BaseModel):
    """One vector per input text, in input order."""

    vectors: list[list[float]]
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = ""
