"""Protocol interfaces for all Fieldwise collaborators.

All inter-layer communication goes through these Protocols; implementations
need no inheritance and are checked with isinstance().
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from fieldwise.model_providers.base import ChatCompletion, EmbeddingResponse
    from fieldwise.models.form import FieldMapping
    from fieldwise.models.profile import Profile
    from fieldwise.models.vectors import VectorEntry


# ---------------------------------------------------------------------------
# Model Provider
# ---------------------------------------------------------------------------

@runtime_checkable
class IModelProvider(Protocol):
    """Remote chat-completion and embedding API."""

    def is_configured(self) -> bool: ...

    async def chat_completion(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.2,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> ChatCompletion: ...

    async def create_embedding(self, texts: list[str]) -> EmbeddingResponse: ...


# ---------------------------------------------------------------------------
# Persistence: Profiles
# ---------------------------------------------------------------------------

@runtime_checkable
class IProfileStore(Protocol):
    """Durable profile collection keyed by profile id."""

    def get(self, profile_id: str) -> Profile | None: ...

    def put(self, profile: Profile) -> None: ...

    def delete(self, profile_id: str) -> None: ...

    def list_all(self) -> list[Profile]: ...


# ---------------------------------------------------------------------------
# Persistence: Vectors
# ---------------------------------------------------------------------------

@runtime_checkable
class IVectorStore(Protocol):
    """Durable vector collection, indexed by profile id and source kind."""

    def put_many(self, entries: list[VectorEntry]) -> None: ...

    def list_by_profile(self, profile_id: str) -> list[VectorEntry]: ...

    def delete(self, profile_id: str, entry_id: str) -> None: ...

    def delete_by_profile(self, profile_id: str) -> None: ...


# ---------------------------------------------------------------------------
# Persistence: Cache Backend
# ---------------------------------------------------------------------------

@runtime_checkable
class ICacheBackend(Protocol):
    """Redis-compatible cache interface."""

    def get(self, key: str) -> str | None: ...

    def setex(self, key: str, ttl: int, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self, prefix: str) -> list[str]: ...


# ---------------------------------------------------------------------------
# Execution Engine (sink)
# ---------------------------------------------------------------------------

@runtime_checkable
class IExecutionEngine(Protocol):
    """Applies mappings to the page and reports per-field progress."""

    async def execute(
        self,
        context_id: str,
        mappings: list[FieldMapping],
        options: dict[str, Any],
        on_progress: Any,
    ) -> bool: ...
