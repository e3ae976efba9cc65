"""Re-export persistence protocols from core for convenience."""

from __future__ import annotations

from fieldwise.core.protocols import ICacheBackend, IProfileStore, IVectorStore

__all__ = ["ICacheBackend", "IProfileStore", "IVectorStore"]
