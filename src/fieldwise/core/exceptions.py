"""Fieldwise exception hierarchy."""

from __future__ import annotations

from enum import StrEnum


class FieldwiseError(Exception):
    """Base exception for all Fieldwise errors."""


# ---------------------------------------------------------------------------
# Input errors: rejected before the resolution pipeline runs
# ---------------------------------------------------------------------------

class InvalidFieldDescriptorError(FieldwiseError):
    """A raw field descriptor from form detection is malformed."""


class ProfileNotFoundError(FieldwiseError):
    """No profile exists for the requested id."""

    def __init__(self, profile_id: str) -> None:
        self.profile_id = profile_id
        super().__init__(f"Profile not found: {profile_id}")


class DocumentNotFoundError(FieldwiseError):
    """The profile has no document with the requested id."""


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

class StorageError(FieldwiseError):
    """Durable store operation failed."""


class CacheError(StorageError):
    """Redis cache operation failed."""


# ---------------------------------------------------------------------------
# Remote provider
# ---------------------------------------------------------------------------

class ProviderErrorCode(StrEnum):
    INVALID_API_KEY = "INVALID_API_KEY"
    RATE_LIMITED = "RATE_LIMITED"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    CONTEXT_LENGTH_EXCEEDED = "CONTEXT_LENGTH_EXCEEDED"
    CONTENT_FILTERED = "CONTENT_FILTERED"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    EMPTY_RESPONSE = "EMPTY_RESPONSE"
    UNKNOWN = "UNKNOWN"


class ProviderError(FieldwiseError):
    """Remote LLM/embedding call failed."""

    code: ProviderErrorCode = ProviderErrorCode.UNKNOWN
    retryable: bool = False

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class AuthenticationFailedError(ProviderError):
    code = ProviderErrorCode.INVALID_API_KEY


class RateLimitedError(ProviderError):
    code = ProviderErrorCode.RATE_LIMITED
    retryable = True


class ModelNotFoundError(ProviderError):
    code = ProviderErrorCode.MODEL_NOT_FOUND


class ContextLengthExceededError(ProviderError):
    code = ProviderErrorCode.CONTEXT_LENGTH_EXCEEDED


class ContentFilteredError(ProviderError):
    code = ProviderErrorCode.CONTENT_FILTERED


class ServerError(ProviderError):
    code = ProviderErrorCode.SERVER_ERROR
    retryable = True


class NetworkError(ProviderError):
    code = ProviderErrorCode.NETWORK_ERROR
    retryable = True


class EmptyResponseError(ProviderError):
    code = ProviderErrorCode.EMPTY_RESPONSE


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

class InvalidStateTransitionError(FieldwiseError):
    """A fill session was asked to move along an edge it does not have."""

