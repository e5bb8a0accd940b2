"""
prdgate Error Hierarchy

Base error and specific error types for all prdgate components.
Errors carry metadata for structured logging.
"""

from typing import Any, Dict, Optional


class PrdGateError(RuntimeError):
    """
    Base error for prdgate components. Carries metadata for structured logging.

    Attributes:
        category: Error category for classification (e.g., "llm", "storage")
        retryable: Whether the operation can be retried
        metadata: Additional context for logging and debugging
    """

    category: str = "runtime"
    retryable: bool = True

    def __init__(
        self,
        message: str,
        *,
        metadata: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.metadata = metadata or {}
        if retryable is not None:
            self.retryable = retryable


# Validation Errors
class ValidationError(PrdGateError):
    """Raised when input validation fails."""

    category = "validation"
    retryable = False


# Configuration Errors
class ConfigError(PrdGateError):
    """Raised when configuration is invalid or missing (API key, disabled tier)."""

    category = "config"
    retryable = False


# LLM Errors
class LLMError(PrdGateError):
    """Base class for LLM gateway failures."""

    category = "llm"


class ProviderError(LLMError):
    """
    Raised when the LLM provider returns an error response.

    Attributes:
        status_code: HTTP status returned by the provider, if any
    """

    category = "provider"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        if retryable is None and status_code in (401, 403):
            retryable = False
        super().__init__(message, metadata=metadata, retryable=retryable)
        self.status_code = status_code


class OperationCancelled(PrdGateError):
    """
    Raised when a cooperative cancellation token fires.

    Not an LLMError: callers treat cancellation as an outcome,
    not as a failure.
    """

    category = "cancelled"
    retryable = False


# Storage Errors
class StorageError(PrdGateError):
    """Raised when database operations fail."""

    category = "storage"
    retryable = False


class EntityNotFoundError(StorageError):
    """Raised when a requested record is not found in storage."""

    category = "storage"
    retryable = False
