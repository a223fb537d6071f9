"""
Custom exceptions for the collection pipeline with structured error context.

This module provides the exception hierarchy used by the job queue, the
queue processor, the resumable collection session and the on-demand
refresh. Each exception carries context information for debugging and
monitoring.

Exception Hierarchy:
    CollectionException (base)
    ├── ConfigurationError
    │   ├── EmptyScopeError
    │   └── ConfigurationNotFoundError
    ├── ProviderError
    │   ├── ProviderTimeoutError
    │   ├── ProviderRateLimitError
    │   ├── ProviderServerError
    │   ├── ProviderAuthenticationError
    │   └── EmptyResponseError
    ├── PersistenceError
    │   └── UpsertError
    ├── QueueError
    │   └── JobLeaseError
    ├── SessionError
    │   ├── EntityNotFoundError
    │   └── NoWorkItemsError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class CollectionException(Exception):
    """
    Base exception for all collection-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (job, provider, work item, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(CollectionException):
    """
    Mixin for errors that a later attempt may resolve.

    Use this for transient errors like:
    - Provider timeouts
    - Rate limiting (HTTP 429)
    - Provider server errors (HTTP 5xx)
    """
    pass


class NonRetryableError(CollectionException):
    """
    Mixin for errors that repeating the same call will not fix.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Empty provider responses
    """
    pass


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(CollectionException):
    """Base exception for invalid or unusable collection configurations."""
    pass


class EmptyScopeError(ConfigurationError):
    """
    Raised when a configuration's scope dimensions expand to nothing.

    Context should include:
        - config_id: ID of the configuration
        - scope_dimensions: The dimension lists as stored
    """
    pass


class ConfigurationNotFoundError(ConfigurationError):
    """Raised when a forced run names a configuration that does not exist."""
    pass


# ============================================================================
# Provider Errors
# ============================================================================

class ProviderError(CollectionException):
    """
    Base exception for failed provider invocations.

    Context should include:
        - provider_key: Key of the provider
        - status_code: HTTP status code (if applicable)
        - attempt: Number of attempts made
    """
    pass


class ProviderTimeoutError(RetryableError, ProviderError):
    """Provider call exceeded its timeout."""
    pass


class ProviderRateLimitError(RetryableError, ProviderError):
    """Provider rejected the call with HTTP 429."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after:
            self.context["retry_after"] = retry_after


class ProviderServerError(RetryableError, ProviderError):
    """Provider answered with a 5xx status."""
    pass


class ProviderAuthenticationError(NonRetryableError, ProviderError):
    """Authentication failures (HTTP 401, 403) against a provider proxy."""
    pass


class EmptyResponseError(NonRetryableError, ProviderError):
    """Provider answered successfully but without any response text."""
    pass


# ============================================================================
# Persistence Errors
# ============================================================================

class PersistenceError(CollectionException):
    """
    Base exception for failed writes of collected data.

    Context should include:
        - operation: Type of database operation (SELECT, UPSERT, UPDATE)
        - table_name: Name of the table
    """
    pass


class UpsertError(PersistenceError):
    """
    Raised when the response upsert fails.

    Context should include:
        - work_item_id: ID of the work item
        - provider_key: Provider whose response was being stored
    """
    pass


# ============================================================================
# Queue Errors
# ============================================================================

class QueueError(CollectionException):
    """Base exception for job queue bookkeeping failures."""
    pass


class JobLeaseError(QueueError):
    """
    Raised when a write-back finds that the job lease is no longer held.

    Context should include:
        - job_id: ID of the queue job
        - lease_token: Token the writer believed it held
    """
    pass


# ============================================================================
# Session Errors
# ============================================================================

class SessionError(CollectionException):
    """Base exception for entity-scoped collection sessions."""
    pass


class EntityNotFoundError(SessionError):
    """Raised when the entity driving a session does not exist."""
    pass


class NoWorkItemsError(SessionError):
    """Raised when an entity has no active work items to collect."""
    pass
