"""
Core utilities and configuration for the response collection service.

This package provides foundational components used throughout the collector:

Modules:
    config: Application configuration and environment variable management
    database: Database connection and session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings
    from core.database import get_session
    from core.exceptions import ProviderError, PersistenceError
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()

    # Get database session
    async with async_session_maker() as session:
        # Perform database operations
        pass
"""

__all__ = [
    "settings",
    "get_session",
    "setup_logging",
    # Exceptions
    "CollectionException",
    "RetryableError",
    "NonRetryableError",
    "ConfigurationError",
    "EmptyScopeError",
    "ConfigurationNotFoundError",
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderRateLimitError",
    "ProviderServerError",
    "ProviderAuthenticationError",
    "EmptyResponseError",
    "PersistenceError",
    "UpsertError",
    "QueueError",
    "JobLeaseError",
    "SessionError",
    "EntityNotFoundError",
    "NoWorkItemsError",
]
