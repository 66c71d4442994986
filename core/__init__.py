"""
Core utilities and configuration for TaskHub.

This package provides foundational components used by the aggregation
engine and the onboarding orchestrator:

Modules:
    config: Application configuration and environment variable management
    database: Database engine and session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities
    settings_store: Runtime key/value settings (enabled flags, sync intervals)

Usage:
    from core.config import settings
    from core.database import get_session
    from core.exceptions import SourceFetchError, MatrixResolutionError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "get_session",
    "setup_logging",
    "SettingsStore",
    "UserSettingsStore",
    # Exceptions
    "TaskHubException",
    "SourceFetchError",
    "NetworkError",
    "RateLimitError",
    "AuthenticationError",
    "ResourceNotFoundError",
    "NormalizationError",
    "StoreError",
    "UpsertError",
    "IssueTrackerError",
    "OnboardingError",
    "MatrixResolutionError",
    "TicketCreationError",
    "ConfigurationError",
    "RetryableError",
    "NonRetryableError",
]
