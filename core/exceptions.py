"""
Custom exceptions for the aggregation and onboarding pipelines with structured error context.

Each exception carries context information for debugging and for the
per-source error state surfaced through the health endpoint.

Exception Hierarchy:
    TaskHubException (base)
    ├── SourceFetchError
    │   ├── NetworkError
    │   ├── RateLimitError
    │   ├── AuthenticationError
    │   └── ResourceNotFoundError
    ├── NormalizationError
    ├── StoreError
    │   └── UpsertError
    ├── IssueTrackerError
    ├── OnboardingError
    │   ├── MatrixResolutionError
    │   └── TicketCreationError
    ├── ConfigurationError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class TaskHubException(Exception):
    """
    Base exception for all TaskHub errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, ref, etc.)
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

class RetryableError(TaskHubException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Service unavailable (HTTP 503)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0
    ):
        super().__init__(message, context, original_exception)
        self.max_retries = max_retries
        self.retry_delay = retry_delay


class NonRetryableError(TaskHubException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Resource not found (HTTP 404)
    """
    pass


# ============================================================================
# Source Fetch Errors
# ============================================================================

class SourceFetchError(TaskHubException):
    """
    Base exception for failures fetching raw items from an external source.

    Context should include:
        - source: Task source being synced
        - url: Endpoint that failed (if applicable)
        - status_code: HTTP status code (if applicable)
    """
    pass


class NetworkError(RetryableError, SourceFetchError):
    """Network-related errors that should be retried."""
    pass


class RateLimitError(RetryableError, SourceFetchError):
    """Rate limiting errors (HTTP 429) that should be retried with backoff."""

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


class AuthenticationError(NonRetryableError, SourceFetchError):
    """Authentication failures (HTTP 401, 403) that should not be retried."""
    pass


class ResourceNotFoundError(NonRetryableError, SourceFetchError):
    """Resource not found errors (HTTP 404) that should not be retried."""
    pass


# ============================================================================
# Normalization Errors
# ============================================================================

class NormalizationError(TaskHubException):
    """
    Exception raised when a raw source record cannot be mapped to a task.

    Context should include:
        - source: Task source of the record
        - raw_id: Identifier of the raw record (if recoverable)
        - missing_fields: Required fields that could not be derived
    """
    pass


# ============================================================================
# Store Errors
# ============================================================================

class StoreError(TaskHubException):
    """Base exception for task store failures."""
    pass


class UpsertError(StoreError):
    """
    Exception raised when an upsert operation fails.

    Context should include:
        - task_id: ID of the task being upserted
        - source: Task source
    """
    pass


# ============================================================================
# Issue Tracker Errors
# ============================================================================

class IssueTrackerError(TaskHubException):
    """Non-success response from the issue tracker REST API."""

    def __init__(
        self,
        message: str,
        status_code: int,
        body: Any = None,
        retryable: bool = False,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        self.body = body
        self.retryable = retryable
        self.context["status_code"] = status_code


# ============================================================================
# Onboarding Errors
# ============================================================================

class OnboardingError(TaskHubException):
    """Base exception for onboarding ticket orchestration failures."""
    pass


class MatrixResolutionError(OnboardingError):
    """
    Raised when a sale type resolves to no ticket groups.

    Context should include:
        - sale_type: The requested sale type
        - onboarding_ref: The onboarding reference
    """
    pass


class TicketCreationError(OnboardingError):
    """Raised when a parent ticket cannot be found or created."""
    pass


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(TaskHubException):
    """Raised when a required integration is not configured."""
    pass
