"""
Exception hierarchy for the Stargate document search client.

Query construction errors (validation and sequencing) are raised at the
offending builder call. Client errors wrap HTTP transport failures and
non-success responses of the Document API.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class StargateClientError(Exception):
    """
    Base exception for Stargate client errors.

    Wraps underlying transport exceptions with additional context
    and ensures proper logging.
    """

    def __init__(self, message: str, original_error: Exception | None = None):
        """
        Initialize client error.

        Args:
            message: Human-readable error message
            original_error: Original exception that caused this error
        """
        super().__init__(message)
        self.original_error = original_error
        self.message = message

        if original_error:
            logger.error(
                f"{self.__class__.__name__}: {message}",
                exc_info=original_error,
                extra={
                    "error_type": type(original_error).__name__,
                    "error_message": str(original_error)
                }
            )
        else:
            logger.debug(f"{self.__class__.__name__}: {message}")

    def __str__(self) -> str:
        """Return formatted error message."""
        if self.original_error:
            return f"{self.message} (caused by {type(self.original_error).__name__}: {self.original_error})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, original_error={self.original_error!r})"


# ============================================================================
# Query construction errors
# ============================================================================

class QueryValidationError(StargateClientError, ValueError):
    """
    Raised when a builder argument is invalid.

    This includes:
    - Page size outside of [1, 20]
    - Empty field names, page states or raw where clauses
    - Filter values that cannot be encoded as JSON
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        self.field = field
        self.value = value
        if field:
            message = f"Validation error for '{field}': {message}"
        super().__init__(message)


class QuerySequencingError(StargateClientError, ValueError):
    """
    Raised when builder calls happen in an invalid order.

    For example and_() before where(), where() twice, or mixing a raw
    where clause with structured filters.
    """


# ============================================================================
# Client errors
# ============================================================================

class ClientConfigurationError(StargateClientError):
    """Raised when the client is missing an endpoint, a token or a namespace."""


class DocumentApiError(StargateClientError):
    """
    Raised when the Document API answers with a non-success status.

    Client errors (4xx) are never retried. Server errors (5xx) are retried
    and surface as this exception once retries are exhausted.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
        original_error: Exception | None = None
    ):
        self.status_code = status_code
        self.response_body = response_body
        if status_code is not None:
            message = f"{message} (status={status_code})"
        super().__init__(message, original_error)


class DocumentApiAuthenticationError(DocumentApiError):
    """Raised on 401/403, the token is missing, expired or lacks permissions."""


class DocumentApiTimeoutError(StargateClientError):
    """
    Raised when a request times out.

    Often transient, the client retries it before giving up.
    """

    def __init__(
        self,
        message: str = "Request timed out",
        original_error: Exception | None = None,
        timeout_seconds: float | None = None
    ):
        self.timeout_seconds = timeout_seconds
        if timeout_seconds:
            message = f"{message} (timeout={timeout_seconds}s)"
        super().__init__(message, original_error)


class DocumentApiUnavailableError(StargateClientError):
    """Raised when the Stargate endpoint cannot be reached."""

    def __init__(self, message: str = "Stargate endpoint unavailable", original_error: Exception | None = None):
        super().__init__(message, original_error)
