"""
Exceptions raised by the Riak document store.

Every error wraps the underlying transport or parse failure with context and
logs itself on construction. Failures never mutate the store, so callers may
retry on the same client.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class RiakStoreError(Exception):
    """
    Base exception for Riak store errors.

    Wraps underlying httpx/parse exceptions with additional context
    and ensures proper logging.
    """

    def __init__(self, message: str, original_error: Exception | None = None):
        """
        Initialize store error.

        Args:
            message: Human-readable error message
            original_error: Original exception that caused this error
        """
        super().__init__(message)
        self.original_error = original_error
        self.message = message

        if original_error:
            logger.error(
                f"RiakStoreError: {message}",
                exc_info=original_error,
                extra={
                    "error_type": type(original_error).__name__,
                    "error_message": str(original_error)
                }
            )
        else:
            logger.error(f"RiakStoreError: {message}")

    def __str__(self) -> str:
        """Return formatted error message."""
        if self.original_error:
            return f"{self.message} (caused by {type(self.original_error).__name__}: {self.original_error})"
        return self.message

    def __repr__(self) -> str:
        """Return detailed error representation."""
        return f"{self.__class__.__name__}(message={self.message!r}, original_error={self.original_error!r})"


class StoreConnectionError(RiakStoreError):
    """
    Raised when the Riak node cannot be reached.

    Usually requires checking:
    - Network connectivity
    - Riak node status
    - Configured HTTP url
    """

    def __init__(self, message: str = "Failed to connect to Riak", original_error: Exception | None = None):
        super().__init__(message, original_error)


class StoreQueryError(RiakStoreError):
    """
    Raised when Riak answers a request with an error status.

    Covers fetch, update, delete, search and index requests.
    """

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        query: str | None = None,
        status_code: int | None = None
    ):
        self.query = query
        self.status_code = status_code
        if status_code is not None:
            message = f"{message} [HTTP {status_code}]"
        if query:
            message = f"{message} [Query: {query[:100]}]"
        super().__init__(message, original_error)


class StoreConfigurationError(RiakStoreError):
    """Raised when the store is misconfigured."""

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message, original_error)


class StoreValidationError(RiakStoreError):
    """
    Raised when input validation fails.

    This includes:
    - Malformed schema declarations
    - Unknown schema names
    - Malformed condition expressions
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None, original_error: Exception | None = None):
        self.field = field
        self.value = value
        if field:
            message = f"Validation error for '{field}': {message}"
        super().__init__(message, original_error)


class StoreDecodeError(RiakStoreError):
    """Raised when a stored value cannot be coerced back to its declared type."""

    def __init__(self, message: str, field: str | None = None, value: Any = None, original_error: Exception | None = None):
        self.field = field
        self.value = value
        if field:
            message = f"Cannot decode field '{field}' from {value!r}: {message}"
        super().__init__(message, original_error)


class StoreTimeoutError(RiakStoreError):
    """
    Raised when an operation times out.

    For key streams, ``partial_result`` holds whatever the reducer had
    accumulated before the stream went quiet.
    """

    def __init__(
        self,
        message: str = "Operation timed out",
        original_error: Exception | None = None,
        timeout_seconds: float | None = None,
        operation_type: str | None = None,
        partial_result: Any = None
    ):
        self.timeout_seconds = timeout_seconds
        self.operation_type = operation_type
        self.partial_result = partial_result

        details = []
        if operation_type:
            details.append(f"operation={operation_type}")
        if timeout_seconds:
            details.append(f"timeout={timeout_seconds}s")

        if details:
            message = f"{message} ({', '.join(details)})"

        super().__init__(message, original_error)


class StoreStreamError(RiakStoreError):
    """
    Raised when a key stream ends with an unexpected message.

    ``partial_result`` holds the reducer accumulator at the time of failure.
    """

    def __init__(
        self,
        message: str = "Key stream failed",
        original_error: Exception | None = None,
        partial_result: Any = None
    ):
        self.partial_result = partial_result
        super().__init__(message, original_error)


class StoreUnsupportedOperationError(RiakStoreError):
    """Raised for operations the store does not implement (sorted searches)."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Operation not supported: {operation}")
