"""
Error types for the EVA dashboard.

Domain failures are raised as DashboardError (or a subclass) carrying a stable
error code, a human-readable message and structured details. Background jobs
catch these at their loop boundary and log them; the HTTP layer maps them to
status codes.
"""

from __future__ import annotations

from typing import Any


class DashboardError(Exception):
    """
    Base exception class for dashboard errors.

    Attributes:
        error_code: Internal error code string (e.g., "invalid_argument",
            "unavailable", "failed_precondition").
        message: Human-readable error message.
        details: Optional structured details (e.g., endpoint, day key).

    Example:
        >>> raise DashboardError(
        ...     error_code="unavailable",
        ...     message="Endpoint did not answer",
        ...     details={"endpoint": "http://seed1.evanesco.org:8546"},
        ... )
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize a DashboardError.

        Args:
            error_code: Internal error code string identifying the error category.
            message: Human-readable error message.
            details: Optional dictionary with structured error details.
        """
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        """Return a detailed string representation."""
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to a dictionary for serialization.

        Returns:
            Dictionary with error_code, message, and details.
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class InvalidArgumentError(DashboardError):
    """
    Error raised for invalid input values.

    Used for out-of-range counters, malformed records and bad day keys.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an InvalidArgumentError."""
        super().__init__(
            error_code="invalid_argument", message=message, details=details
        )


class UnavailableError(DashboardError):
    """
    Error raised when a remote endpoint cannot provide a value.

    Covers connection failures, timeouts, HTTP errors and JSON-RPC error
    replies. A single UnavailableError invalidates the sampling round it
    occurred in.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an UnavailableError."""
        super().__init__(error_code="unavailable", message=message, details=details)


class FailedPreconditionError(DashboardError):
    """
    Error raised when a precondition for the operation is not met.

    The store raises this when it cannot be opened or written, and the
    accumulator raises it when started twice.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a FailedPreconditionError."""
        super().__init__(
            error_code="failed_precondition", message=message, details=details
        )
