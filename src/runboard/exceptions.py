# src/runboard/exceptions.py

"""Custom exception hierarchy for Runboard.

This module provides a structured exception hierarchy that enables:
1. Proper HTTP status code mapping in API endpoints
2. Detailed error context for logging and debugging
3. A clear split between client mistakes and store failures
"""

from __future__ import annotations


class RunboardError(Exception):
    """Base exception for all Runboard errors.

    Attributes:
        message: Human-readable error description
        details: Optional dict with additional context for logging/debugging
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


# =============================================================================
# Validation Errors (HTTP 400)
# =============================================================================


class ValidationError(RunboardError):
    """Base class for client input errors. Never retried by the server."""

    pass


class MissingRunFieldsError(ValidationError):
    """Raised when a save request lacks user_id or run_id."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            message="user_id and run_id are required",
            details={"missing_fields": missing},
        )


# =============================================================================
# Store Errors (HTTP 500)
# =============================================================================


class StoreError(RunboardError):
    """Base class for failures raised by the relational store.

    Attributes:
        action: What the service was doing, e.g. "save run"
        reason: The underlying driver/pool message
    """

    def __init__(self, action: str, reason: str, details: dict | None = None) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            message=f"Failed to {action}",
            details={"action": action, "reason": reason, **(details or {})},
        )


class StoreUnavailableError(StoreError):
    """Connectivity loss, timeout or pool exhaustion.

    Transient: callers may retry with backoff.
    """

    pass


class StoreIntegrityError(StoreError):
    """Unexpected constraint or result-shape violation. Not retried."""

    pass


# =============================================================================
# Startup Errors
# =============================================================================


class ConfigurationError(RunboardError):
    """Raised at startup when the environment describes an unusable store."""

    pass
