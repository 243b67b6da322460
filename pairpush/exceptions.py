"""
Custom exception classes with context for pairpush.

All exceptions inherit from PairPushError and can carry a context dict
that is attached to structured log records.
"""

from __future__ import annotations


class PairPushError(Exception):
    """
    Base exception for pairpush.

    Attributes:
        message: Human-readable error message
        context: Optional dictionary with additional context for logging/debugging
    """

    def __init__(self, message: str, context: dict[str, object] | None = None):
        """
        Initialize exception with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dictionary with contextual information
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ConfigurationError(PairPushError):
    """
    A required setting is missing or unusable.

    Example:
        raise ConfigurationError(
            "Firebase credentials not configured",
            context={"missing": ["firebase_private_key"]},
        )
    """


class ValidationError(PairPushError):
    """
    Inbound request failed validation (maps to HTTP 400).

    Example:
        raise ValidationError(
            "recipientId and type required",
            context={"field": "recipientId"},
        )
    """


class UpstreamAuthError(PairPushError):
    """OAuth2 token exchange with the push provider failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_body: str | None = None,
        context: dict[str, object] | None = None,
    ):
        super().__init__(message, context)
        self.status_code = status_code
        self.response_body = response_body


class DeliveryError(PairPushError):
    """
    A single device delivery was rejected or could not be sent.

    Only ever recorded in that device's outcome; never fails a dispatch.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_body: str | None = None,
        error_code: str | None = None,
        context: dict[str, object] | None = None,
    ):
        super().__init__(message, context)
        self.status_code = status_code
        self.response_body = response_body
        self.error_code = error_code


class TokenStoreError(PairPushError):
    """
    Device token read or write failed.

    Example:
        raise TokenStoreError(
            "Failed to fetch tokens",
            context={"operation": "list_tokens", "status_code": 503},
        )
    """
