"""
Custom exceptions for service layer.

Provides specific exception types for business logic errors
that can be translated to appropriate responses by the calling layer.

Taxonomy:
- NotFoundError: referenced series/space/event type/override does not exist
- ValidationError: malformed input (bad window, dtend before dtstart, ...)
- InvalidDateKeyError: occurrence date key is not a YYYY-MM-DD calendar date
- UnboundedWindowError: open-ended expansion requested without a window ceiling
- InvalidRuleError: recurrence rule string cannot be parsed
- ConfigurationError: invalid configuration (unknown timezone identifier)
"""

from typing import Any, Optional


class ServiceError(Exception):
    """Base exception for service layer errors."""
    pass


class NotFoundError(ServiceError):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier} not found")


class ValidationError(ServiceError):
    """Raised when input validation fails."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)


class InvalidDateKeyError(ValidationError):
    """Raised when an occurrence date key is not a valid YYYY-MM-DD date."""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(
            f"Invalid occurrence date '{value}'. Expected format YYYY-MM-DD",
            field="occurrence_date",
        )


class UnboundedWindowError(ValidationError):
    """Raised when an open-ended recurrence would be expanded without an end."""

    def __init__(self, message: str = "A finite window end is required to expand an open-ended recurrence"):
        super().__init__(message, field="window_end")


class InvalidRuleError(ServiceError):
    """Raised when a recurrence rule string cannot be parsed.

    Non-fatal while listing occurrences (the series is skipped and logged),
    fatal when the rule is supplied on a write.
    """

    def __init__(self, rule: Optional[str], reason: str):
        self.rule = rule
        self.reason = reason
        self.message = f"Invalid recurrence rule '{rule}': {reason}"
        super().__init__(self.message)


class ConfigurationError(ServiceError):
    """Raised for invalid configuration such as an unknown timezone identifier."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)
