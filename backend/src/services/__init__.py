"""
Service layer for business logic.

Service classes live in their own modules and are imported from there
(e.g. ``from backend.src.services.series_service import SeriesService``);
this package only re-exports the shared exception hierarchy and the GUID
helper, which have no model dependencies.
"""

from backend.src.services.exceptions import (
    ServiceError,
    NotFoundError,
    ValidationError,
    InvalidDateKeyError,
    UnboundedWindowError,
    InvalidRuleError,
    ConfigurationError,
)
from backend.src.services.guid import GuidService

__all__ = [
    "ServiceError",
    "NotFoundError",
    "ValidationError",
    "InvalidDateKeyError",
    "UnboundedWindowError",
    "InvalidRuleError",
    "ConfigurationError",
    "GuidService",
]
