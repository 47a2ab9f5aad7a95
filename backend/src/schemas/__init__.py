"""
Pydantic schemas for request validation.

This module exports all schema classes for use by callers of the service
layer.
"""

from backend.src.schemas.event_series import (
    EventSeriesCreate,
    EventSeriesUpdate,
)
from backend.src.schemas.occurrence import (
    OverridePatch,
    SeriesSplitPatch,
)

__all__ = [
    "EventSeriesCreate",
    "EventSeriesUpdate",
    "OverridePatch",
    "SeriesSplitPatch",
]
