"""
SQLAlchemy models for spacecal.

This module provides the declarative base class and imports all models
to ensure they are registered with SQLAlchemy's metadata.
"""

from sqlalchemy.orm import declarative_base

# Create the declarative base class
# All models will inherit from this Base class
Base = declarative_base()


# Import all models here so they are registered with Base.metadata
from backend.src.models.space import Space
from backend.src.models.event_type import EventType
from backend.src.models.event_series import EventSeries, EventStatus
from backend.src.models.occurrence_override import OccurrenceOverride, OVERRIDE_FIELDS

__all__ = [
    "Base",
    "Space",
    "EventType",
    "EventSeries",
    "EventStatus",
    "OccurrenceOverride",
    "OVERRIDE_FIELDS",
]
