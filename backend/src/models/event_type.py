"""
EventType model for shared event templates.

Event types classify events (rehearsal, workshop, meetup) and supply the
defaults an event falls back to: display color, default duration when the
event has no explicit end, and whether events of this type are internal
(hidden from anonymous viewers).
"""

from datetime import timedelta
from typing import Optional

from sqlalchemy import Column, Integer, String, Boolean, Text, ForeignKey
from sqlalchemy.orm import relationship

from backend.src.models import Base
from backend.src.models.mixins import GuidMixin
from backend.src.models.types import UTCDateTime, utc_now


class EventType(Base, GuidMixin):
    """
    Event type model.

    Attributes:
        id: Primary key (internal, never exposed)
        uuid: UUIDv7 for external identification (inherited from GuidMixin)
        guid: GUID string property (ety_xxx, inherited from GuidMixin)
        slug: URL slug (unique)
        name: Display name
        description: Optional description
        color: Display color (e.g., "#3B82F6")
        is_internal: Events of this type are never shown to anonymous viewers
        default_duration_minutes: Duration used when an event has no dtend
        space_id: Owning space (NULL = global type available in all spaces)
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "event_types"

    GUID_PREFIX = "ety"

    id = Column(Integer, primary_key=True, autoincrement=True)

    space_id = Column(
        Integer,
        ForeignKey("spaces.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    slug = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(20), nullable=True)
    is_internal = Column(Boolean, default=False, nullable=False)
    default_duration_minutes = Column(Integer, nullable=True)

    created_at = Column(UTCDateTime, default=utc_now, nullable=False)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False)

    space = relationship("Space", back_populates="event_types")
    events = relationship("EventSeries", back_populates="event_type", lazy="dynamic")

    @property
    def default_duration(self) -> Optional[timedelta]:
        """Default duration as a timedelta, or None when unset or zero."""
        if self.default_duration_minutes:
            return timedelta(minutes=self.default_duration_minutes)
        return None

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<EventType(id={self.id}, slug='{self.slug}', internal={self.is_internal})>"

    def __str__(self) -> str:
        """Human-readable string representation."""
        return self.name
