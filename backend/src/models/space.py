"""
Space model for calendar containers.

A space groups the events of one calendar (a venue, a club, a project).
Its name doubles as the display location of events that leave their own
location empty.
"""

from sqlalchemy import Column, Integer, String, Boolean, Text
from sqlalchemy.orm import relationship

from backend.src.models import Base
from backend.src.models.mixins import GuidMixin
from backend.src.models.types import UTCDateTime, utc_now


class Space(Base, GuidMixin):
    """
    Calendar space model.

    Attributes:
        id: Primary key (internal, never exposed)
        uuid: UUIDv7 for external identification (inherited from GuidMixin)
        guid: GUID string property (spc_xxx, inherited from GuidMixin)
        slug: URL slug (unique)
        name: Display name, also the fallback event location
        description: Optional description
        is_public: Whether the space is listed for anonymous viewers
        created_at: Creation timestamp
        updated_at: Last update timestamp

    Relationships:
        events: Event series in this space (one-to-many, CASCADE on delete)
        event_types: Space-specific event types (one-to-many, CASCADE on delete)
    """

    __tablename__ = "spaces"

    GUID_PREFIX = "spc"

    id = Column(Integer, primary_key=True, autoincrement=True)

    slug = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_public = Column(Boolean, default=True, nullable=False)

    created_at = Column(UTCDateTime, default=utc_now, nullable=False)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False)

    events = relationship(
        "EventSeries",
        back_populates="space",
        lazy="dynamic",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    event_types = relationship(
        "EventType",
        back_populates="space",
        lazy="dynamic",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Space(id={self.id}, slug='{self.slug}')>"

    def __str__(self) -> str:
        """Human-readable string representation."""
        return self.name
