"""
EventSeries model for single and recurring event definitions.

One row defines either a single occurrence (rrule is NULL) or a recurring
series (rrule set). Occurrences are never stored: they are materialized per
query from dtstart, rrule, recurrence_end_date and exdates, then adjusted by
the sparse OccurrenceOverride rows.

Design Rationale:
- Overrides are keyed by occurrence date (YYYY-MM-DD), never by position in
  the expansion, so editing the rule does not reassign overrides
- exdates holds deleted occurrence dates of a recurring series
- sequence is bumped on every series- or occurrence-level change so
  calendar subscription clients notice the update
- status follows iCal STATUS; draft is an orthogonal visibility flag
"""

import enum
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import (
    Column, Integer, String, Boolean, Text, ForeignKey, Index
)
from sqlalchemy.orm import relationship

from backend.src.models import Base
from backend.src.models.mixins import GuidMixin
from backend.src.models.types import UTCDateTime, utc_now
from backend.src.utils.timezone import parse_exdates


class EventStatus(enum.Enum):
    """Event status enumeration (iCal STATUS values)."""
    TENTATIVE = "tentative"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class EventSeries(Base, GuidMixin):
    """
    Event series model.

    Attributes:
        id: Primary key (internal, never exposed)
        uuid: UUIDv7 for external identification (inherited from GuidMixin)
        guid: GUID string property (evt_xxx, inherited from GuidMixin)

        Core Fields:
            summary: Event title
            description: Event description
            url: Related link
            location: Location (NULL = space name)

        Time Fields:
            dtstart: Anchor instant (first occurrence)
            dtend: End of the first occurrence (NULL = event type default duration)
            timezone: IANA timezone the wall-clock rule follows
            all_day: Whether occurrences span full days

        Recurrence Fields:
            rrule: RFC 5545 rule (NULL = single occurrence)
            recurrence_end_date: Exclusive bound on occurrences, independent of UNTIL
            exdates: Comma-separated excluded occurrence dates (YYYY-MM-DD)
            frequency_label: Human-readable frequency ("Every Thursday (~19:00)")

        Status Fields:
            status: tentative, confirmed, cancelled
            is_draft: Hidden from anonymous viewers
            sequence: Change counter for subscription clients

        Timestamps:
            created_at: Creation timestamp
            updated_at: Last update timestamp

    Relationships:
        space: Parent Space (many-to-one, CASCADE on delete)
        event_type: EventType (many-to-one, RESTRICT on delete)
        overrides: Per-occurrence overrides (one-to-many, CASCADE on delete)
    """

    __tablename__ = "events"

    GUID_PREFIX = "evt"

    id = Column(Integer, primary_key=True, autoincrement=True)

    space_id = Column(
        Integer,
        ForeignKey("spaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    event_type_id = Column(
        Integer,
        ForeignKey("event_types.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Core fields
    summary = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    url = Column(String(1000), nullable=True)
    location = Column(String(500), nullable=True)  # NULL = space name

    # Time fields
    dtstart = Column(UTCDateTime, nullable=False, index=True)
    dtend = Column(UTCDateTime, nullable=True)
    timezone = Column(String(100), nullable=False, default="UTC")
    all_day = Column(Boolean, default=False, nullable=False)

    # Recurrence
    rrule = Column(Text, nullable=True)
    recurrence_end_date = Column(UTCDateTime, nullable=True)
    exdates = Column(Text, nullable=True)
    frequency_label = Column(String(255), nullable=True)

    # Status
    status = Column(String(20), default=EventStatus.CONFIRMED.value, nullable=False, index=True)
    is_draft = Column(Boolean, default=True, nullable=False)
    sequence = Column(Integer, default=0, nullable=False)

    # Timestamps
    created_at = Column(UTCDateTime, default=utc_now, nullable=False)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Relationships
    space = relationship("Space", back_populates="events")
    event_type = relationship("EventType", back_populates="events")
    overrides = relationship(
        "OccurrenceOverride",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OccurrenceOverride.occurrence_date",
    )

    __table_args__ = (
        Index("idx_events_space_start", "space_id", "dtstart"),
    )

    @property
    def is_recurring(self) -> bool:
        """True when the series has a recurrence rule."""
        return bool(self.rrule)

    @property
    def exdate_keys(self) -> List[str]:
        """Excluded occurrence dates as an ordered list."""
        return parse_exdates(self.exdates)

    @property
    def duration(self) -> Optional[timedelta]:
        """Occurrence duration: dtend - dtstart, else the event type default."""
        if self.dtend is not None:
            return self.dtend - self.dtstart
        if self.event_type is not None:
            return self.event_type.default_duration
        return None

    @property
    def effective_location(self) -> Optional[str]:
        """Get location, falling back to the space name."""
        if self.location:
            return self.location
        if self.space:
            return self.space.name
        return None

    def bump_sequence(self) -> None:
        """Record a change visible to calendar subscription clients."""
        self.sequence = (self.sequence or 0) + 1
        self.updated_at = utc_now()

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<EventSeries("
            f"id={self.id}, "
            f"summary='{self.summary}', "
            f"rrule={self.rrule!r}, "
            f"sequence={self.sequence}"
            f")>"
        )

    def __str__(self) -> str:
        """Human-readable string representation."""
        return self.summary
