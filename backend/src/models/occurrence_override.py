"""
OccurrenceOverride model for per-occurrence exceptions.

Occurrences are virtual objects generated from an event's rule. Each has a
stable identifier {event_guid}:{YYYY-MM-DD}; this table stores the sparse
set of occurrences whose fields differ from the series.

Design Rationale:
- Logical key is (event_id, occurrence_date), unique
- occurrence_date is a YYYY-MM-DD string in the application timezone, so it
  stays attached to the same real-world date when the rule changes
- Every field is nullable; NULL means "inherit from the series"
- A moved occurrence keeps its original occurrence_date
"""

from typing import Any, Dict

from sqlalchemy import Column, Integer, String, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from backend.src.models import Base
from backend.src.models.mixins import GuidMixin
from backend.src.models.types import UTCDateTime, utc_now


# Fields an override can set; everything else is bookkeeping
OVERRIDE_FIELDS = (
    "summary",
    "description",
    "url",
    "location",
    "dtstart",
    "dtend",
    "status",
    "notes",
)


class OccurrenceOverride(Base, GuidMixin):
    """
    Occurrence override model.

    Attributes:
        id: Primary key (internal, never exposed)
        uuid: UUIDv7 for external identification (inherited from GuidMixin)
        guid: GUID string property (ovr_xxx, inherited from GuidMixin)
        event_id: FK to EventSeries
        occurrence_date: Overridden occurrence (YYYY-MM-DD, application timezone)
        summary, description, url, location: Field overrides (NULL = inherit)
        dtstart, dtend: Moved start/end (NULL = rule slot / series duration)
        status: Status override (NULL = inherit)
        notes: Editorial note, e.g. "Moved due to holiday"
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "occurrence_overrides"

    GUID_PREFIX = "ovr"

    id = Column(Integer, primary_key=True, autoincrement=True)

    event_id = Column(
        Integer,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    occurrence_date = Column(String(10), nullable=False)

    summary = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    url = Column(String(1000), nullable=True)
    location = Column(String(500), nullable=True)
    dtstart = Column(UTCDateTime, nullable=True)
    dtend = Column(UTCDateTime, nullable=True)
    status = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, default=utc_now, nullable=False)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False)

    event = relationship("EventSeries", back_populates="overrides")

    __table_args__ = (
        UniqueConstraint("event_id", "occurrence_date", name="uq_override_event_date"),
    )

    def field_values(self) -> Dict[str, Any]:
        """Override field values, used to copy an override to another series."""
        return {name: getattr(self, name) for name in OVERRIDE_FIELDS}

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<OccurrenceOverride("
            f"id={self.id}, "
            f"event_id={self.event_id}, "
            f"date={self.occurrence_date}"
            f")>"
        )
