"""
Pydantic schemas for event series request validation.

Provides data validation for:
- Event series creation (single events and recurring series)
- Event series updates (partial, only supplied fields are applied)

Design:
- A series with no rrule is a single event; with an rrule it recurs
- Datetimes are instants; naive values are interpreted as UTC
- Recurrence rules are checked by the service layer, which owns the
  InvalidRuleError contract
- GUIDs are exposed via guid property, never internal IDs
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from backend.src.utils.timezone import is_valid_date_key


StatusValue = Literal["tentative", "confirmed", "cancelled"]


def _strip_optional(v: Optional[str]) -> Optional[str]:
    """Strip whitespace; blank strings become None."""
    if v is None:
        return None
    v = v.strip()
    return v or None


# ============================================================================
# Request Schemas
# ============================================================================


class EventSeriesCreate(BaseModel):
    """
    Schema for creating a new event series.

    Required:
        summary: Event title
        dtstart: First occurrence start (instant)

    Optional:
        description, url, location: Display fields (location NULL = space name)
        dtend: End of the first occurrence
        timezone: IANA timezone (default: application timezone)
        all_day: Whether occurrences span full days
        rrule: RFC 5545 rule; omit for a single event
        recurrence_end_date: Exclusive bound on occurrences
        exdates: Excluded occurrence dates (YYYY-MM-DD)
        frequency_label: Human-readable frequency
        status: tentative, confirmed (default) or cancelled
        is_draft: Hidden from anonymous viewers (default: True)
    """

    summary: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(default=None)
    url: Optional[str] = Field(default=None, max_length=1000)
    location: Optional[str] = Field(default=None, max_length=500)

    dtstart: datetime
    dtend: Optional[datetime] = Field(default=None)
    timezone: Optional[str] = Field(default=None, max_length=100)
    all_day: bool = Field(default=False)

    rrule: Optional[str] = Field(default=None)
    recurrence_end_date: Optional[datetime] = Field(default=None)
    exdates: List[str] = Field(default_factory=list)
    frequency_label: Optional[str] = Field(default=None, max_length=255)

    status: StatusValue = Field(default="confirmed")
    is_draft: bool = Field(default=True)

    @field_validator("summary")
    @classmethod
    def validate_summary_not_whitespace(cls, v: str) -> str:
        """Ensure summary is not just whitespace."""
        if not v.strip():
            raise ValueError("Summary cannot be empty or whitespace")
        return v.strip()

    @field_validator("rrule", "location", "url", "frequency_label")
    @classmethod
    def strip_optional(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)

    @field_validator("exdates")
    @classmethod
    def validate_exdates(cls, v: List[str]) -> List[str]:
        """Ensure every excluded date is a YYYY-MM-DD calendar date."""
        keys = []
        for key in (k.strip() for k in v):
            if not is_valid_date_key(key):
                raise ValueError(f"Invalid excluded date '{key}'. Expected format YYYY-MM-DD")
            if key not in keys:
                keys.append(key)
        return keys

    @model_validator(mode="after")
    def validate_time_range(self) -> "EventSeriesCreate":
        """Ensure dtend is not before dtstart."""
        if self.dtend is not None and self.dtend < self.dtstart:
            raise ValueError("dtend must not be before dtstart")
        return self

    model_config = {
        "json_schema_extra": {
            "example": {
                "summary": "Open Hack Night",
                "dtstart": "2024-01-09T18:00:00Z",
                "dtend": "2024-01-09T21:00:00Z",
                "timezone": "Europe/Berlin",
                "rrule": "FREQ=WEEKLY;BYDAY=TU",
                "frequency_label": "Every Tuesday (~19:00)",
                "status": "confirmed",
                "is_draft": False,
            }
        }
    }


class EventSeriesUpdate(BaseModel):
    """
    Schema for updating an existing event series.

    All fields are optional - only provided fields will be updated.
    Setting rrule to null turns a recurring series into a single event.
    """

    summary: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None)
    url: Optional[str] = Field(default=None, max_length=1000)
    location: Optional[str] = Field(default=None, max_length=500)

    dtstart: Optional[datetime] = Field(default=None)
    dtend: Optional[datetime] = Field(default=None)
    timezone: Optional[str] = Field(default=None, max_length=100)
    all_day: Optional[bool] = Field(default=None)

    rrule: Optional[str] = Field(default=None)
    recurrence_end_date: Optional[datetime] = Field(default=None)
    frequency_label: Optional[str] = Field(default=None, max_length=255)

    status: Optional[StatusValue] = Field(default=None)
    is_draft: Optional[bool] = Field(default=None)

    @field_validator("summary")
    @classmethod
    def validate_summary_not_whitespace(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("Summary cannot be empty or whitespace")
        return v.strip() if v else None

    @field_validator("rrule", "location", "url", "frequency_label")
    @classmethod
    def strip_optional(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)

    model_config = {
        "json_schema_extra": {
            "example": {
                "summary": "Open Hack Night (new room)",
                "is_draft": False,
            }
        }
    }
