"""
Pydantic schemas for occurrence-level edits.

Provides data validation for:
- Occurrence override patches (upsert by event + occurrence date)
- "This and all future occurrences" edits (series split)

Override patches are partial: only the fields present in the request are
written (model_dump(exclude_unset=True)). An explicit null clears the
override field, which makes the occurrence inherit the series value again.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


StatusValue = Literal["tentative", "confirmed", "cancelled"]


class OverridePatch(BaseModel):
    """
    Schema for creating or patching an occurrence override.

    Fields:
        summary, description, url, location: Display overrides
        dtstart: Moved start (the occurrence keeps its original date key)
        dtend: Moved end
        status: Status override (e.g., cancel a single occurrence)
        notes: Editorial note, e.g. "Moved due to holiday"
    """

    summary: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None)
    url: Optional[str] = Field(default=None, max_length=1000)
    location: Optional[str] = Field(default=None, max_length=500)
    dtstart: Optional[datetime] = Field(default=None)
    dtend: Optional[datetime] = Field(default=None)
    status: Optional[StatusValue] = Field(default=None)
    notes: Optional[str] = Field(default=None)

    @model_validator(mode="after")
    def validate_time_range(self) -> "OverridePatch":
        """Ensure a moved end is not before a moved start."""
        if self.dtstart is not None and self.dtend is not None and self.dtend < self.dtstart:
            raise ValueError("dtend must not be before dtstart")
        return self

    model_config = {
        "json_schema_extra": {
            "example": {
                "dtstart": "2024-05-02T17:00:00Z",
                "notes": "Moved due to holiday",
            }
        }
    }


class SeriesSplitPatch(BaseModel):
    """
    Schema for editing an occurrence and all future ones.

    Fields:
        summary, description, url, location, status: New values for the
            future series (omitted = inherit from the original)
        rrule: Replacement rule for the future series
        dtstart: Only its local time-of-day is used; the date comes from the
            first future occurrence
        dtend: Only its local time-of-day is used
    """

    summary: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None)
    url: Optional[str] = Field(default=None, max_length=1000)
    location: Optional[str] = Field(default=None, max_length=500)
    status: Optional[StatusValue] = Field(default=None)
    rrule: Optional[str] = Field(default=None)
    dtstart: Optional[datetime] = Field(default=None)
    dtend: Optional[datetime] = Field(default=None)

    @field_validator("summary")
    @classmethod
    def validate_summary_not_whitespace(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("Summary cannot be empty or whitespace")
        return v.strip() if v else None

    @field_validator("rrule")
    @classmethod
    def strip_rule(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    model_config = {
        "json_schema_extra": {
            "example": {
                "summary": "Open Hack Night (new room)",
                "location": "Room 2",
                "dtstart": "2024-06-04T18:30:00Z",
            }
        }
    }
