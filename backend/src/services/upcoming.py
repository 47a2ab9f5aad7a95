"""
Upcoming summary view.

Condenses materialized occurrences into one entry per series for "what's
next" listings: the next occurrence of each series and, when that one is
cancelled, the next occurrence that is not. This is pure post-processing
over list_occurrences output; it never changes how occurrences are
materialized.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from backend.src.config.settings import AppSettings, get_settings
from backend.src.models.types import utc_now
from backend.src.services.occurrence_service import Occurrence, OccurrenceService
from backend.src.utils.timezone import ensure_utc


MAX_LIMIT = 50


@dataclass
class UpcomingEntry:
    """
    One series in the upcoming summary.

    Attributes:
        occurrence: First occurrence at or after now
        next_after_cancelled: Next non-cancelled occurrence when the first
            one is cancelled
        date_label: Series frequency label for recurring series
    """

    occurrence: Occurrence
    next_after_cancelled: Optional[Occurrence] = None
    date_label: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self.occurrence.status == "cancelled"

    @property
    def effective_start(self) -> datetime:
        """Start of the occurrence a visitor can actually attend, if known."""
        if self.next_after_cancelled is not None:
            return self.next_after_cancelled.dtstart
        return self.occurrence.dtstart


def summarize_upcoming(
    occurrences: Iterable[Occurrence],
    now: datetime,
    limit: int = 10,
) -> List[UpcomingEntry]:
    """
    Build the upcoming summary from materialized occurrences.

    Internal, draft and excluded occurrences are always dropped, so the
    input may come from any listing, including an authenticated one or
    one that includes excluded dates.

    Args:
        occurrences: Occurrences, typically from list_occurrences
        now: Reference instant; earlier occurrences are ignored
        limit: Maximum number of entries (clamped to 1..50)

    Returns:
        Entries sorted by effective start
    """
    now = ensure_utc(now)
    limit = max(1, min(limit, MAX_LIMIT))

    entries: Dict[str, UpcomingEntry] = {}
    for occurrence in sorted(occurrences, key=lambda o: o.dtstart):
        if occurrence.is_internal or occurrence.is_draft or occurrence.is_excluded:
            continue
        if occurrence.dtstart < now:
            continue

        entry = entries.get(occurrence.event_id)
        if entry is None:
            entries[occurrence.event_id] = UpcomingEntry(
                occurrence=occurrence,
                date_label=occurrence.frequency_label if occurrence.is_recurring else None,
            )
        elif (
            entry.is_cancelled
            and entry.next_after_cancelled is None
            and occurrence.status != "cancelled"
        ):
            entry.next_after_cancelled = occurrence

    ordered = sorted(entries.values(), key=lambda e: e.effective_start)
    return ordered[:limit]


class UpcomingService:
    """
    Service for the public upcoming summary.

    Usage:
        >>> UpcomingService(db_session).list_upcoming(space_guid="spc_...")
    """

    def __init__(self, db: Session, settings: Optional[AppSettings] = None):
        self.settings = settings or get_settings()
        self.occurrences = OccurrenceService(db, self.settings)

    def list_upcoming(
        self,
        now: Optional[datetime] = None,
        space_guid: Optional[str] = None,
        limit: int = 10,
        months: Optional[int] = None,
    ) -> List[UpcomingEntry]:
        """
        Summarize what anonymous viewers will see in the coming months.

        Args:
            now: Reference instant (default: current time)
            space_guid: Optional space filter
            limit: Maximum number of entries (clamped to 1..50)
            months: Look-ahead (default: SPACECAL_UPCOMING_MONTHS, clamped to 1..24)
        """
        now = ensure_utc(now) if now is not None else utc_now()
        months = max(1, min(months or self.settings.upcoming_months, 24))

        occurrences = self.occurrences.list_occurrences(
            window_start=now,
            window_end=now + relativedelta(months=months),
            viewer_is_authenticated=False,
            space_guid=space_guid,
        )
        return summarize_upcoming(occurrences, now, limit=limit)
