"""
Override service for per-occurrence edits.

Provides keyed access to OccurrenceOverride rows by (event, occurrence
date) and the two occurrence-level deletes:

- delete_occurrence: removes the occurrence itself. On a single event that
  deletes the whole series row; on a recurring series it adds the date to
  the excluded dates and drops any override for it.
- remove_override: removes only the override row, so the occurrence
  reverts to the series values and stays visible.

Every mutation bumps the parent series' sequence in the same commit as the
override or exclusion change.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.src.models import EventSeries, OccurrenceOverride
from backend.src.models.types import utc_now
from backend.src.schemas.occurrence import OverridePatch
from backend.src.services.series_service import SeriesService
from backend.src.utils.logging_config import get_logger
from backend.src.utils.timezone import format_exdates, validate_date_key


logger = get_logger("services")


@dataclass
class DeleteOccurrenceResult:
    """
    Result of deleting an occurrence.

    Attributes:
        deleted_kind: "event" when the whole series row was deleted,
            "occurrence" when the date was added to the excluded dates
        event_guid: Series GUID
        occurrence_date: Deleted occurrence date key
        sequence: Series sequence after the change (None when deleted)
    """

    deleted_kind: str
    event_guid: str
    occurrence_date: str
    sequence: Optional[int] = None


class OverrideService:
    """
    Service for occurrence overrides and occurrence deletes.

    Usage:
        >>> service = OverrideService(db_session)
        >>> service.upsert_override(
        ...     "evt_01hgw2bbg0000000000000001",
        ...     "2024-05-01",
        ...     OverridePatch(notes="Moved due to holiday", dtstart=moved),
        ... )
    """

    def __init__(self, db: Session):
        """
        Initialize override service.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db
        self.series_service = SeriesService(db)

    def get_override(self, event_guid: str, occurrence_date: str) -> Optional[OccurrenceOverride]:
        """
        Get the override for one occurrence, if any.

        Raises:
            InvalidDateKeyError: If occurrence_date is not YYYY-MM-DD
            NotFoundError: If the series does not exist
        """
        validate_date_key(occurrence_date)
        series = self.series_service.get_by_guid(event_guid)
        return self._find(series, occurrence_date)

    def list_overrides(self, event_guid: str) -> List[OccurrenceOverride]:
        """List a series' overrides ordered by occurrence date."""
        series = self.series_service.get_by_guid(event_guid)
        return (
            self.db.query(OccurrenceOverride)
            .filter(OccurrenceOverride.event_id == series.id)
            .order_by(OccurrenceOverride.occurrence_date.asc())
            .all()
        )

    def upsert_override(
        self,
        event_guid: str,
        occurrence_date: str,
        patch: Union[OverridePatch, Dict[str, Any]],
    ) -> OccurrenceOverride:
        """
        Create or patch the override for one occurrence.

        Only fields present in the patch are written; an explicit None
        clears the field so the occurrence inherits the series value.

        Args:
            event_guid: Series GUID (evt_xxx)
            occurrence_date: Occurrence date key (YYYY-MM-DD)
            patch: Override fields

        Returns:
            The created or updated OccurrenceOverride

        Raises:
            InvalidDateKeyError: If occurrence_date is not YYYY-MM-DD
            NotFoundError: If the series does not exist
        """
        validate_date_key(occurrence_date)
        if not isinstance(patch, OverridePatch):
            patch = OverridePatch.model_validate(patch)
        fields = patch.model_dump(exclude_unset=True)

        series = self.series_service.get_by_guid(event_guid)
        override = self._find(series, occurrence_date)

        if override is None:
            override = OccurrenceOverride(occurrence_date=occurrence_date, **fields)
            series.overrides.append(override)
            action = "Created"
        else:
            for key, value in fields.items():
                setattr(override, key, value)
            override.updated_at = utc_now()
            action = "Updated"

        series.bump_sequence()

        self._commit(f"upsert override {event_guid}:{occurrence_date}")
        self.db.refresh(override)

        logger.info(
            f"{action} occurrence override: {series.guid}:{occurrence_date} "
            f"(sequence {series.sequence})"
        )
        return override

    def delete_occurrence(self, event_guid: str, occurrence_date: str) -> DeleteOccurrenceResult:
        """
        Delete one occurrence.

        A single event is deleted outright. A recurring series gets the date
        added to its excluded dates (idempotent) and loses any override for
        that date.

        Raises:
            InvalidDateKeyError: If occurrence_date is not YYYY-MM-DD
            NotFoundError: If the series does not exist
        """
        validate_date_key(occurrence_date)
        series = self.series_service.get_by_guid(event_guid)
        guid = series.guid

        if not series.is_recurring:
            self.db.delete(series)
            self._commit(f"delete event {guid}")
            logger.info(f"Deleted event series: {guid} (single occurrence {occurrence_date})")
            return DeleteOccurrenceResult(
                deleted_kind="event",
                event_guid=guid,
                occurrence_date=occurrence_date,
            )

        keys = series.exdate_keys
        if occurrence_date not in keys:
            keys.append(occurrence_date)
        series.exdates = format_exdates(sorted(keys))

        override = self._find(series, occurrence_date)
        if override is not None:
            series.overrides.remove(override)

        series.bump_sequence()
        self._commit(f"exclude occurrence {guid}:{occurrence_date}")

        logger.info(f"Excluded occurrence: {guid}:{occurrence_date} (sequence {series.sequence})")
        return DeleteOccurrenceResult(
            deleted_kind="occurrence",
            event_guid=guid,
            occurrence_date=occurrence_date,
            sequence=series.sequence,
        )

    def remove_override(self, event_guid: str, occurrence_date: str) -> None:
        """
        Remove the override row for one occurrence.

        The occurrence stays visible with inherited values. Removing an
        override that does not exist is a no-op.

        Raises:
            InvalidDateKeyError: If occurrence_date is not YYYY-MM-DD
            NotFoundError: If the series does not exist
        """
        validate_date_key(occurrence_date)
        series = self.series_service.get_by_guid(event_guid)

        override = self._find(series, occurrence_date)
        if override is None:
            logger.debug(f"No override to remove for {series.guid}:{occurrence_date}")
            return

        series.overrides.remove(override)
        series.bump_sequence()
        self._commit(f"remove override {event_guid}:{occurrence_date}")

        logger.info(f"Removed occurrence override: {series.guid}:{occurrence_date}")

    def _find(self, series: EventSeries, occurrence_date: str) -> Optional[OccurrenceOverride]:
        return (
            self.db.query(OccurrenceOverride)
            .filter(OccurrenceOverride.event_id == series.id)
            .filter(OccurrenceOverride.occurrence_date == occurrence_date)
            .first()
        )

    def _commit(self, action: str) -> None:
        """Commit, rolling back and re-raising on database errors."""
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise
