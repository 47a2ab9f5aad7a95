"""
Series service for event series CRUD and "this and future" edits.

Provides business logic for creating, updating, retrieving and deleting
event series, and for splitting a recurring series at an instant so that
an edit applies to one occurrence and everything after it while the past
stays untouched.

Split outcomes:
- NO_FUTURE_OCCURRENCES: nothing at or after the split instant; no change
- UPDATED_EXISTING: the first occurrence is already at or after the split;
  the series is edited in place
- SPLIT: the original series is bounded right after its last past
  occurrence and a new series takes over from the first future one,
  together with the future excluded dates and overrides

The boundary is computed on rule slots; excluded dates do not move it.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from backend.src.config.settings import AppSettings, get_settings
from backend.src.models import EventSeries, EventType, OccurrenceOverride, Space
from backend.src.schemas.event_series import EventSeriesCreate, EventSeriesUpdate
from backend.src.schemas.occurrence import SeriesSplitPatch
from backend.src.services.exceptions import (
    ConfigurationError,
    NotFoundError,
    ValidationError,
)
from backend.src.services.recurrence import expand, rule_count, validate_rule, with_count
from backend.src.utils.logging_config import get_logger
from backend.src.utils.timezone import (
    add_local_days,
    combine_local,
    ensure_utc,
    format_exdates,
    get_zone,
    to_local_date_key,
)


logger = get_logger("services")

# Fields a split or in-place edit may change on the series
SPLIT_FIELDS = ("summary", "description", "url", "location", "status")

# Columns that cannot be cleared by an update
REQUIRED_FIELDS = ("summary", "dtstart", "timezone", "all_day", "status", "is_draft")


class SplitOutcome(str, enum.Enum):
    """Outcome of a split request."""
    NO_FUTURE_OCCURRENCES = "no_future_occurrences"
    UPDATED_EXISTING = "updated_existing"
    SPLIT = "split"


@dataclass
class SplitPlan:
    """
    Boundary computed by plan_split.

    Attributes:
        outcome: Which of the three split outcomes applies
        last_past: Last occurrence strictly before the split instant
        first_future: First occurrence at or after the split instant
        past_count: Number of occurrences before the split instant
        original_end: New exclusive recurrence end of the original series
        split_date_key: First date key owned by the new series
        past_exdates: Excluded dates that stay on the original series
        future_exdates: Excluded dates that move to the new series
    """

    outcome: SplitOutcome
    last_past: Optional[datetime] = None
    first_future: Optional[datetime] = None
    past_count: int = 0
    original_end: Optional[datetime] = None
    split_date_key: Optional[str] = None
    past_exdates: List[str] = field(default_factory=list)
    future_exdates: List[str] = field(default_factory=list)


@dataclass
class SplitResult:
    """
    Result of split_series_from.

    Attributes:
        outcome: Which of the three split outcomes applied
        original: The original series (mutated for UPDATED_EXISTING and SPLIT)
        new_series: The series created for the future portion (SPLIT only)
        split_date_key: First date key owned by the new series (SPLIT only)
        migrated_overrides: Number of overrides moved to the new series
    """

    outcome: SplitOutcome
    original: EventSeries
    new_series: Optional[EventSeries] = None
    split_date_key: Optional[str] = None
    migrated_overrides: int = 0


def plan_split(
    series_dtstart: datetime,
    rule: str,
    recurrence_end: Optional[datetime],
    exdates: List[str],
    split_instant: datetime,
    tz: str,
    key_tz: Optional[str] = None,
    max_years: int = 10,
) -> SplitPlan:
    """
    Compute where a recurring series divides at split_instant.

    Occurrences are expanded from the anchor up to the effective recurrence
    end, or up to max_years after the later of the split and the anchor
    for open-ended rules.

    Args:
        series_dtstart: Series anchor
        rule: Series RRULE
        recurrence_end: Exclusive recurrence end (None = open-ended)
        exdates: Excluded date keys of the series
        split_instant: First instant the edit applies to
        tz: Timezone whose wall clock the rule follows
        key_tz: Timezone of the date keys (default: tz)
        max_years: Expansion ceiling after the split instant or anchor

    Returns:
        SplitPlan

    Raises:
        InvalidRuleError: If the rule cannot be parsed
    """
    key_tz = key_tz or tz
    anchor = ensure_utc(series_dtstart)
    split_instant = ensure_utc(split_instant)

    horizon = max(split_instant, anchor) + relativedelta(years=max_years)
    if recurrence_end is not None:
        recurrence_end = ensure_utc(recurrence_end)
        horizon = min(horizon, recurrence_end)
    if horizon < anchor:
        return SplitPlan(outcome=SplitOutcome.NO_FUTURE_OCCURRENCES)

    slots = expand(rule, anchor, anchor, horizon, tz)
    if recurrence_end is not None:
        slots = [s for s in slots if s < recurrence_end]

    past = [s for s in slots if s < split_instant]
    future = [s for s in slots if s >= split_instant]

    if not future:
        return SplitPlan(outcome=SplitOutcome.NO_FUTURE_OCCURRENCES, past_count=len(past))
    if not past:
        return SplitPlan(outcome=SplitOutcome.UPDATED_EXISTING, first_future=future[0])

    last_past = past[-1]
    first_future = future[0]

    # Same local time one day later, capped so a sub-daily rule cannot
    # leak future slots into the original series
    original_end = min(add_local_days(last_past, 1, tz), first_future)

    split_date_key = to_local_date_key(split_instant, key_tz)
    if to_local_date_key(last_past, key_tz) == split_date_key:
        split_date_key = to_local_date_key(first_future, key_tz)

    return SplitPlan(
        outcome=SplitOutcome.SPLIT,
        last_past=last_past,
        first_future=first_future,
        past_count=len(past),
        original_end=original_end,
        split_date_key=split_date_key,
        past_exdates=[k for k in exdates if k < split_date_key],
        future_exdates=[k for k in exdates if k >= split_date_key],
    )


class SeriesService:
    """
    Service for managing event series.

    Handles CRUD operations for single events and recurring series, and
    "edit this and all future occurrences" splits.

    Usage:
        >>> service = SeriesService(db_session)
        >>> series = service.create_series(
        ...     space_guid="spc_01hgw2bbg0000000000000001",
        ...     event_type_guid="ety_01hgw2bbg0000000000000001",
        ...     data=EventSeriesCreate(summary="Hack Night", dtstart=start,
        ...                            rrule="FREQ=WEEKLY;BYDAY=TU"),
        ... )
    """

    def __init__(self, db: Session, settings: Optional[AppSettings] = None):
        """
        Initialize series service.

        Args:
            db: SQLAlchemy database session
            settings: Application settings (default: cached environment settings)
        """
        self.db = db
        self.settings = settings or get_settings()

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_by_guid(self, guid: str) -> EventSeries:
        """
        Get an event series by GUID.

        Args:
            guid: Series GUID (evt_xxx format)

        Returns:
            EventSeries instance with space and event type loaded

        Raises:
            NotFoundError: If series not found
        """
        try:
            uuid_value = EventSeries.parse_guid(guid)
        except ValueError:
            raise NotFoundError("EventSeries", guid)

        series = (
            self.db.query(EventSeries)
            .options(
                joinedload(EventSeries.space),
                joinedload(EventSeries.event_type),
            )
            .filter(EventSeries.uuid == uuid_value)
            .first()
        )
        if not series:
            raise NotFoundError("EventSeries", guid)

        return series

    def _get_space_by_guid(self, guid: str) -> Space:
        try:
            uuid_value = Space.parse_guid(guid)
        except ValueError:
            raise NotFoundError("Space", guid)

        space = self.db.query(Space).filter(Space.uuid == uuid_value).first()
        if not space:
            raise NotFoundError("Space", guid)
        return space

    def _get_event_type_by_guid(self, guid: str) -> EventType:
        try:
            uuid_value = EventType.parse_guid(guid)
        except ValueError:
            raise NotFoundError("EventType", guid)

        event_type = self.db.query(EventType).filter(EventType.uuid == uuid_value).first()
        if not event_type:
            raise NotFoundError("EventType", guid)
        return event_type

    def _validate_timezone(self, tz: str) -> str:
        try:
            get_zone(tz)
        except ConfigurationError as e:
            raise ValidationError(e.message, field="timezone")
        return tz

    def _commit(self, action: str) -> None:
        """Commit, rolling back and re-raising on database errors."""
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise

    # =========================================================================
    # CRUD
    # =========================================================================

    def create_series(
        self,
        space_guid: str,
        event_type_guid: str,
        data: EventSeriesCreate,
    ) -> EventSeries:
        """
        Create a single event or recurring series.

        Args:
            space_guid: Space GUID (spc_xxx)
            event_type_guid: Event type GUID (ety_xxx)
            data: Validated series fields

        Returns:
            Created EventSeries instance

        Raises:
            NotFoundError: If space or event type not found
            ValidationError: If the event type belongs to another space or
                the timezone is unknown
            InvalidRuleError: If the recurrence rule cannot be parsed
        """
        space = self._get_space_by_guid(space_guid)
        event_type = self._get_event_type_by_guid(event_type_guid)

        if event_type.space_id is not None and event_type.space_id != space.id:
            raise ValidationError(
                f"Event type {event_type_guid} is not available in space {space_guid}",
                field="event_type_guid",
            )

        tz = self._validate_timezone(data.timezone or self.settings.app_timezone)
        rrule = validate_rule(data.rrule) if data.rrule else None

        series = EventSeries(
            space_id=space.id,
            event_type_id=event_type.id,
            summary=data.summary,
            description=data.description,
            url=data.url,
            location=data.location,
            dtstart=ensure_utc(data.dtstart),
            dtend=ensure_utc(data.dtend) if data.dtend else None,
            timezone=tz,
            all_day=data.all_day,
            rrule=rrule,
            recurrence_end_date=ensure_utc(data.recurrence_end_date) if data.recurrence_end_date else None,
            exdates=format_exdates(data.exdates),
            frequency_label=data.frequency_label,
            status=data.status,
            is_draft=data.is_draft,
            sequence=0,
        )

        self.db.add(series)
        self._commit(f"create event series '{data.summary}'")
        self.db.refresh(series)

        logger.info(f"Created event series: {series.guid} - {series.summary}")
        return series

    def update_series(
        self,
        guid: str,
        patch: Union[EventSeriesUpdate, Dict[str, Any]],
    ) -> EventSeries:
        """
        Update an existing series.

        Only supplied fields are applied. Every update bumps sequence.

        Raises:
            NotFoundError: If series not found
            ValidationError: If a required field is cleared, the timezone is
                unknown, or dtend ends up before dtstart
            InvalidRuleError: If a new recurrence rule cannot be parsed
        """
        if not isinstance(patch, EventSeriesUpdate):
            patch = EventSeriesUpdate.model_validate(patch)
        fields = patch.model_dump(exclude_unset=True)

        series = self.get_by_guid(guid)

        for name in REQUIRED_FIELDS:
            if name in fields and fields[name] is None:
                raise ValidationError(f"{name} cannot be cleared", field=name)

        if fields.get("rrule"):
            fields["rrule"] = validate_rule(fields["rrule"])
        if "timezone" in fields:
            self._validate_timezone(fields["timezone"])

        for key, value in fields.items():
            setattr(series, key, value)

        if series.dtend is not None and ensure_utc(series.dtend) < ensure_utc(series.dtstart):
            self.db.rollback()
            raise ValidationError("dtend must not be before dtstart", field="dtend")

        series.bump_sequence()
        self._commit(f"update event series {guid}")
        self.db.refresh(series)

        logger.info(f"Updated event series: {series.guid} (sequence {series.sequence})")
        return series

    def delete_series(self, guid: str) -> None:
        """
        Delete a series and its overrides.

        Raises:
            NotFoundError: If series not found
        """
        series = self.get_by_guid(guid)
        summary = series.summary

        self.db.delete(series)
        self._commit(f"delete event series {guid}")

        logger.info(f"Deleted event series: {guid} - {summary}")

    # =========================================================================
    # Split
    # =========================================================================

    def split_series_from(
        self,
        guid: str,
        split_instant: datetime,
        patch: Union[SeriesSplitPatch, Dict[str, Any], None] = None,
    ) -> SplitResult:
        """
        Apply an edit to the occurrence at split_instant and all later ones.

        Args:
            guid: Series GUID (evt_xxx)
            split_instant: First instant the edit applies to
            patch: New values for the future portion

        Returns:
            SplitResult describing the outcome

        Raises:
            NotFoundError: If series not found
            ValidationError: If the series is not recurring, or the new end
                time falls before the new start time
            InvalidRuleError: If the stored or replacement rule cannot be parsed
        """
        if patch is None:
            patch = SeriesSplitPatch()
        elif not isinstance(patch, SeriesSplitPatch):
            patch = SeriesSplitPatch.model_validate(patch)
        fields = patch.model_dump(exclude_unset=True)

        series = self.get_by_guid(guid)
        if not series.is_recurring:
            raise ValidationError("Cannot split a non-recurring event", field="rrule")

        new_rule = validate_rule(fields["rrule"]) if fields.get("rrule") else None
        tz = series.timezone or self.settings.app_timezone

        plan = plan_split(
            series.dtstart,
            series.rrule,
            series.recurrence_end_date,
            series.exdate_keys,
            split_instant,
            tz,
            key_tz=self.settings.app_timezone,
            max_years=self.settings.max_expansion_years,
        )

        if plan.outcome == SplitOutcome.NO_FUTURE_OCCURRENCES:
            logger.info(f"No occurrences of {series.guid} at or after {ensure_utc(split_instant).isoformat()}")
            return SplitResult(outcome=plan.outcome, original=series)

        if plan.outcome == SplitOutcome.UPDATED_EXISTING:
            for name in SPLIT_FIELDS:
                if fields.get(name) is not None:
                    setattr(series, name, fields[name])
            if new_rule:
                series.rrule = new_rule
            series.bump_sequence()
            self._commit(f"update event series {guid}")
            self.db.refresh(series)

            logger.info(f"Updated event series in place: {series.guid} (sequence {series.sequence})")
            return SplitResult(outcome=plan.outcome, original=series)

        new_series = self._build_future_series(series, plan, fields, new_rule, tz)

        series.recurrence_end_date = plan.original_end
        series.exdates = format_exdates(plan.past_exdates)
        series.bump_sequence()

        self.db.add(new_series)

        migrated = 0
        for override in list(series.overrides):
            if override.occurrence_date < plan.split_date_key:
                continue
            values = override.field_values()
            series.overrides.remove(override)
            new_series.overrides.append(
                OccurrenceOverride(occurrence_date=override.occurrence_date, **values)
            )
            migrated += 1

        self._commit(f"split event series {guid}")
        self.db.refresh(series)
        self.db.refresh(new_series)

        logger.info(
            f"Split event series: {series.guid} -> {new_series.guid} "
            f"from {plan.split_date_key} ({migrated} overrides migrated)"
        )
        return SplitResult(
            outcome=plan.outcome,
            original=series,
            new_series=new_series,
            split_date_key=plan.split_date_key,
            migrated_overrides=migrated,
        )

    def _build_future_series(
        self,
        series: EventSeries,
        plan: SplitPlan,
        fields: Dict[str, Any],
        new_rule: Optional[str],
        tz: str,
    ) -> EventSeries:
        """Create the series that takes over from the first future occurrence."""
        anchor = plan.first_future
        if fields.get("dtstart") is not None:
            anchor = combine_local(plan.first_future, fields["dtstart"], tz)

        dtend = None
        if fields.get("dtend") is not None:
            dtend = combine_local(anchor, fields["dtend"], tz)
            if dtend < anchor:
                raise ValidationError("dtend must not be before dtstart", field="dtend")
        elif series.dtend is not None:
            duration: timedelta = series.dtend - series.dtstart
            dtend = anchor + duration

        rule = new_rule
        if rule is None:
            rule = series.rrule
            count = rule_count(rule)
            if count is not None:
                rule = with_count(rule, max(count - plan.past_count, 1))

        values = {
            name: fields[name] if fields.get(name) is not None else getattr(series, name)
            for name in SPLIT_FIELDS
        }

        return EventSeries(
            space_id=series.space_id,
            event_type_id=series.event_type_id,
            dtstart=anchor,
            dtend=dtend,
            timezone=series.timezone,
            all_day=series.all_day,
            rrule=rule,
            recurrence_end_date=series.recurrence_end_date,
            exdates=format_exdates(plan.future_exdates),
            frequency_label=series.frequency_label,
            is_draft=series.is_draft,
            sequence=0,
            **values,
        )
