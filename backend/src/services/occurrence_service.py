"""
Occurrence service for materializing calendar occurrences.

Turns stored event series plus their sparse overrides into the concrete,
timezone-correct occurrences visible in a window. Nothing is cached:
occurrences are recomputed on every query from the series definition.

Design:
- Single series (no rrule) yield one occurrence keyed by the local date of
  dtstart
- Recurring series are expanded in wall-clock space (see recurrence.py)
  from their anchor, so a moved occurrence whose rule slot lies before the
  window can still surface inside it
- recurrence_end_date is an exclusive bound
- Excluded dates are dropped unless include_exdates is requested
- Overrides are looked up by occurrence date key, never by position
- Draft series and internal event types are hidden from anonymous viewers
- A series with a corrupt rule is logged and contributes nothing
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, exists, or_
from sqlalchemy.orm import Session, joinedload, selectinload

from backend.src.config.settings import AppSettings, get_settings
from backend.src.models import EventSeries, EventType, OccurrenceOverride, Space
from backend.src.services.exceptions import (
    ConfigurationError,
    InvalidRuleError,
    NotFoundError,
    UnboundedWindowError,
    ValidationError,
)
from backend.src.services.recurrence import clamp_window, expand
from backend.src.utils.logging_config import get_logger
from backend.src.utils.timezone import ensure_utc, get_zone, to_local_date_key


logger = get_logger("services")


@dataclass(frozen=True)
class Occurrence:
    """
    One concrete, display-ready instance of a series.

    Virtual: produced fresh per query and never persisted. Mutate the
    EventSeries or its OccurrenceOverride instead.

    Attributes:
        id: Stable identifier "{event_guid}:{occurrence_date}"
        event_id: Parent series GUID
        occurrence_date: Date key (YYYY-MM-DD, application timezone)
        dtstart: Resolved start (override, else rule slot)
        dtend: Resolved end, None when no duration is known
        is_overridden: An override row exists for this date
        is_excluded: The date is in the series' excluded dates (raw views only)
    """

    id: str
    event_id: str
    occurrence_date: str
    summary: str
    description: Optional[str]
    url: Optional[str]
    location: Optional[str]
    dtstart: datetime
    dtend: Optional[datetime]
    all_day: bool
    status: str
    notes: Optional[str]
    is_overridden: bool
    is_recurring: bool
    is_excluded: bool
    rrule: Optional[str]
    frequency_label: Optional[str]
    is_draft: bool
    is_internal: bool
    color: Optional[str]
    sequence: int
    space_guid: Optional[str]
    space_slug: Optional[str]
    space_name: Optional[str]
    event_type_guid: Optional[str]
    event_type_slug: Optional[str]
    event_type_name: Optional[str]


def check_window(window_start: datetime, window_end: Optional[datetime]) -> Tuple[datetime, datetime]:
    """
    Validate a query window and normalize it to aware UTC.

    Raises:
        UnboundedWindowError: If window_end is None
        ValidationError: If window_end is before window_start
    """
    if window_start is None:
        raise ValidationError("window_start is required", field="window_start")
    if window_end is None:
        raise UnboundedWindowError()
    window_start = ensure_utc(window_start)
    window_end = ensure_utc(window_end)
    if window_end < window_start:
        raise ValidationError("window_end must not be before window_start", field="window_end")
    return window_start, window_end


def is_hidden(series: EventSeries, viewer_is_authenticated: bool) -> bool:
    """Draft series and internal event types are never shown to anonymous viewers."""
    if viewer_is_authenticated:
        return False
    if series.is_draft:
        return True
    return bool(series.event_type is not None and series.event_type.is_internal)


def _first(*values):
    """First value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def _build_occurrence(
    series: EventSeries,
    date_key: str,
    slot: datetime,
    override: Optional[OccurrenceOverride],
    is_excluded: bool = False,
) -> Occurrence:
    """
    Resolve display fields by override, then series, then space/event type.

    A recurring occurrence without an overridden end lasts the series
    duration from its rule slot, even when the override moves its start.
    A single event falls back to the series end, then to the event type's
    default duration from the resolved start.
    """
    space = series.space
    event_type = series.event_type

    start = _first(override.dtstart if override else None, slot)
    end = override.dtend if override else None
    if end is None:
        if series.is_recurring:
            duration = series.duration
            end = slot + duration if duration is not None else None
        elif series.dtend is not None:
            end = ensure_utc(series.dtend)
        elif event_type is not None and event_type.default_duration is not None:
            end = start + event_type.default_duration

    return Occurrence(
        id=f"{series.guid}:{date_key}",
        event_id=series.guid,
        occurrence_date=date_key,
        summary=_first(override.summary if override else None, series.summary),
        description=_first(override.description if override else None, series.description),
        url=_first(override.url if override else None, series.url),
        location=_first(override.location if override else None, series.effective_location),
        dtstart=start,
        dtend=end,
        all_day=bool(series.all_day),
        status=_first(override.status if override else None, series.status),
        notes=override.notes if override else None,
        is_overridden=override is not None,
        is_recurring=series.is_recurring,
        is_excluded=is_excluded,
        rrule=series.rrule,
        frequency_label=series.frequency_label,
        is_draft=bool(series.is_draft),
        is_internal=bool(event_type.is_internal) if event_type is not None else False,
        color=event_type.color if event_type is not None else None,
        sequence=series.sequence or 0,
        space_guid=space.guid if space is not None else None,
        space_slug=space.slug if space is not None else None,
        space_name=space.name if space is not None else None,
        event_type_guid=event_type.guid if event_type is not None else None,
        event_type_slug=event_type.slug if event_type is not None else None,
        event_type_name=event_type.name if event_type is not None else None,
    )


def materialize(
    series: EventSeries,
    overrides: Optional[Iterable[OccurrenceOverride]],
    window_start: datetime,
    window_end: Optional[datetime],
    viewer_is_authenticated: bool,
    tz: str,
    include_exdates: bool = False,
) -> List[Occurrence]:
    """
    Materialize the occurrences of one series inside a window.

    Args:
        series: Event series row
        overrides: Override rows of the series (None = series.overrides)
        window_start: Start of the window (inclusive)
        window_end: End of the window (inclusive)
        viewer_is_authenticated: Whether drafts and internal types are visible
        tz: Application timezone for occurrence date keys
        include_exdates: Also return excluded dates (administrative views)

    Returns:
        Occurrences sorted by resolved start, then date key

    Raises:
        UnboundedWindowError: If window_end is None
        ValidationError: If window_end is before window_start
        ConfigurationError: If tz is unknown
    """
    window_start, window_end = check_window(window_start, window_end)
    get_zone(tz)

    if is_hidden(series, viewer_is_authenticated):
        return []

    if overrides is None:
        overrides = series.overrides
    by_date: Dict[str, OccurrenceOverride] = {o.occurrence_date: o for o in overrides}

    occurrences: List[Occurrence] = []

    anchor = ensure_utc(series.dtstart)

    if not series.is_recurring:
        date_key = to_local_date_key(anchor, tz)
        occurrence = _build_occurrence(series, date_key, anchor, by_date.get(date_key))
        if window_start <= occurrence.dtstart <= window_end:
            occurrences.append(occurrence)
        return occurrences

    recurrence_end = series.recurrence_end_date
    if recurrence_end is not None:
        recurrence_end = ensure_utc(recurrence_end)
    expand_start = min(anchor, window_start)
    expand_end = window_end if recurrence_end is None else min(recurrence_end, window_end)
    if expand_end < expand_start:
        return []

    try:
        slots = expand(
            series.rrule,
            anchor,
            expand_start,
            expand_end,
            series.timezone or tz,
        )
    except (InvalidRuleError, ConfigurationError) as e:
        logger.error(f"Skipping event series {series.guid}: {e}")
        return []

    excluded = set(series.exdate_keys)
    for slot in slots:
        if recurrence_end is not None and slot >= recurrence_end:
            break
        date_key = to_local_date_key(slot, tz)
        is_excluded = date_key in excluded
        if is_excluded and not include_exdates:
            continue
        occurrence = _build_occurrence(series, date_key, slot, by_date.get(date_key), is_excluded)
        if window_start <= occurrence.dtstart <= window_end:
            occurrences.append(occurrence)

    occurrences.sort(key=lambda o: (o.dtstart, o.occurrence_date))
    return occurrences


class OccurrenceService:
    """
    Service for listing materialized occurrences.

    Usage:
        >>> service = OccurrenceService(db_session)
        >>> occurrences = service.list_occurrences(
        ...     window_start=datetime(2024, 6, 1, tzinfo=timezone.utc),
        ...     window_end=datetime(2024, 8, 1, tzinfo=timezone.utc),
        ...     viewer_is_authenticated=False,
        ... )
    """

    def __init__(self, db: Session, settings: Optional[AppSettings] = None):
        """
        Initialize occurrence service.

        Args:
            db: SQLAlchemy database session
            settings: Application settings (default: cached environment settings)
        """
        self.db = db
        self.settings = settings or get_settings()

    def list_occurrences(
        self,
        window_start: datetime,
        window_end: Optional[datetime],
        viewer_is_authenticated: bool,
        space_guid: Optional[str] = None,
        event_type_guid: Optional[str] = None,
        status: Optional[str] = None,
        include_exdates: bool = False,
    ) -> List[Occurrence]:
        """
        List visible occurrences across all matching series.

        Args:
            window_start: Start of the window (inclusive)
            window_end: End of the window (inclusive, required)
            viewer_is_authenticated: Whether drafts and internal types are visible
            space_guid: Optional space filter (spc_xxx)
            event_type_guid: Optional event type filter (ety_xxx)
            status: Optional resolved-status filter
            include_exdates: Also return excluded dates (administrative views)

        Returns:
            Occurrences sorted by resolved start; ties keep series order
            (dtstart, id), then date key

        Raises:
            UnboundedWindowError: If window_end is None
            ValidationError: If window_end is before window_start
            NotFoundError: If a filter GUID does not exist
        """
        window_start, window_end = check_window(window_start, window_end)
        window_end = clamp_window(window_start, window_end, self.settings.max_expansion_years)

        series_list = self._candidate_series(
            window_start, window_end, viewer_is_authenticated, space_guid, event_type_guid
        )

        keyed = []
        for index, series in enumerate(series_list):
            for occurrence in materialize(
                series,
                series.overrides,
                window_start,
                window_end,
                viewer_is_authenticated,
                self.settings.app_timezone,
                include_exdates=include_exdates,
            ):
                if status is not None and occurrence.status != status:
                    continue
                keyed.append((occurrence.dtstart, index, occurrence.occurrence_date, occurrence))

        keyed.sort(key=lambda item: item[:3])
        logger.debug(
            f"Listed {len(keyed)} occurrences from {len(series_list)} series "
            f"between {window_start.isoformat()} and {window_end.isoformat()}"
        )
        return [item[3] for item in keyed]

    def _candidate_series(
        self,
        window_start: datetime,
        window_end: datetime,
        viewer_is_authenticated: bool,
        space_guid: Optional[str],
        event_type_guid: Optional[str],
    ) -> List[EventSeries]:
        """
        Fetch series that can contribute to the window.

        Single series qualify when dtstart is in the window or when they
        have any override (a moved start may land in the window). Recurring
        series qualify when they start before the window ends and their
        recurrence end is not before the window starts.
        """
        has_override = exists().where(OccurrenceOverride.event_id == EventSeries.id)
        single = and_(
            EventSeries.rrule.is_(None),
            or_(
                and_(EventSeries.dtstart >= window_start, EventSeries.dtstart <= window_end),
                has_override,
            ),
        )
        recurring = and_(
            EventSeries.rrule.isnot(None),
            EventSeries.dtstart <= window_end,
            or_(
                EventSeries.recurrence_end_date.is_(None),
                EventSeries.recurrence_end_date >= window_start,
            ),
        )

        query = (
            self.db.query(EventSeries)
            .options(
                joinedload(EventSeries.space),
                joinedload(EventSeries.event_type),
                selectinload(EventSeries.overrides),
            )
            .filter(or_(single, recurring))
        )

        if space_guid:
            query = query.filter(EventSeries.space_id == self._get_space(space_guid).id)

        if event_type_guid:
            query = query.filter(EventSeries.event_type_id == self._get_event_type(event_type_guid).id)

        if not viewer_is_authenticated:
            query = query.filter(EventSeries.is_draft.is_(False))

        return query.order_by(EventSeries.dtstart.asc(), EventSeries.id.asc()).all()

    def _get_space(self, guid: str) -> Space:
        try:
            uuid_value = Space.parse_guid(guid)
        except ValueError:
            raise NotFoundError("Space", guid)
        space = self.db.query(Space).filter(Space.uuid == uuid_value).first()
        if not space:
            raise NotFoundError("Space", guid)
        return space

    def _get_event_type(self, guid: str) -> EventType:
        try:
            uuid_value = EventType.parse_guid(guid)
        except ValueError:
            raise NotFoundError("EventType", guid)
        event_type = self.db.query(EventType).filter(EventType.uuid == uuid_value).first()
        if not event_type:
            raise NotFoundError("EventType", guid)
        return event_type
