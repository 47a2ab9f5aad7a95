"""
Unit tests for SeriesService.

Tests cover:
- Series CRUD with rule, timezone and reference validation
- plan_split boundaries
- split_series_from outcomes (no future, in-place update, split)
- Split conservation of occurrences and exclusions
- Override migration
- COUNT-limited series
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from freezegun import freeze_time

from backend.src.models import OccurrenceOverride
from backend.src.schemas.event_series import EventSeriesCreate, EventSeriesUpdate
from backend.src.schemas.occurrence import SeriesSplitPatch
from backend.src.services.exceptions import InvalidRuleError, NotFoundError, ValidationError
from backend.src.services.occurrence_service import materialize
from backend.src.services.series_service import SeriesService, SplitOutcome, plan_split


BERLIN = "Europe/Berlin"
BERLIN_TZ = ZoneInfo(BERLIN)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def berlin(*args):
    return datetime(*args, tzinfo=BERLIN_TZ).astimezone(timezone.utc)


def dates(series, window_start=utc(2024, 1, 1), window_end=utc(2024, 12, 31)):
    """Occurrence date keys of a series over a window."""
    return [o.occurrence_date for o in materialize(series, None, window_start, window_end, True, BERLIN)]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def series_service(test_db_session, test_settings):
    """Create a SeriesService instance for testing."""
    return SeriesService(test_db_session, test_settings)


# ============================================================================
# CRUD Tests
# ============================================================================


class TestSeriesServiceCreate:
    """Tests for series creation."""

    def test_create_recurring_series(self, series_service, sample_space, sample_event_type):
        """Test creating a recurring series with defaults."""
        space = sample_space()
        event_type = sample_event_type()

        series = series_service.create_series(
            space.guid,
            event_type.guid,
            EventSeriesCreate(
                summary="  Hack Night ",
                dtstart=berlin(2024, 1, 9, 19, 0),
                rrule=" FREQ=WEEKLY;BYDAY=TU ",
                exdates=["2024-01-16", "2024-01-16"],
            ),
        )

        assert series.guid.startswith("evt_")
        assert series.summary == "Hack Night"
        assert series.rrule == "FREQ=WEEKLY;BYDAY=TU"
        assert series.timezone == BERLIN
        assert series.exdates == "2024-01-16"
        assert series.is_draft is True
        assert series.status == "confirmed"
        assert series.sequence == 0
        assert series.dtstart == utc(2024, 1, 9, 18, 0)

    def test_create_rejects_invalid_rule(self, series_service, sample_space, sample_event_type):
        """Test an unparseable rule rejects the write."""
        space = sample_space()
        event_type = sample_event_type()

        with pytest.raises(InvalidRuleError):
            series_service.create_series(
                space.guid,
                event_type.guid,
                EventSeriesCreate(summary="Broken", dtstart=utc(2024, 1, 9, 18), rrule="FREQ=OFTEN"),
            )

    def test_create_rejects_unknown_timezone(self, series_service, sample_space, sample_event_type):
        """Test an unknown timezone is a validation error."""
        space = sample_space()
        event_type = sample_event_type()

        with pytest.raises(ValidationError) as exc_info:
            series_service.create_series(
                space.guid,
                event_type.guid,
                EventSeriesCreate(summary="X", dtstart=utc(2024, 1, 9, 18), timezone="Nowhere/Special"),
            )
        assert exc_info.value.field == "timezone"

    def test_create_unknown_space(self, series_service, sample_event_type):
        """Test an unknown space raises NotFoundError."""
        event_type = sample_event_type()

        with pytest.raises(NotFoundError):
            series_service.create_series(
                "spc_00000000000000000000000000",
                event_type.guid,
                EventSeriesCreate(summary="X", dtstart=utc(2024, 1, 9, 18)),
            )

    def test_create_rejects_foreign_event_type(self, series_service, sample_space, sample_event_type):
        """Test an event type owned by another space is rejected."""
        space = sample_space()
        other = sample_space(slug="woodshop", name="Woodshop")
        event_type = sample_event_type(slug="woodwork", space=other)

        with pytest.raises(ValidationError):
            series_service.create_series(
                space.guid,
                event_type.guid,
                EventSeriesCreate(summary="X", dtstart=utc(2024, 1, 9, 18)),
            )


class TestSeriesServiceUpdate:
    """Tests for series updates."""

    def test_update_bumps_sequence(self, series_service, sample_series):
        """Test every update bumps sequence."""
        series = sample_series()

        series_service.update_series(series.guid, EventSeriesUpdate(summary="Renamed"))
        updated = series_service.update_series(series.guid, {"is_draft": True})

        assert updated.summary == "Renamed"
        assert updated.is_draft is True
        assert updated.sequence == 2

    def test_update_rejects_invalid_rule(self, series_service, sample_series):
        """Test a bad replacement rule rejects the write."""
        series = sample_series()

        with pytest.raises(InvalidRuleError):
            series_service.update_series(series.guid, {"rrule": "FREQ=WEEKLY;BYDAY=ZZ"})

    def test_update_clear_rule_makes_single(self, series_service, sample_series):
        """Test clearing the rule turns the series into a single event."""
        series = sample_series()

        updated = series_service.update_series(series.guid, {"rrule": None})

        assert updated.is_recurring is False

    def test_update_rejects_end_before_start(self, series_service, sample_series):
        """Test dtend before dtstart is rejected."""
        series = sample_series(dtend=utc(2024, 1, 9, 20))

        with pytest.raises(ValidationError):
            series_service.update_series(series.guid, {"dtend": utc(2024, 1, 9, 10)})

    def test_update_rejects_clearing_required_field(self, series_service, sample_series):
        """Test required fields cannot be cleared."""
        series = sample_series()

        with pytest.raises(ValidationError):
            series_service.update_series(series.guid, {"dtstart": None})


class TestSeriesServiceDelete:
    """Tests for series deletion."""

    def test_delete_cascades_overrides(self, series_service, sample_series, sample_override, test_db_session):
        """Test deleting a series deletes its overrides."""
        series = sample_series()
        sample_override(series, "2024-06-11", notes="x")

        series_service.delete_series(series.guid)

        assert test_db_session.query(OccurrenceOverride).count() == 0
        with pytest.raises(NotFoundError):
            series_service.get_by_guid(series.guid)

    def test_get_by_guid_wrong_prefix(self, series_service, sample_series):
        """Test a GUID with the wrong prefix is not found."""
        series = sample_series()

        with pytest.raises(NotFoundError):
            series_service.get_by_guid("spc_" + series.guid[4:])


# ============================================================================
# plan_split Tests
# ============================================================================


class TestPlanSplit:
    """Tests for the pure split planner."""

    RULE = "FREQ=WEEKLY;BYDAY=TU"
    ANCHOR = berlin(2024, 1, 9, 19, 0)

    def test_split_between_occurrences(self):
        """Test a split on a Thursday divides between the surrounding Tuesdays."""
        plan = plan_split(self.ANCHOR, self.RULE, None, [], berlin(2024, 6, 13, 12, 0), BERLIN)

        assert plan.outcome == SplitOutcome.SPLIT
        assert plan.last_past == berlin(2024, 6, 11, 19, 0)
        assert plan.first_future == berlin(2024, 6, 18, 19, 0)
        assert plan.original_end == berlin(2024, 6, 12, 19, 0)
        assert plan.split_date_key == "2024-06-13"
        assert plan.past_count == 23

    def test_split_same_day_after_occurrence(self):
        """Test a split later on an occurrence day keys from the next occurrence."""
        plan = plan_split(self.ANCHOR, self.RULE, None, [], berlin(2024, 6, 11, 21, 0), BERLIN)

        assert plan.last_past == berlin(2024, 6, 11, 19, 0)
        assert plan.split_date_key == "2024-06-18"

    def test_split_exactly_on_occurrence(self):
        """Test the occurrence at the split instant belongs to the future."""
        plan = plan_split(self.ANCHOR, self.RULE, None, [], berlin(2024, 6, 11, 19, 0), BERLIN)

        assert plan.first_future == berlin(2024, 6, 11, 19, 0)
        assert plan.last_past == berlin(2024, 6, 4, 19, 0)
        assert plan.split_date_key == "2024-06-11"

    def test_original_end_across_dst(self):
        """Test the one-day bound keeps local time across spring forward."""
        anchor = berlin(2024, 3, 2, 19, 0)
        plan = plan_split(anchor, "FREQ=WEEKLY;BYDAY=SA", None, [], berlin(2024, 4, 1), BERLIN)

        assert plan.last_past == berlin(2024, 3, 30, 19, 0)
        assert plan.original_end == berlin(2024, 3, 31, 19, 0)

    def test_sub_daily_rule_bounded_by_first_future(self):
        """Test the original end never passes the first future occurrence."""
        anchor = utc(2024, 6, 1, 8)
        plan = plan_split(anchor, "FREQ=HOURLY;COUNT=10", None, [], utc(2024, 6, 1, 12, 30), "UTC")

        assert plan.original_end == utc(2024, 6, 1, 13)

    def test_exdates_partitioned(self):
        """Test exclusions are partitioned at the split date key."""
        plan = plan_split(
            self.ANCHOR, self.RULE, None,
            ["2024-05-28", "2024-06-13", "2024-06-25"],
            berlin(2024, 6, 13, 12, 0), BERLIN,
        )

        assert plan.past_exdates == ["2024-05-28"]
        assert plan.future_exdates == ["2024-06-13", "2024-06-25"]

    def test_no_future(self):
        """Test a split after the last occurrence is a no-op."""
        plan = plan_split(self.ANCHOR, "FREQ=WEEKLY;COUNT=3", None, [], utc(2024, 6, 1), BERLIN)

        assert plan.outcome == SplitOutcome.NO_FUTURE_OCCURRENCES

    def test_no_future_with_recurrence_end(self):
        """Test the recurrence end bounds the planner."""
        plan = plan_split(self.ANCHOR, self.RULE, utc(2024, 2, 1), [], utc(2024, 6, 1), BERLIN)

        assert plan.outcome == SplitOutcome.NO_FUTURE_OCCURRENCES

    def test_all_future(self):
        """Test a split before the anchor updates the existing series."""
        plan = plan_split(self.ANCHOR, self.RULE, None, [], utc(2023, 12, 1), BERLIN)

        assert plan.outcome == SplitOutcome.UPDATED_EXISTING

    def test_split_long_before_anchor(self):
        """Test a split more than max_years before the anchor still updates the series."""
        plan = plan_split(self.ANCHOR, self.RULE, None, [], utc(2012, 1, 1), BERLIN, max_years=10)

        assert plan.outcome == SplitOutcome.UPDATED_EXISTING
        assert plan.first_future == self.ANCHOR

    def test_split_long_before_anchor_with_recurrence_end(self):
        """Test the recurrence end still bounds a far-early split."""
        plan = plan_split(
            self.ANCHOR, self.RULE, utc(2024, 2, 1), [], utc(2012, 1, 1), BERLIN, max_years=10
        )

        assert plan.outcome == SplitOutcome.UPDATED_EXISTING
        assert plan.first_future == self.ANCHOR

    def test_exdates_do_not_move_boundary(self):
        """Test an excluded last-past occurrence still defines the boundary."""
        plan = plan_split(self.ANCHOR, self.RULE, None, ["2024-06-11"], berlin(2024, 6, 13, 12), BERLIN)

        assert plan.last_past == berlin(2024, 6, 11, 19, 0)


# ============================================================================
# split_series_from Tests
# ============================================================================


class TestSplitSeriesFrom:
    """Tests for the split operation."""

    def test_split_creates_future_series(self, series_service, sample_series):
        """Test a split bounds the original and creates the new series."""
        series = sample_series(summary="Hack Night", dtend=berlin(2024, 1, 9, 22, 0), frequency_label="Every Tuesday")

        result = series_service.split_series_from(
            series.guid,
            berlin(2024, 6, 13, 12, 0),
            SeriesSplitPatch(summary="Hack Night (Room 2)", location="Room 2"),
        )

        assert result.outcome == SplitOutcome.SPLIT
        assert result.split_date_key == "2024-06-13"
        original, new = result.original, result.new_series
        assert original.recurrence_end_date == berlin(2024, 6, 12, 19, 0)
        assert original.sequence == 1
        assert original.summary == "Hack Night"
        assert new.guid != original.guid
        assert new.dtstart == berlin(2024, 6, 18, 19, 0)
        assert new.dtend == berlin(2024, 6, 18, 22, 0)
        assert new.summary == "Hack Night (Room 2)"
        assert new.location == "Room 2"
        assert new.rrule == "FREQ=WEEKLY;BYDAY=TU"
        assert new.recurrence_end_date is None
        assert new.timezone == BERLIN
        assert new.space_id == original.space_id
        assert new.event_type_id == original.event_type_id
        assert new.frequency_label == "Every Tuesday"
        assert new.sequence == 0

    def test_split_conserves_occurrences(self, series_service, sample_series):
        """Test every occurrence ends up in exactly one of the two series."""
        series = sample_series(recurrence_end_date=berlin(2024, 9, 1))
        before = dates(series)

        result = series_service.split_series_from(series.guid, berlin(2024, 6, 13, 12, 0))

        past = dates(result.original)
        future = dates(result.new_series)
        assert past + future == before
        assert past[-1] == "2024-06-11"
        assert future[0] == "2024-06-18"
        assert set(past).isdisjoint(future)

    def test_split_conserves_across_dst(self, series_service, sample_series):
        """Test conservation when the last past occurrence is right before spring forward."""
        series = sample_series(dtstart=berlin(2024, 3, 2, 19, 0), rrule="FREQ=WEEKLY;BYDAY=SA")
        window = (utc(2024, 3, 1), utc(2024, 5, 1))
        before = dates(series, *window)

        result = series_service.split_series_from(series.guid, berlin(2024, 4, 1))

        assert dates(result.original, *window) + dates(result.new_series, *window) == before

    def test_split_moves_future_exdates(self, series_service, sample_series):
        """Test future exclusions move to the new series."""
        series = sample_series(exdates=["2024-05-28", "2024-06-25"])

        result = series_service.split_series_from(series.guid, berlin(2024, 6, 13, 12, 0))

        assert result.original.exdate_keys == ["2024-05-28"]
        assert result.new_series.exdate_keys == ["2024-06-25"]
        assert "2024-06-25" not in dates(result.new_series)

    def test_split_migrates_overrides(self, series_service, sample_series, sample_override, test_db_session):
        """Test overrides on or after the split date move to the new series."""
        series = sample_series()
        past = sample_override(series, "2024-06-11", summary="Past")
        past_id = past.id
        sample_override(series, "2024-06-18", summary="Future", notes="Moved", dtstart=berlin(2024, 6, 19, 19))
        sample_override(series, "2024-07-02", status="cancelled")

        result = series_service.split_series_from(series.guid, berlin(2024, 6, 13, 12, 0))

        assert result.migrated_overrides == 2
        original_rows = test_db_session.query(OccurrenceOverride).filter_by(event_id=result.original.id).all()
        new_rows = test_db_session.query(OccurrenceOverride).filter_by(event_id=result.new_series.id).all()
        assert [(o.id, o.occurrence_date) for o in original_rows] == [(past_id, "2024-06-11")]
        migrated = {o.occurrence_date: o for o in new_rows}
        assert set(migrated) == {"2024-06-18", "2024-07-02"}
        assert migrated["2024-06-18"].summary == "Future"
        assert migrated["2024-06-18"].notes == "Moved"
        assert migrated["2024-06-18"].dtstart == berlin(2024, 6, 19, 19)
        assert migrated["2024-07-02"].status == "cancelled"

    def test_split_same_day_keeps_past_override(self, series_service, sample_series, sample_override):
        """Test a split later on an occurrence day leaves that day's override in the past."""
        series = sample_series()
        sample_override(series, "2024-06-11", summary="Tonight")

        result = series_service.split_series_from(series.guid, berlin(2024, 6, 11, 21, 0))

        assert result.split_date_key == "2024-06-18"
        assert result.migrated_overrides == 0
        assert [o.occurrence_date for o in result.original.overrides] == ["2024-06-11"]

    def test_split_with_new_time_of_day(self, series_service, sample_series):
        """Test a new start/end time applies on the first future occurrence's date."""
        series = sample_series(dtend=berlin(2024, 1, 9, 22, 0))

        result = series_service.split_series_from(
            series.guid,
            berlin(2024, 6, 13, 12, 0),
            {"dtstart": berlin(2024, 1, 1, 18, 30), "dtend": berlin(2024, 1, 1, 20, 0)},
        )

        assert result.new_series.dtstart == berlin(2024, 6, 18, 18, 30)
        assert result.new_series.dtend == berlin(2024, 6, 18, 20, 0)

    def test_split_with_new_rule(self, series_service, sample_series):
        """Test a replacement rule applies to the new series only."""
        series = sample_series()

        result = series_service.split_series_from(
            series.guid, berlin(2024, 6, 13, 12, 0), {"rrule": "FREQ=WEEKLY;BYDAY=TU;INTERVAL=2"}
        )

        assert result.original.rrule == "FREQ=WEEKLY;BYDAY=TU"
        assert result.new_series.rrule == "FREQ=WEEKLY;BYDAY=TU;INTERVAL=2"
        assert dates(result.new_series, utc(2024, 6, 1), utc(2024, 7, 31)) == ["2024-06-18", "2024-07-02", "2024-07-16", "2024-07-30"]

    def test_split_rejects_invalid_new_rule(self, series_service, sample_series):
        """Test an invalid replacement rule rejects the split without changes."""
        series = sample_series()

        with pytest.raises(InvalidRuleError):
            series_service.split_series_from(series.guid, berlin(2024, 6, 13), {"rrule": "FREQ=NOPE"})

        assert series.recurrence_end_date is None
        assert series.sequence == 0

    def test_split_reduces_count(self, series_service, sample_series):
        """Test a COUNT-limited series keeps its total number of occurrences."""
        series = sample_series(rrule="FREQ=WEEKLY;BYDAY=TU;COUNT=10")

        result = series_service.split_series_from(series.guid, berlin(2024, 1, 25))

        assert result.outcome == SplitOutcome.SPLIT
        assert result.new_series.rrule == "FREQ=WEEKLY;BYDAY=TU;COUNT=7"
        assert len(dates(result.original)) == 3
        assert len(dates(result.new_series)) == 7

    def test_split_single_event_rejected(self, series_service, sample_series):
        """Test splitting a non-recurring event is a validation error."""
        series = sample_series(rrule=None)

        with pytest.raises(ValidationError):
            series_service.split_series_from(series.guid, utc(2024, 6, 1))

    def test_split_after_last_occurrence_is_noop(self, series_service, sample_series):
        """Test a split after the series ended changes nothing."""
        series = sample_series(rrule="FREQ=WEEKLY;BYDAY=TU;COUNT=3")

        result = series_service.split_series_from(series.guid, utc(2024, 6, 1), {"summary": "Ignored"})

        assert result.outcome == SplitOutcome.NO_FUTURE_OCCURRENCES
        assert result.new_series is None
        assert series.summary == "Open Hack Night"
        assert series.sequence == 0

    def test_split_before_first_occurrence_updates_in_place(self, series_service, sample_series):
        """Test a split before the anchor edits the existing series."""
        series = sample_series()

        result = series_service.split_series_from(
            series.guid, utc(2024, 1, 1), {"summary": "Renamed", "status": "tentative"}
        )

        assert result.outcome == SplitOutcome.UPDATED_EXISTING
        assert result.new_series is None
        assert result.original.summary == "Renamed"
        assert result.original.status == "tentative"
        assert result.original.sequence == 1

    def test_split_years_before_anchor_updates_in_place(self, series_service, test_settings, sample_series):
        """Test a split further back than the expansion ceiling still applies the patch."""
        series = sample_series()
        years = test_settings.max_expansion_years + 2

        result = series_service.split_series_from(
            series.guid, utc(2024 - years, 1, 1), {"summary": "Renamed"}
        )

        assert result.outcome == SplitOutcome.UPDATED_EXISTING
        assert result.original.summary == "Renamed"

    @freeze_time("2024-06-13 10:00:00")
    def test_split_from_now(self, series_service, sample_series):
        """Test splitting from the current instant, as the editor does."""
        series = sample_series()

        result = series_service.split_series_from(series.guid, datetime.now(timezone.utc))

        assert result.split_date_key == "2024-06-13"
        assert result.new_series.dtstart == berlin(2024, 6, 18, 19, 0)
        assert result.new_series.created_at == utc(2024, 6, 13, 10, 0)
