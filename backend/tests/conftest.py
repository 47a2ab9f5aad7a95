"""
Pytest configuration and fixtures for backend tests.

Provides shared fixtures for:
- Test database sessions
- Application settings
- Sample data factories (spaces, event types, series, overrides)
"""

import os
import pytest
from datetime import datetime, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app modules
os.environ['SPACECAL_DB_URL'] = 'sqlite:///:memory:'
os.environ['SPACECAL_TIMEZONE'] = 'Europe/Berlin'

from backend.src.config.settings import AppSettings
from backend.src.models import Base, Space, EventType, EventSeries, OccurrenceOverride
from backend.src.utils.timezone import format_exdates


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture(scope='function')
def test_db_engine():
    """Create an in-memory SQLite database engine for testing."""
    from sqlalchemy import event

    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )

    # Enable foreign key constraints for SQLite
    # This must be set for each connection
    def _fk_pragma_on_connect(dbapi_con, con_record):
        dbapi_con.execute('pragma foreign_keys=ON')

    event.listen(engine, 'connect', _fk_pragma_on_connect)

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope='function')
def test_db_session(test_db_engine):
    """Create a test database session."""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_db_engine
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ============================================================================
# Settings Fixtures
# ============================================================================

@pytest.fixture(scope='function')
def test_settings():
    """Application settings pinned to Europe/Berlin."""
    return AppSettings(
        app_timezone='Europe/Berlin',
        max_expansion_years=10,
        upcoming_months=6,
    )


# ============================================================================
# Sample Data Factories
# ============================================================================

@pytest.fixture
def sample_space(test_db_session):
    """Factory for creating sample Space models in the database."""
    def _create(slug='hackspace', name='Hackspace Main Room', is_public=True, description=None):
        space = Space(slug=slug, name=name, is_public=is_public, description=description)
        test_db_session.add(space)
        test_db_session.commit()
        test_db_session.refresh(space)
        return space
    return _create


@pytest.fixture
def sample_event_type(test_db_session):
    """Factory for creating sample EventType models in the database."""
    def _create(
        slug='meetup',
        name='Meetup',
        color='#3B82F6',
        is_internal=False,
        default_duration_minutes=120,
        space=None,
    ):
        event_type = EventType(
            slug=slug,
            name=name,
            color=color,
            is_internal=is_internal,
            default_duration_minutes=default_duration_minutes,
            space_id=space.id if space else None,
        )
        test_db_session.add(event_type)
        test_db_session.commit()
        test_db_session.refresh(event_type)
        return event_type
    return _create


@pytest.fixture
def sample_series(test_db_session, sample_space, sample_event_type):
    """Factory for creating sample EventSeries models in the database.

    Space and event type are created on first use unless passed in.
    """
    defaults = {}

    def _create(
        summary='Open Hack Night',
        dtstart=datetime(2024, 1, 9, 18, 0, tzinfo=timezone.utc),  # 19:00 CET
        dtend=None,
        rrule='FREQ=WEEKLY;BYDAY=TU',
        recurrence_end_date=None,
        exdates=None,
        tz='Europe/Berlin',
        status='confirmed',
        is_draft=False,
        location=None,
        frequency_label=None,
        space=None,
        event_type=None,
        **kwargs,
    ):
        if space is None:
            if 'space' not in defaults:
                defaults['space'] = sample_space()
            space = defaults['space']
        if event_type is None:
            if 'event_type' not in defaults:
                defaults['event_type'] = sample_event_type()
            event_type = defaults['event_type']

        series = EventSeries(
            space_id=space.id,
            event_type_id=event_type.id,
            summary=summary,
            dtstart=dtstart,
            dtend=dtend,
            rrule=rrule,
            recurrence_end_date=recurrence_end_date,
            exdates=format_exdates(exdates or []),
            timezone=tz,
            status=status,
            is_draft=is_draft,
            location=location,
            frequency_label=frequency_label,
            sequence=0,
            **kwargs,
        )
        test_db_session.add(series)
        test_db_session.commit()
        test_db_session.refresh(series)
        return series
    return _create


@pytest.fixture
def sample_override(test_db_session):
    """Factory for creating sample OccurrenceOverride models in the database."""
    def _create(series, occurrence_date, **fields):
        override = OccurrenceOverride(
            event_id=series.id,
            occurrence_date=occurrence_date,
            **fields,
        )
        test_db_session.add(override)
        test_db_session.commit()
        test_db_session.refresh(override)
        test_db_session.refresh(series)
        return override
    return _create
