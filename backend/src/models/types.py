"""
Custom SQLAlchemy types for cross-database compatibility.

Provides types that work across PostgreSQL and SQLite for testing.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, TypeDecorator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime (column default)."""
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Platform-independent timezone-aware timestamp.

    Uses PostgreSQL's TIMESTAMP WITH TIME ZONE when available, otherwise a
    plain DATETIME holding naive UTC for SQLite.

    Values are always bound as UTC and always returned as aware UTC
    datetimes, so instants compare the same way on both backends. Naive
    values on input are taken to be UTC already.
    """

    impl = DateTime
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(DateTime(timezone=True))
        else:
            return dialect.type_descriptor(DateTime())

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == 'postgresql':
            return value
        return value.replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
