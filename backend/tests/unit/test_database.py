"""
Unit tests for database engine and session helpers.
"""

from sqlalchemy import inspect, text

from backend.src.db.database import SessionLocal, dispose_engine, engine, get_db, init_db


class TestDatabase:
    """Tests for engine setup and schema creation."""

    def test_init_db_creates_tables(self):
        """Test init_db creates the calendar tables."""
        init_db()

        tables = set(inspect(engine).get_table_names())
        assert {"spaces", "event_types", "events", "occurrence_overrides"} <= tables

    def test_foreign_keys_enabled(self):
        """Test SQLite connections enforce foreign keys."""
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1

    def test_get_db_yields_session(self):
        """Test get_db yields a working session."""
        generator = get_db()
        db = next(generator)
        try:
            assert db.execute(text("SELECT 1")).scalar() == 1
        finally:
            generator.close()

    def test_session_factory(self):
        """Test the session factory is bound to the engine."""
        db = SessionLocal()
        try:
            assert db.get_bind() is engine
        finally:
            db.close()

    def test_dispose_and_reinitialize(self):
        """Test the engine reconnects after dispose."""
        dispose_engine()
        init_db()

        assert "events" in inspect(engine).get_table_names()
