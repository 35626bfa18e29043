"""
Unit tests for database functionality.
"""

import pytest
from unittest.mock import patch, MagicMock
from sqlalchemy.exc import SQLAlchemyError

from core.database import build_engine, create_tables, drop_tables, get_db


class TestDatabaseFunctions:
    """Test cases for database utility functions."""

    @patch('core.database.SessionLocal')
    def test_get_db_success(self, mock_session_local):
        """Test successful database session creation."""
        mock_session = MagicMock()
        mock_session_local.return_value = mock_session

        db_iter = get_db()
        db = next(db_iter)

        assert db == mock_session
        mock_session_local.assert_called_once()

        with pytest.raises(StopIteration):
            next(db_iter)

        mock_session.close.assert_called_once()

    @patch('core.database.SessionLocal')
    def test_get_db_rolls_back_on_database_error(self, mock_session_local):
        """Test that a database error inside a request rolls the session back."""
        mock_session = MagicMock()
        mock_session_local.return_value = mock_session

        db_iter = get_db()
        next(db_iter)

        with pytest.raises(SQLAlchemyError):
            db_iter.throw(SQLAlchemyError("connection lost"))

        mock_session.rollback.assert_called_once()
        mock_session.close.assert_called_once()

    @patch('core.database.Base')
    @patch('core.database.engine')
    def test_create_tables_success(self, mock_engine, mock_base):
        """Test successful table creation."""
        mock_metadata = MagicMock()
        mock_base.metadata = mock_metadata

        create_tables()

        mock_metadata.create_all.assert_called_once_with(bind=mock_engine)

    @patch('core.database.Base')
    def test_create_tables_on_given_engine(self, mock_base):
        """Test that an explicit engine is used instead of the application engine."""
        mock_metadata = MagicMock()
        mock_base.metadata = mock_metadata
        other_engine = MagicMock()

        create_tables(bind=other_engine)

        mock_metadata.create_all.assert_called_once_with(bind=other_engine)

    @patch('core.database.Base')
    @patch('core.database.engine')
    def test_create_tables_with_exception(self, mock_engine, mock_base):
        """Test table creation with SQLAlchemy error."""
        mock_metadata = MagicMock()
        mock_metadata.create_all.side_effect = SQLAlchemyError("Test error")
        mock_base.metadata = mock_metadata

        with pytest.raises(SQLAlchemyError):
            create_tables()

    @patch('core.database.Base')
    @patch('core.database.engine')
    def test_drop_tables_success(self, mock_engine, mock_base):
        """Test successful table dropping."""
        mock_metadata = MagicMock()
        mock_base.metadata = mock_metadata

        drop_tables()

        mock_metadata.drop_all.assert_called_once_with(bind=mock_engine)

    @patch('core.database.Base')
    @patch('core.database.engine')
    def test_drop_tables_with_exception(self, mock_engine, mock_base):
        """Test table dropping with SQLAlchemy error."""
        mock_metadata = MagicMock()
        mock_metadata.drop_all.side_effect = SQLAlchemyError("Test error")
        mock_base.metadata = mock_metadata

        with pytest.raises(SQLAlchemyError):
            drop_tables()


class TestBuildEngine:
    """Test engine construction."""

    @patch('core.database.create_engine')
    def test_sqlite_allows_cross_thread_connections(self, mock_create_engine):
        """Test that SQLite engines disable the same-thread check."""
        build_engine("sqlite:///scheduling.db")
        kwargs = mock_create_engine.call_args.kwargs
        assert kwargs["connect_args"] == {"check_same_thread": False}

    @patch('core.database.create_engine')
    def test_postgresql_has_no_connect_args(self, mock_create_engine):
        """Test that PostgreSQL engines get no SQLite-specific arguments."""
        build_engine("postgresql://localhost/scheduling")
        kwargs = mock_create_engine.call_args.kwargs
        assert kwargs["connect_args"] == {}
        assert kwargs["pool_pre_ping"] is True
