"""Shared pytest fixtures for all tests."""

from unittest.mock import patch

import pytest

from talentmatch.db.connection import Datastore, init_tables


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary SQLite datastore for testing."""
    store = Datastore(database_url=None, sqlite_path=tmp_path / "test.db")
    store.open()
    init_tables(store)
    yield store
    store.close()


@pytest.fixture
def no_activity_log():
    """Disable activity feed notifications."""
    with patch("talentmatch.services.activity_log.ACTIVITY_LOG_URL", None):
        yield
