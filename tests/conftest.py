"""Shared pytest fixtures for loaner reservation tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

from tests.helpers import RecordingNotifier, fake_connection  # noqa: E402


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def conn_and_cur():
    """(connection, cursor) pair of MagicMocks shaped like psycopg2's."""
    return fake_connection()
