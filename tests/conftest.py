"""
Global pytest Configuration and Fixtures

Shared fixtures for the unit and integration suites: mocked PyMongo objects,
a reporter writing into a buffer, environment isolation for configuration
tests, and (re-exported from ``tests.fixtures.database_fixtures``) the
MongoDB server fixtures used by integration tests.
"""

import io

import pytest
from rich.console import Console

from bookstore.reporting import Reporter

from tests.fixtures.book_fixtures import make_collection
from tests.fixtures.database_fixtures import (  # noqa: F401
    books_collection,
    database_config,
    mongodb_uri,
    seed_books,
)

CONFIG_ENVIRONMENT_VARIABLES = (
    'MONGODB_URI',
    'MONGODB_DATABASE',
    'MONGODB_COLLECTION',
    'MONGODB_USERNAME',
    'MONGODB_PASSWORD',
    'MONGODB_SERVER_SELECTION_TIMEOUT_MS',
    'MONGODB_TEST_DATABASE',
    'BOOKSTORE_ENV',
    'DATABASE_MONITORING_ENABLED',
)


@pytest.fixture
def clean_environment(monkeypatch):
    """Remove every configuration variable so defaults apply."""
    for name in CONFIG_ENVIRONMENT_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def mock_collection():
    return make_collection()


@pytest.fixture
def output_buffer() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def reporter(output_buffer: io.StringIO) -> Reporter:
    """Reporter rendering plain text into ``output_buffer``."""
    console = Console(file=output_buffer, width=160, color_system=None, force_terminal=False)
    return Reporter(console)
