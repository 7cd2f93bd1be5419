"""
Test fixtures for the bookstore query program.

Package Organization:
    Book Fixtures (book_fixtures.py):
        - factory_boy factory for book documents
        - Explain-plan documents shaped like the server's output
        - PyMongo cursor and collection stand-ins for unit tests

    Database Fixtures (database_fixtures.py):
        - Testcontainers MongoDB for integration tests
        - Clean ``books`` collection and matching DatabaseConfig
"""

from tests.fixtures.book_fixtures import (
    BookDocumentFactory,
    make_collection,
    make_cursor,
    make_explain_output,
)

__all__ = [
    'BookDocumentFactory',
    'make_collection',
    'make_cursor',
    'make_explain_output',
]
