"""
Database access for the bookstore query program.

Exports the session manager, the query layer and the exception hierarchy.
"""

from bookstore.data.exceptions import (
    AuthenticationException,
    ConnectionException,
    DatabaseErrorCategory,
    DatabaseErrorSeverity,
    DatabaseException,
    DatabaseOperationType,
    IndexException,
    OperationException,
    handle_database_error,
)
from bookstore.data.queries import BookQueries, PlanSummary, summarize_plan
from bookstore.data.session import (
    ConnectionHandle,
    close_session,
    database_session,
    open_session,
)

__all__ = [
    'AuthenticationException',
    'ConnectionException',
    'DatabaseErrorCategory',
    'DatabaseErrorSeverity',
    'DatabaseException',
    'DatabaseOperationType',
    'IndexException',
    'OperationException',
    'handle_database_error',
    'BookQueries',
    'PlanSummary',
    'summarize_plan',
    'ConnectionHandle',
    'close_session',
    'database_session',
    'open_session',
]
