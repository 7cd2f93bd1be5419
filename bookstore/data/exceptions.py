"""
Database Exception Handling

This module defines the exception hierarchy raised by the bookstore query
program. Every PyMongo failure that escapes the session manager or the query
layer is translated into one of these classes so the top-level runner can
catch a single base type, log it once and still release the connection.

Features:
- Custom exception hierarchy for connection, operation and index failures
- Mapping of PyMongo errors onto the hierarchy by exception MRO
- Prometheus counter for error monitoring
- Structured error logging through structlog

Nothing here retries or recovers; a raised exception ends the query sequence.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Type

import structlog
import pymongo.errors
from prometheus_client import Counter


logger = structlog.get_logger(__name__)

database_errors_total = Counter(
    'bookstore_database_errors_total',
    'Total database errors by type and operation',
    ['error_type', 'operation', 'severity']
)

# Server error codes for conflicting index definitions
INDEX_OPTIONS_CONFLICT = 85
INDEX_KEY_SPECS_CONFLICT = 86
INDEX_CONFLICT_CODES = frozenset({INDEX_OPTIONS_CONFLICT, INDEX_KEY_SPECS_CONFLICT})

# Authentication failures reported by the server
AUTHENTICATION_FAILED = 18


class DatabaseErrorSeverity(Enum):
    """Database error severity levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DatabaseOperationType(Enum):
    """Database operation types for error classification"""
    READ = "read"
    WRITE = "write"
    CONNECTION = "connection"
    INDEX = "index"
    AGGREGATION = "aggregation"
    EXPLAIN = "explain"


class DatabaseErrorCategory(Enum):
    """Database error categories"""
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    TIMEOUT = "timeout"
    CONFIGURATION = "configuration"
    QUERY = "query"
    INDEX = "index"
    UNKNOWN = "unknown"


class DatabaseException(Exception):
    """
    Base exception class for all database-related errors.

    Carries severity, category and operation context so a single handler can
    log a complete structured event without inspecting the driver error.
    """

    def __init__(
        self,
        message: str,
        severity: DatabaseErrorSeverity = DatabaseErrorSeverity.MEDIUM,
        category: DatabaseErrorCategory = DatabaseErrorCategory.UNKNOWN,
        operation: Optional[DatabaseOperationType] = None,
        database: Optional[str] = None,
        collection: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity
        self.category = category
        self.operation = operation
        self.database = database
        self.collection = collection
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)

        database_errors_total.labels(
            error_type=self.__class__.__name__,
            operation=operation.value if operation else "unknown",
            severity=severity.value
        ).inc()

        logger.debug(
            "Database exception created",
            error_type=self.__class__.__name__,
            severity=severity.value,
            category=category.value,
            operation=operation.value if operation else None,
            database=database,
            collection=collection,
            original_error=str(original_error) if original_error else None
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for structured logging"""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "operation": self.operation.value if self.operation else None,
            "database": self.database,
            "collection": self.collection,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_error) if self.original_error else None
        }


class ConnectionException(DatabaseException):
    """
    Exception for database connection failures.

    Raised when the endpoint cannot be reached or the server cannot be
    selected within the driver's timeout.
    """

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('severity', DatabaseErrorSeverity.HIGH)
        kwargs.setdefault('category', DatabaseErrorCategory.NETWORK)
        kwargs.setdefault('operation', DatabaseOperationType.CONNECTION)
        super().__init__(message, **kwargs)


class AuthenticationException(ConnectionException):
    """Exception for rejected database credentials."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('severity', DatabaseErrorSeverity.CRITICAL)
        kwargs.setdefault('category', DatabaseErrorCategory.AUTHENTICATION)
        super().__init__(message, **kwargs)


class OperationException(DatabaseException):
    """
    Exception for a query, update, delete, aggregation, index or explain call
    rejected by the store.
    """

    def __init__(self, message: str, query: Optional[Dict] = None, **kwargs):
        kwargs.setdefault('severity', DatabaseErrorSeverity.MEDIUM)
        kwargs.setdefault('category', DatabaseErrorCategory.QUERY)
        self.query = query
        super().__init__(message, **kwargs)


class IndexException(OperationException):
    """Exception for an index definition that conflicts with an existing one."""

    def __init__(self, message: str, keys: Optional[Any] = None, **kwargs):
        kwargs.setdefault('category', DatabaseErrorCategory.INDEX)
        kwargs.setdefault('operation', DatabaseOperationType.INDEX)
        self.keys = keys
        super().__init__(message, **kwargs)


# PyMongo Error Mapping

PYMONGO_ERROR_MAPPING = {
    pymongo.errors.ServerSelectionTimeoutError: ConnectionException,
    pymongo.errors.ConnectionFailure: ConnectionException,
    pymongo.errors.ConfigurationError: ConnectionException,
    pymongo.errors.OperationFailure: OperationException,
    pymongo.errors.InvalidOperation: OperationException,
    pymongo.errors.PyMongoError: DatabaseException,
}


def classify_pymongo_error(error: Exception) -> Type[DatabaseException]:
    """
    Classify a PyMongo error into the matching exception class.

    Walks the error's MRO so driver subclasses (``AutoReconnect``,
    ``WriteError``, ``DuplicateKeyError``...) land on their nearest mapped
    ancestor. Conflicting index definitions and authentication failures are
    recognised by server error code.

    Args:
        error: The original PyMongo exception

    Returns:
        Appropriate exception class
    """
    if isinstance(error, pymongo.errors.OperationFailure):
        if error.code in INDEX_CONFLICT_CODES:
            return IndexException
        if error.code == AUTHENTICATION_FAILED:
            return AuthenticationException

    for error_type in type(error).__mro__:
        if error_type in PYMONGO_ERROR_MAPPING:
            return PYMONGO_ERROR_MAPPING[error_type]
    return DatabaseException


def handle_database_error(
    error: Exception,
    operation: DatabaseOperationType,
    database: Optional[str] = None,
    collection: Optional[str] = None
) -> DatabaseException:
    """
    Translate a driver error into the bookstore exception hierarchy.

    Args:
        error: The original exception
        operation: Type of database operation
        database: Database name
        collection: Collection name (optional)

    Returns:
        Exception instance ready to be raised
    """
    if isinstance(error, DatabaseException):
        return error

    if isinstance(error, pymongo.errors.PyMongoError):
        exception_class = classify_pymongo_error(error)
        message = f"Database operation failed: {error}"
    else:
        exception_class = DatabaseException
        message = f"Unexpected database error: {error}"

    return exception_class(
        message,
        operation=operation,
        database=database,
        collection=collection,
        original_error=error
    )
