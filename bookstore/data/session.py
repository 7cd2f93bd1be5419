"""
MongoDB session management.

Owns the single ``MongoClient`` used by one run of the query program. The
handle returned by :func:`open_session` is passed explicitly to every
operation; :func:`database_session` wraps open/close so the client is
released exactly once on every exit path.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional

import structlog
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

from bookstore.config.database import DatabaseConfig, create_database_config
from bookstore.data.exceptions import DatabaseOperationType, handle_database_error


logger = structlog.get_logger(__name__)


@dataclass
class ConnectionHandle:
    """Open connection to the target collection."""

    client: MongoClient
    database: Database
    collection: Collection
    config: DatabaseConfig
    opened_at: float = field(default_factory=time.perf_counter)
    closed: bool = False

    @property
    def database_name(self) -> str:
        return self.database.name

    @property
    def collection_name(self) -> str:
        return self.collection.name


def open_session(config: Optional[DatabaseConfig] = None) -> ConnectionHandle:
    """
    Connect to the configured endpoint and resolve the target collection.

    Args:
        config: Database configuration, created from the environment if omitted

    Returns:
        ConnectionHandle for the configured collection

    Raises:
        ConnectionException: The endpoint is unreachable
        AuthenticationException: The server rejected the credentials
    """
    config = config or create_database_config()

    try:
        client = config.get_mongodb_client()
    except PyMongoError as e:
        raise handle_database_error(
            e, DatabaseOperationType.CONNECTION, config.database_name, config.collection_name
        ) from e

    database = client[config.database_name]
    handle = ConnectionHandle(
        client=client,
        database=database,
        collection=database[config.collection_name],
        config=config
    )

    logger.info(
        "Database session opened",
        database=config.database_name,
        collection=config.collection_name
    )
    return handle


def close_session(handle: ConnectionHandle) -> None:
    """
    Release the handle's client. Closing an already closed handle does nothing.
    """
    if handle.closed:
        return

    handle.closed = True
    handle.client.close()

    logger.info(
        "Database session closed",
        database=handle.database_name,
        duration_ms=round((time.perf_counter() - handle.opened_at) * 1000, 2)
    )


@contextmanager
def database_session(config: Optional[DatabaseConfig] = None) -> Iterator[ConnectionHandle]:
    """
    Scoped acquisition of a :class:`ConnectionHandle`.

    Usage:
        with database_session() as handle:
            BookQueries(handle.collection).find_by_genre()
    """
    handle = open_session(config)
    try:
        yield handle
    finally:
        close_session(handle)
