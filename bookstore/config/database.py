"""
Database Configuration Module

Collects the MongoDB endpoint, database and collection names for the bookstore
query program and builds the PyMongo client. Values default to the local
``plp_bookstore.books`` collection and may be overridden through environment
variables, which python-dotenv loads from a ``.env`` file when present.

Environment Variables:
- MONGODB_URI: connection string (default ``mongodb://localhost:27017``)
- MONGODB_DATABASE / MONGODB_COLLECTION: target names
- MONGODB_USERNAME / MONGODB_PASSWORD: credentials merged into the URI
- MONGODB_SERVER_SELECTION_TIMEOUT_MS: passed to the driver only when set
- BOOKSTORE_ENV: ``development`` (default) or ``testing``
- DATABASE_MONITORING_ENABLED: register the command metrics listener
"""

import os
from typing import Any, Dict, Optional
from urllib.parse import quote_plus

from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError
import structlog

from dotenv import load_dotenv

from bookstore.monitoring.metrics import DatabaseMonitoringListener

load_dotenv()

logger = structlog.get_logger(__name__)

DEFAULT_MONGODB_URI = 'mongodb://localhost:27017'
DEFAULT_DATABASE_NAME = 'plp_bookstore'
DEFAULT_COLLECTION_NAME = 'books'
TESTING_DATABASE_NAME = 'plp_bookstore_test'


def _parse_timeout_ms(value: Optional[str]) -> Optional[int]:
    """
    Parse the server selection timeout from its environment value.

    Raises:
        ConnectionException: The value is not a positive integer
    """
    if not value:
        return None

    # bookstore.data imports this module through its session manager
    from bookstore.data.exceptions import (
        ConnectionException, DatabaseErrorCategory, DatabaseOperationType
    )

    try:
        timeout = int(value)
    except ValueError as e:
        raise ConnectionException(
            f"MONGODB_SERVER_SELECTION_TIMEOUT_MS must be an integer, got {value!r}",
            category=DatabaseErrorCategory.CONFIGURATION,
            operation=DatabaseOperationType.CONNECTION,
            original_error=e
        ) from e

    if timeout <= 0:
        raise ConnectionException(
            f"MONGODB_SERVER_SELECTION_TIMEOUT_MS must be positive, got {timeout}",
            category=DatabaseErrorCategory.CONFIGURATION,
            operation=DatabaseOperationType.CONNECTION
        )
    return timeout


class DatabaseConfig:
    """
    MongoDB connection configuration for one run of the query program.
    """

    def __init__(self, environment: Optional[str] = None):
        """
        Initialize database configuration for the given environment.

        Args:
            environment: Target environment (development, testing)
        """
        self.environment = environment or os.getenv('BOOKSTORE_ENV', 'development')
        self.monitoring_enabled = os.getenv('DATABASE_MONITORING_ENABLED', 'true').lower() == 'true'
        self.command_listener = DatabaseMonitoringListener() if self.monitoring_enabled else None

        self.mongodb_config = self._get_mongodb_config()

        logger.debug(
            "Database configuration initialized",
            environment=self.environment,
            database=self.database_name,
            collection=self.collection_name,
            monitoring_enabled=self.monitoring_enabled
        )

    def _get_mongodb_config(self) -> Dict[str, Any]:
        config = {
            'uri': os.getenv('MONGODB_URI', DEFAULT_MONGODB_URI),
            'database': os.getenv('MONGODB_DATABASE', DEFAULT_DATABASE_NAME),
            'collection': os.getenv('MONGODB_COLLECTION', DEFAULT_COLLECTION_NAME),
            'username': os.getenv('MONGODB_USERNAME'),
            'password': os.getenv('MONGODB_PASSWORD'),
            'server_selection_timeout_ms': _parse_timeout_ms(
                os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS')
            ),
        }

        if self.environment == 'testing':
            config['database'] = os.getenv('MONGODB_TEST_DATABASE', TESTING_DATABASE_NAME)

        # Build connection URI if credentials are provided separately
        if config['username'] and config['password'] and '://' in config['uri']:
            scheme, remainder = config['uri'].split('://', 1)
            username = quote_plus(config['username'])
            password = quote_plus(config['password'])
            config['uri'] = f"{scheme}://{username}:{password}@{remainder}"

        return config

    @property
    def uri(self) -> str:
        return self.mongodb_config['uri']

    @property
    def database_name(self) -> str:
        return self.mongodb_config['database']

    @property
    def collection_name(self) -> str:
        return self.mongodb_config['collection']

    def client_options(self) -> Dict[str, Any]:
        """
        Keyword arguments for ``MongoClient``.

        Timeouts are left at driver defaults unless explicitly configured.
        """
        options: Dict[str, Any] = {}

        timeout = self.mongodb_config.get('server_selection_timeout_ms')
        if timeout:
            options['serverSelectionTimeoutMS'] = timeout

        if self.command_listener is not None:
            options['event_listeners'] = [self.command_listener]

        return options

    def get_mongodb_client(self) -> MongoClient:
        """
        Create the PyMongo client and confirm the server answers ``ping``.

        Returns:
            Connected PyMongo client instance

        Raises:
            ConnectionFailure: The endpoint is unreachable
            OperationFailure: The server rejected the credentials
        """
        client = MongoClient(self.uri, **self.client_options())

        try:
            client.admin.command('ping')
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(
                "Failed to reach MongoDB",
                error=str(e),
                database=self.database_name,
                environment=self.environment
            )
            client.close()
            raise
        except Exception:
            client.close()
            raise

        logger.info(
            "PyMongo client created successfully",
            database=self.database_name,
            environment=self.environment
        )

        return client

    def to_dict(self) -> Dict[str, Any]:
        """Configuration summary with credentials removed."""
        return {
            'environment': self.environment,
            'database': self.database_name,
            'collection': self.collection_name,
            'authenticated': bool(self.mongodb_config['username']),
            'monitoring_enabled': self.monitoring_enabled,
        }


def create_database_config(environment: Optional[str] = None) -> DatabaseConfig:
    """
    Factory function to create database configuration instance.

    Args:
        environment: Target environment name

    Returns:
        Configured DatabaseConfig instance
    """
    return DatabaseConfig(environment)
