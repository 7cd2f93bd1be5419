"""
Configuration package for the bookstore query program.
"""

from bookstore.config.database import (
    DEFAULT_COLLECTION_NAME,
    DEFAULT_DATABASE_NAME,
    DEFAULT_MONGODB_URI,
    DatabaseConfig,
    create_database_config,
)

__all__ = [
    'DEFAULT_COLLECTION_NAME',
    'DEFAULT_DATABASE_NAME',
    'DEFAULT_MONGODB_URI',
    'DatabaseConfig',
    'create_database_config',
]
