"""
Logging and metrics for the bookstore query program.
"""

from bookstore.monitoring.logging import LoggingConfig, get_logger, setup_structured_logging
from bookstore.monitoring.metrics import DatabaseMonitoringListener

__all__ = [
    'LoggingConfig',
    'get_logger',
    'setup_structured_logging',
    'DatabaseMonitoringListener',
]
