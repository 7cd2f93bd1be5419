"""
MongoDB command metrics.

A PyMongo ``CommandListener`` that records the count and duration of every
command the client sends, labelled by command name. The runner reads a
snapshot at the end of the sequence to log a per-command summary.
"""

import threading
from collections import defaultdict
from typing import Any, Dict

import structlog
from pymongo.monitoring import (
    CommandListener, CommandStartedEvent, CommandSucceededEvent, CommandFailedEvent
)
from prometheus_client import Counter, Histogram


logger = structlog.get_logger(__name__)

mongodb_operations_total = Counter(
    'bookstore_mongodb_operations_total',
    'Total MongoDB commands sent by the bookstore program',
    ['command', 'status']
)

mongodb_query_duration = Histogram(
    'bookstore_mongodb_query_duration_seconds',
    'MongoDB command execution time in seconds',
    ['command']
)

# Handshake and monitoring traffic is not part of the query sequence
IGNORED_COMMANDS = frozenset({'hello', 'ismaster', 'isMaster', 'endSessions', 'saslStart', 'saslContinue'})


class DatabaseMonitoringListener(CommandListener):
    """
    PyMongo command listener collecting per-command metrics.

    Prometheus series are process-wide; the listener also keeps its own
    tallies so one run's numbers can be reported without scraping.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._commands: Dict[str, Dict[str, Any]] = defaultdict(
            lambda: {'succeeded': 0, 'failed': 0, 'total_ms': 0.0}
        )

    def started(self, event: CommandStartedEvent):
        if event.command_name in IGNORED_COMMANDS:
            return
        logger.debug(
            "MongoDB command started",
            command=event.command_name,
            database=event.database_name,
            request_id=event.request_id
        )

    def succeeded(self, event: CommandSucceededEvent):
        self._record(event.command_name, 'succeeded', event.duration_micros)

    def failed(self, event: CommandFailedEvent):
        self._record(event.command_name, 'failed', event.duration_micros)
        if event.command_name not in IGNORED_COMMANDS:
            logger.warning(
                "MongoDB command failed",
                command=event.command_name,
                failure=str(event.failure),
                duration_ms=event.duration_micros / 1000
            )

    def _record(self, command: str, status: str, duration_micros: int):
        if command in IGNORED_COMMANDS:
            return

        mongodb_operations_total.labels(command=command, status=status).inc()
        mongodb_query_duration.labels(command=command).observe(duration_micros / 1_000_000)

        with self._lock:
            stats = self._commands[command]
            stats[status] += 1
            stats['total_ms'] += duration_micros / 1000

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Return a copy of the per-command tallies recorded so far."""
        with self._lock:
            return {
                command: {**stats, 'total_ms': round(stats['total_ms'], 3)}
                for command, stats in self._commands.items()
            }
