"""
Structured Logging Implementation using structlog

Configures structlog on top of the standard library ``logging`` module for the
bookstore query program. Log events carry key/value context (collection,
operation, counts, durations) and are rendered either for humans on the
console or as JSON lines for log aggregation.

Key Features:
- structlog processor chain with level filtering, timestamps and exception
  formatting
- Console or JSON rendering selected by ``LOG_FORMAT``
- Optional rotating file handler
- Log stream kept on stderr so the result tables on stdout stay clean
"""

import logging
import logging.config
import os
from pathlib import Path
from typing import Optional

import structlog
from dotenv import load_dotenv

# LoggingConfig reads the environment at import time
load_dotenv()


class LoggingConfig:
    """
    Logging configuration read from the environment.
    """

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    LOG_FORMAT = os.getenv('LOG_FORMAT', 'console')  # console, json

    LOG_STREAM = os.getenv('LOG_STREAM', 'ext://sys.stderr')
    COLORED_CONSOLE_OUTPUT = os.getenv('COLORED_CONSOLE_OUTPUT', 'false').lower() == 'true'

    LOG_FILE_ENABLED = os.getenv('LOG_FILE_ENABLED', 'false').lower() == 'true'
    LOG_FILE_PATH = os.getenv('LOG_FILE_PATH', 'logs/bookstore.log')
    LOG_FILE_MAX_SIZE = int(os.getenv('LOG_FILE_MAX_SIZE', '10')) * 1024 * 1024  # 10MB default
    LOG_FILE_BACKUP_COUNT = int(os.getenv('LOG_FILE_BACKUP_COUNT', '3'))

    APPLICATION_NAME = os.getenv('APPLICATION_NAME', 'bookstore-queries')


def setup_structured_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None
) -> structlog.stdlib.BoundLogger:
    """
    Setup structured logging for the process.

    Args:
        log_level: Overrides ``LOG_LEVEL`` when given
        log_format: Overrides ``LOG_FORMAT`` when given

    Returns:
        Configured structured logger instance
    """
    level = (log_level or LoggingConfig.LOG_LEVEL).upper()
    fmt = log_format or LoggingConfig.LOG_FORMAT

    if LoggingConfig.LOG_FILE_ENABLED and LoggingConfig.LOG_FILE_PATH:
        log_dir = Path(LoggingConfig.LOG_FILE_PATH).parent
        log_dir.mkdir(parents=True, exist_ok=True)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if fmt == 'json':
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=LoggingConfig.COLORED_CONSOLE_OUTPUT))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging_config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'plain': {
                'format': '%(message)s'
            }
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'plain',
                'stream': LoggingConfig.LOG_STREAM
            }
        },
        'loggers': {
            '': {
                'handlers': ['console'],
                'level': level,
                'propagate': False
            },
            # Driver internals are noisy at DEBUG
            'pymongo': {
                'level': 'WARNING'
            }
        }
    }

    if LoggingConfig.LOG_FILE_ENABLED and LoggingConfig.LOG_FILE_PATH:
        logging_config['handlers']['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'formatter': 'plain',
            'filename': LoggingConfig.LOG_FILE_PATH,
            'maxBytes': LoggingConfig.LOG_FILE_MAX_SIZE,
            'backupCount': LoggingConfig.LOG_FILE_BACKUP_COUNT,
            'encoding': 'utf-8'
        }
        logging_config['loggers']['']['handlers'].append('file')

    logging.config.dictConfig(logging_config)

    logger = structlog.get_logger(LoggingConfig.APPLICATION_NAME)
    logger.debug(
        "Structured logging initialized",
        log_level=level,
        log_format=fmt,
        file_logging=LoggingConfig.LOG_FILE_ENABLED
    )

    return logger


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance with optional name.

    Args:
        name: Logger name, defaults to application name

    Returns:
        Configured structured logger
    """
    return structlog.get_logger(name or LoggingConfig.APPLICATION_NAME)
