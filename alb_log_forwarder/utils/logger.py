"""
Logging configuration for the log forwarder
"""

import logging
import os
import sys
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

PACKAGE_LOGGER = 'alb_log_forwarder'

# Chatty at INFO; only shown when the forwarder itself runs at DEBUG
AWS_SDK_LOGGERS = ('boto3', 'botocore', 's3transfer', 'urllib3')


def resolve_log_level(level: Optional[str] = None) -> int:
    """Map a level name (or LOG_LEVEL) to a logging constant, INFO when unknown"""
    name = (level or os.environ.get('LOG_LEVEL') or 'INFO').strip().upper()
    numeric = logging.getLevelName(name)
    return numeric if isinstance(numeric, int) else logging.INFO


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Route forwarder logs to stdout

    Safe to call more than once: the root handler is only installed the first
    time, but levels are re-applied so ``main`` can raise or lower them after
    settings have been read.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR); LOG_LEVEL when omitted

    Returns:
        The package logger
    """
    numeric_level = resolve_log_level(level)

    logging.basicConfig(level=numeric_level, format=LOG_FORMAT, stream=sys.stdout)

    sdk_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in AWS_SDK_LOGGERS:
        logging.getLogger(name).setLevel(sdk_level)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(numeric_level)
    return package_logger
