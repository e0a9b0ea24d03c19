"""
Early logging initialization module.

Sets up logging before any other imports that might trigger logging, so that messages
emitted while config.py loads its env files are not lost.
"""

import logging
import os

from spo.utils.logging_config import setup_logging


def initialize_logging() -> None:
    """
    Initialize logging early in the application lifecycle.

    Reads the basic logging configuration straight from environment variables since
    the settings object does not exist yet.
    """
    log_to_file = os.environ.get("LOG_TO_FILE", "false").lower() == "true"
    log_file_path = os.environ.get("LOG_FILE_PATH", "log.txt")
    log_level = os.environ.get("LOG_LEVEL", "INFO")

    setup_logging(log_to_file=log_to_file, log_file_path=log_file_path, log_level=log_level)

    logger = logging.getLogger(__name__)
    logger.debug("Early logging initialized successfully")


initialize_logging()
