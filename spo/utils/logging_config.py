import logging
import logging.handlers
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Loggers that would otherwise log every probe request or subprocess spawn
QUIET_LOGGERS = ("uvicorn.access", "asyncio")

ROTATE_MAX_BYTES = 10 * 1024 * 1024
ROTATE_BACKUP_COUNT = 5


def _rotating_file_handler(log_file_path: str) -> logging.Handler:
    Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_file_path, maxBytes=ROTATE_MAX_BYTES, backupCount=ROTATE_BACKUP_COUNT
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def setup_logging(log_to_file: bool = False, log_file_path: str = "log.txt", log_level: str = "INFO") -> None:
    """
    Route operator and library logs to stdout, and optionally to a rotating file.

    The root logger runs at ``log_level``; the ``spo`` package always logs at DEBUG so a
    single reconcile pass can be traced step by step.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level.upper())

    logging.getLogger("spo").setLevel(logging.DEBUG)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    stdout_handler = logging.StreamHandler()
    stdout_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(stdout_handler)

    if not log_to_file:
        return

    try:
        root_logger.addHandler(_rotating_file_handler(log_file_path))
    except OSError as e:
        logging.exception(f"Failed to set up file logging to {log_file_path}: {e}")
        return
    logging.info(f"File logging enabled: {log_file_path}")
