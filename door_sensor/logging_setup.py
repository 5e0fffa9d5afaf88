"""
Logging configuration: rotating log file plus console.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s] %(message)s'

# The werkzeug request log only surfaces warnings
QUIET_LOGGERS = ("werkzeug",)


def setup_logging(log_file: str = None,
                  level: int = logging.INFO,
                  max_bytes: int = 1024 * 1024,
                  backup_count: int = 5) -> logging.Logger:
    """Configure logging with rotation."""
    logger = logging.getLogger('door_sensor')
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True, mode=0o755)
            file_handler = RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"File logging disabled, cannot open {log_file}: {e}")

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger
