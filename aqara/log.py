"""Logging setup for applications embedding the client.

The library itself only logs through ``logging.getLogger("aqara.*")``;
call :func:`configure_logging` from an application entry point to get
console output plus a rotating log file.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s] - %(message)s'


def configure_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    max_bytes: int = 2 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Configure root logging: stream handler and, if ``log_file`` is set, a rotating file."""
    handlers = [logging.StreamHandler()]
    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(log_dir, exist_ok=True)
        handlers.insert(0, RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8',
        ))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    # requests/urllib3 are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))
