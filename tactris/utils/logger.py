"""
Logging setup for the stats engine.

Handlers are attached once, to the ``tactris`` package logger. Module loggers
created with ``logging.getLogger(__name__)`` propagate to it, so services only
need a plain module-level logger.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from tactris.config import Config

PACKAGE_LOGGER = 'tactris'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _configure_package_logger(level: int) -> logging.Logger:
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if package_logger.handlers:
        return package_logger

    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    # Daily file handler, skipped when LOG_DIR is empty
    if Config.LOG_DIR:
        log_dir = Path(Config.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(
            log_dir / f'tactris_stats_{datetime.now().strftime("%Y%m%d")}.log',
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    return package_logger


def setup_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """Get a logger under the package logger, configuring handlers on first use"""
    if level is None:
        level = logging.DEBUG if Config.DEBUG else logging.INFO
    _configure_package_logger(level)

    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + '.'):
        # e.g. "__main__" when the engine is run as a script
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)
