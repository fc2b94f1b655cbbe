"""
Logging utilities for the learning curve pipeline

All pipeline components log through children of the 'lc_training' logger,
so configuring that one logger configures the whole run.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

LOGGER_NAME = 'lc_training'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')
BANNER = "=" * 80


def _resolve_level(name: str) -> int:
    level = str(name).upper()
    if level not in LEVELS:
        raise ValueError(f"logging.level must be one of {LEVELS}, got {name!r}")
    return getattr(logging, level)


def _reset_handlers(logger: logging.Logger):
    """Detach and close handlers left by a previous setup in this process"""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def setup_logger(config: Dict[str, Any]) -> logging.Logger:
    """
    Configure the project logger from the 'logging' config section.

    The console handler follows the configured level; the file handler,
    when enabled, always records DEBUG so fold-level detail survives a
    quiet console. Calling this again replaces the previous handlers.

    Args:
        config: Configuration dictionary

    Returns:
        The configured 'lc_training' logger
    """
    log_config = config['logging']
    level = _resolve_level(log_config.get('level', 'INFO'))
    file_enabled = log_config.get('file', False)

    logger = logging.getLogger(LOGGER_NAME)
    _reset_handlers(logger)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if log_config.get('console', True):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if file_enabled:
        log_file = Path(log_config['file_path'])
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # The logger itself must let DEBUG through for the file handler
    logger.setLevel(logging.DEBUG if file_enabled else level)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Child of the project logger, for components built without one"""
    if name:
        return logging.getLogger(f"{LOGGER_NAME}.{name}")
    return logging.getLogger(LOGGER_NAME)


def _timestamp() -> str:
    return datetime.now().strftime(DATE_FORMAT)


def log_phase_start(logger: logging.Logger, phase: str, description: str):
    """Banner opening a pipeline phase"""
    logger.info("")
    logger.info(BANNER)
    logger.info(f"{phase}: {description}")
    logger.info(BANNER)
    logger.info(f"Started at: {_timestamp()}")


def log_phase_complete(logger: logging.Logger, phase: str, metrics: Optional[Dict[str, Any]] = None):
    """Banner closing a pipeline phase, one line per reported metric"""
    logger.info("")
    logger.info(f"✓ {phase} completed successfully")
    for key, value in (metrics or {}).items():
        logger.info(f"  {key}: {value}")
    logger.info(f"Completed at: {_timestamp()}")
    logger.info(BANNER)
