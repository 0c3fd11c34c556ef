"""Logging configuration for the wiki mirror."""

import logging
import sys
from pathlib import Path
from typing import Dict, Optional

from wikimirror.config import MirrorConfig

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Parallel crawls fetch pages on worker threads; name them in every record
THREADED_FORMAT = '%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s'

QUIET_LIBRARIES = ('urllib3', 'requests', 'charset_normalizer')


def _level(name: str) -> int:
    return getattr(logging, str(name).upper(), logging.INFO)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
    logger_levels: Optional[Dict[str, str]] = None,
    threaded: bool = False,
) -> None:
    """Configure logging for the wiki mirror.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        format_string: Optional custom format string
        logger_levels: Per-logger levels, e.g. {"wikimirror.fetcher": "DEBUG"}
        threaded: Include the thread name in each record
    """
    if format_string is None:
        format_string = THREADED_FORMAT if threaded else DEFAULT_FORMAT

    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=_level(level),
        format=format_string,
        handlers=handlers,
        force=True  # Override any existing configuration
    )

    # Set levels for noisy third-party libraries
    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    for name, logger_level in (logger_levels or {}).items():
        logging.getLogger(name).setLevel(_level(logger_level))


def setup_mirror_logging(
    config: MirrorConfig,
    level: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """Configure logging for a crawl from its configuration.

    Args:
        config: Mirror configuration (log_level, log_file, log_levels, max_workers)
        level: Level given on the command line; wins over config.log_level
        log_file: Log file given on the command line; wins over config.log_file
    """
    setup_logging(
        level=level or config.log_level,
        log_file=log_file or config.log_file or None,
        logger_levels=config.log_levels,
        threaded=config.max_workers > 1,
    )
