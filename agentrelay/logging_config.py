"""Logging configuration for the agentrelay framework."""

import sys
import logging
import logging.handlers
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Chatty client libraries pulled in by the providers and the HTTP layer
THIRD_PARTY_LOGGERS = ['asyncio', 'aiohttp.access', 'httpx', 'httpcore', 'openai', 'mcp']


def setup_logging(
    level: Optional[int] = None,
    log_dir: Optional[Union[str, Path]] = None,
    max_bytes: int = 10_000_000,
    backup_count: int = 5,
) -> None:
    """Configure logging for agentrelay.

    Console output is always installed (once). When ``log_dir`` is given the
    main log and an errors-only log are written there with rotation.

    Args:
        level: Optional logging level (e.g., logging.DEBUG). If None, uses INFO.
        log_dir: Optional directory for log files.
        max_bytes: Rotation threshold for each log file.
        backup_count: Number of rotated files to keep.
    """
    level = level or logging.INFO
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if not root_logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_dir:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        main_handler = logging.handlers.RotatingFileHandler(
            log_dir / "agentrelay.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        main_handler.setFormatter(formatter)
        root_logger.addHandler(main_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            log_dir / "error.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        error_handler.setFormatter(formatter)
        error_handler.setLevel(logging.ERROR)
        root_logger.addHandler(error_handler)

    logging.getLogger('agentrelay').setLevel(level)

    if level != logging.DEBUG:
        for logger_name in THIRD_PARTY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info("Logging initialized", extra={
        "level": logging.getLevelName(level),
        "log_dir": str(log_dir) if log_dir else None
    })
