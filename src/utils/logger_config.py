"""Logging configuration for the Takeover Agent"""

import logging
import logging.handlers
from datetime import datetime
from pathlib import Path

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Client libraries that log every HTTP request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "anthropic")


def _rotating_handler(path: Path, level: int, max_mb: int, backups: int,
                      formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_mb * 1024 * 1024, backupCount=backups
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_level=logging.INFO, log_dir="logs", console_output=True, file_output=True):
    """
    Configure root logging for the agent process

    Args:
        log_level: Level for the root logger and all handlers
        log_dir: Directory for the daily log and errors.log
        console_output: Log to stderr
        file_output: Log to rotating files under log_dir
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    if console_output:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    log_path = Path(log_dir)
    if file_output:
        log_path.mkdir(parents=True, exist_ok=True)
        daily_log = log_path / f"takeover_agent_{datetime.now().strftime('%Y%m%d')}.log"
        root_logger.addHandler(_rotating_handler(daily_log, log_level, 10, 5, formatter))
        root_logger.addHandler(_rotating_handler(log_path / "errors.log", logging.ERROR, 5, 3, formatter))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    logger = get_logger(__name__)
    logger.info(f"Logging at {logging.getLevelName(log_level)}"
                + (f", files in {log_path.absolute()}" if file_output else ""))


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name"""
    return logging.getLogger(name)
