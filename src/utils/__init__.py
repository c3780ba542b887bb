"""Shared utilities: logging setup and .env loading."""

from .logger_config import setup_logging, get_logger
from .load_env import load_env

__all__ = [
    'setup_logging',
    'get_logger',
    'load_env',
]
