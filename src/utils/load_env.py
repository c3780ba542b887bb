#!/usr/bin/env python3
"""Load environment variables from .env file for local development."""

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from src.utils.logger_config import get_logger

logger = get_logger(__name__)


def load_env(env_file: Optional[Path] = None) -> bool:
    """Load environment variables from .env file if it exists.

    Variables already present in the environment win over the file.

    Returns:
        True if a .env file was found and loaded
    """
    env_file = env_file or Path.cwd() / '.env'
    
    if not env_file.exists():
        logger.info(f"No .env file found at {env_file}, using process environment")
        return False
    
    load_dotenv(env_file)
    logger.info(f"Environment variables loaded from {env_file}")
    return True


if __name__ == "__main__":
    load_env()
