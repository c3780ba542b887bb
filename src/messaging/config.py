"""
Settings for the iMessage transport.

Covers the outbound side (message limits, osascript timeout, retries and
rate limiting), the inbound chat.db watcher, and what send logging may
reveal.
"""

import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import BaseModel, Field, validator


DEFAULT_CHAT_DB_PATH = str(Path.home() / "Library" / "Messages" / "chat.db")


def _check_range(name: str, value, minimum, maximum: Optional[int] = None, exclusive: bool = False):
    if (value <= minimum) if exclusive else (value < minimum):
        if exclusive and minimum == 0:
            raise ValueError(f"{name} must be positive")
        if minimum == 0:
            raise ValueError(f"{name} must be non-negative")
        raise ValueError(f"{name} must be at least {minimum}")
    if maximum is not None and value > maximum:
        raise ValueError(f"{name} cannot exceed {maximum}")
    return value


class MessageConfig(BaseModel):
    """Transport settings, loaded from the environment by load_config"""
    
    # Outbound
    max_message_length: int = Field(
        default=1000,
        description="Longest text the transport will send, in characters"
    )
    send_timeout_seconds: int = Field(
        default=30,
        description="How long one osascript send may run"
    )
    max_retry_attempts: int = Field(
        default=3,
        description="Extra attempts after a transient send failure"
    )
    retry_backoff_factor: float = Field(
        default=2.0,
        description="Multiplier applied to the delay after each retry"
    )
    initial_retry_delay: float = Field(
        default=1.0,
        description="Seconds to wait before the first retry"
    )
    rate_limit_messages_per_minute: int = Field(
        default=60,
        description="Send budget per rolling minute"
    )
    require_imessage_enabled: bool = Field(
        default=True,
        description="Refuse to start when Messages.app cannot be scripted"
    )
    validate_recipients: bool = Field(
        default=True,
        description="Check destinations look like a chat id, phone number or email"
    )
    
    # Inbound
    chat_db_path: str = Field(
        default=DEFAULT_CHAT_DB_PATH,
        description="Messages database to watch"
    )
    poll_interval_seconds: float = Field(
        default=2.0,
        description="Seconds between chat.db polls"
    )
    poll_batch_size: int = Field(
        default=100,
        description="Most rows read in one poll"
    )
    
    # Privacy
    log_message_content: bool = Field(
        default=False,
        description="Include message text in send logs"
    )
    log_recipients: bool = Field(
        default=False,
        description="Include destinations in send logs"
    )
    
    @validator('max_message_length')
    def validate_max_message_length(cls, v):
        return _check_range('max_message_length', v, 0, 10000, exclusive=True)
    
    @validator('send_timeout_seconds')
    def validate_send_timeout(cls, v):
        return _check_range('send_timeout_seconds', v, 0, 300, exclusive=True)
    
    @validator('max_retry_attempts')
    def validate_max_retry_attempts(cls, v):
        return _check_range('max_retry_attempts', v, 0, 10)
    
    @validator('poll_interval_seconds')
    def validate_poll_interval(cls, v):
        return _check_range('poll_interval_seconds', v, 0, exclusive=True)
    
    @validator('poll_batch_size')
    def validate_poll_batch_size(cls, v):
        return _check_range('poll_batch_size', v, 1)


def _parse_bool(value: str) -> bool:
    return value.lower() == 'true'


# Environment variable -> (field name, parser)
ENV_SETTINGS: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    'MESSAGE_MAX_LENGTH': ('max_message_length', int),
    'MESSAGE_SEND_TIMEOUT': ('send_timeout_seconds', int),
    'MESSAGE_MAX_RETRIES': ('max_retry_attempts', int),
    'MESSAGE_RETRY_BACKOFF': ('retry_backoff_factor', float),
    'MESSAGE_INITIAL_DELAY': ('initial_retry_delay', float),
    'MESSAGE_RATE_LIMIT': ('rate_limit_messages_per_minute', int),
    'MESSAGE_REQUIRE_IMESSAGE': ('require_imessage_enabled', _parse_bool),
    'MESSAGE_VALIDATE_RECIPIENTS': ('validate_recipients', _parse_bool),
    'MESSAGES_CHAT_DB': ('chat_db_path', str),
    'MESSAGE_POLL_INTERVAL': ('poll_interval_seconds', float),
    'MESSAGE_POLL_BATCH': ('poll_batch_size', int),
    'MESSAGE_LOG_CONTENT': ('log_message_content', _parse_bool),
    'MESSAGE_LOG_RECIPIENTS': ('log_recipients', _parse_bool),
}


def load_config() -> MessageConfig:
    """
    Build the transport settings from the environment.

    Unset or empty variables keep the model defaults; see ENV_SETTINGS for
    the variable names. Booleans are true only for "true" in any case.

    Returns:
        MessageConfig: Validated settings

    Raises:
        ValueError: If a variable cannot be parsed or fails validation
    """
    config_data = {}
    for env_name, (field_name, parse) in ENV_SETTINGS.items():
        raw = os.getenv(env_name)
        if raw:
            config_data[field_name] = parse(raw)
    
    return MessageConfig(**config_data)
