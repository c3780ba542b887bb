"""
Configuration management for the takeover agent.

This module holds the scalar settings the orchestration core runs on:
inactivity bounds, session limits, sample sizes and timer intervals.
"""

import os
from typing import Optional
from pydantic import BaseModel, Field, validator


class AgentConfig(BaseModel):
    """Configuration model for inactivity detection and automated sessions."""

    # Inactivity window
    inactivity_threshold_ms: int = Field(
        default=120_000,
        description="Own-side inactivity before a takeover offer is made"
    )

    max_inactivity_ms: int = Field(
        default=3_600_000,
        description="Inactivity beyond which a thread is considered abandoned"
    )

    recent_counterpart_window_ms: int = Field(
        default=300_000,
        description="How recent the counterpart's last message must be to offer help"
    )

    # Session limits
    max_turns: int = Field(
        default=3,
        description="Maximum automated messages per active session"
    )

    response_timeout_ms: int = Field(
        default=60_000,
        description="How long a session waits for the counterpart before winding down"
    )

    reactivation_grace_ms: int = Field(
        default=300_000,
        description="Cool-down window in which a counterpart reply re-activates the session"
    )

    reactivation_delay_ms: int = Field(
        default=5_000,
        description="Delay before an automatic re-activation is attempted"
    )

    reply_delay_ms: int = Field(
        default=2_000,
        description="Pause before answering a counterpart reply during a session"
    )

    # History sizes
    style_sample_count: int = Field(
        default=50,
        description="Own-message samples retained per conversation for style analysis"
    )

    exchange_history_size: int = Field(
        default=50,
        description="Messages retained per conversation as conversational context"
    )

    context_exchange_count: int = Field(
        default=10,
        description="Recent exchange entries included in a generation prompt"
    )

    context_sample_count: int = Field(
        default=15,
        description="Own-message samples included in a generation prompt"
    )

    # Scanner
    scan_interval_ms: int = Field(
        default=30_000,
        description="Period of the inactivity scan"
    )

    # Identity
    user_identifier: str = Field(
        default="",
        description="The user's own address; offers and notices are sent here"
    )

    self_thread_id: Optional[str] = Field(
        default=None,
        description="Thread id of the user's note-to-self thread (defaults to user_identifier)"
    )

    debug: bool = Field(
        default=False,
        description="Verbose logging"
    )

    @validator(
        'inactivity_threshold_ms',
        'max_inactivity_ms',
        'recent_counterpart_window_ms',
        'response_timeout_ms',
        'scan_interval_ms',
    )
    def validate_positive_interval(cls, v):
        if v <= 0:
            raise ValueError("intervals and thresholds must be positive")
        return v

    @validator('reactivation_grace_ms', 'reactivation_delay_ms', 'reply_delay_ms')
    def validate_non_negative_interval(cls, v):
        if v < 0:
            raise ValueError("delays and grace windows must be non-negative")
        return v

    @validator('max_inactivity_ms')
    def validate_max_inactivity(cls, v, values):
        threshold = values.get('inactivity_threshold_ms')
        if threshold is not None and v < threshold:
            raise ValueError("max_inactivity_ms must be >= inactivity_threshold_ms")
        return v

    @validator('max_turns')
    def validate_max_turns(cls, v):
        if v < 1:
            raise ValueError("max_turns must be at least 1")
        if v > 20:
            raise ValueError("max_turns cannot exceed 20")
        return v

    @validator(
        'style_sample_count',
        'exchange_history_size',
        'context_exchange_count',
        'context_sample_count',
    )
    def validate_history_size(cls, v):
        if v < 1:
            raise ValueError("history and sample sizes must be at least 1")
        return v

    @property
    def self_thread(self) -> str:
        """Thread excluded from monitoring and used for offers."""
        return self.self_thread_id or self.user_identifier


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes')


def load_agent_config() -> AgentConfig:
    """
    Load agent configuration from environment variables or defaults.

    Environment variables supported:
    - INACTIVITY_THRESHOLD_MS: Inactivity before an offer
    - MAX_INACTIVITY_MS: Staleness bound
    - RECENT_COUNTERPART_WINDOW_MS: Counterpart recency window
    - MAX_AGENT_MESSAGES: Maximum automated turns per session
    - RESPONSE_TIMEOUT_MS: Wait for counterpart reply before wind-down
    - REACTIVATION_GRACE_MS: Cool-down re-activation window
    - REACTIVATION_DELAY_MS: Delay before automatic re-activation
    - REPLY_DELAY_MS: Pause before answering a counterpart reply
    - STYLE_ANALYSIS_MESSAGE_COUNT: Own-message samples kept
    - EXCHANGE_HISTORY_SIZE: Exchange entries kept
    - TIMER_CHECK_INTERVAL_MS: Scan period
    - USER_IDENTIFIER: The user's own address
    - SELF_THREAD_ID: Note-to-self thread id (defaults to USER_IDENTIFIER)
    - DEBUG: Verbose logging (true/false)

    Returns:
        AgentConfig: Configured settings instance
    """
    config_data = {}

    int_settings = {
        'INACTIVITY_THRESHOLD_MS': 'inactivity_threshold_ms',
        'MAX_INACTIVITY_MS': 'max_inactivity_ms',
        'RECENT_COUNTERPART_WINDOW_MS': 'recent_counterpart_window_ms',
        'MAX_AGENT_MESSAGES': 'max_turns',
        'RESPONSE_TIMEOUT_MS': 'response_timeout_ms',
        'REACTIVATION_GRACE_MS': 'reactivation_grace_ms',
        'REACTIVATION_DELAY_MS': 'reactivation_delay_ms',
        'REPLY_DELAY_MS': 'reply_delay_ms',
        'STYLE_ANALYSIS_MESSAGE_COUNT': 'style_sample_count',
        'EXCHANGE_HISTORY_SIZE': 'exchange_history_size',
        'TIMER_CHECK_INTERVAL_MS': 'scan_interval_ms',
    }
    for env_name, field_name in int_settings.items():
        if value := os.getenv(env_name):
            config_data[field_name] = int(value)

    if user_identifier := os.getenv('USER_IDENTIFIER'):
        config_data['user_identifier'] = user_identifier.strip()

    if self_thread_id := os.getenv('SELF_THREAD_ID'):
        config_data['self_thread_id'] = self_thread_id.strip()

    if debug := os.getenv('DEBUG'):
        config_data['debug'] = _env_bool(debug)

    return AgentConfig(**config_data)
