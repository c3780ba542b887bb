"""
Outbound message service for the takeover agent.

Every text the agent sends (takeover offers, confirmations and session
replies) goes through MessageService.send_message. The service checks the
destination and content, holds sends to a per-minute budget, and retries
transient AppleScript failures with exponential backoff. Callers above it
never retry on their own.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, Optional

from .applescript_service import AppleScriptMessageService, classify_destination
from .config import MessageConfig, load_config
from .exceptions import (
    AuthenticationError,
    MessageSendError,
    MessageTooLargeError,
    MessageValidationError,
    MessagingError,
    NetworkError,
    RateLimitError,
    ServiceUnavailableError,
)

logger = logging.getLogger(__name__)

# Failures worth another attempt; everything else is reported straight away
RETRYABLE_ERRORS = (NetworkError, MessageSendError)


@dataclass
class MessageResult:
    """Outcome of one send_message call, retries included"""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    timestamp: Optional[datetime] = None
    retry_count: int = 0
    duration_seconds: float = 0.0


@dataclass
class SendStats:
    """Running counters for the service"""
    attempts: int = 0
    sent: int = 0
    failed: int = 0
    retries: int = 0
    total_send_seconds: float = 0.0
    last_sent_at: Optional[datetime] = None

    def record_success(self, duration: float) -> None:
        self.sent += 1
        self.total_send_seconds += duration
        self.last_sent_at = datetime.now()

    @property
    def average_send_seconds(self) -> float:
        return self.total_send_seconds / self.sent if self.sent else 0.0


@dataclass
class RateLimiter:
    """Sliding one-minute send budget"""
    messages_per_minute: int
    window_seconds: float = 60.0
    send_times: Deque[float] = field(default_factory=deque)

    def _expire(self, now: float) -> None:
        while self.send_times and now - self.send_times[0] >= self.window_seconds:
            self.send_times.popleft()

    def check_rate_limit(self) -> bool:
        """True if another send fits in the current window"""
        self._expire(time.monotonic())
        return len(self.send_times) < self.messages_per_minute

    def record_send(self) -> None:
        self.send_times.append(time.monotonic())

    def seconds_until_available(self) -> float:
        now = time.monotonic()
        self._expire(now)
        if len(self.send_times) < self.messages_per_minute:
            return 0.0
        return self.window_seconds - (now - self.send_times[0])

    @property
    def usage(self) -> int:
        self._expire(time.monotonic())
        return len(self.send_times)


class MessageService:
    """
    Sends texts through Messages.app with validation, rate limiting and retries
    """

    def __init__(self, config_override: Optional[MessageConfig] = None):
        """
        Initialize the message service

        Args:
            config_override: Settings to use instead of the environment

        Raises:
            ServiceUnavailableError: If Messages.app cannot be scripted and
                require_imessage_enabled is set
        """
        self.config = config_override or load_config()
        self.rate_limiter = RateLimiter(self.config.rate_limit_messages_per_minute)
        self.stats = SendStats()
        self._sender: Optional[AppleScriptMessageService] = self._connect_sender()

    def _connect_sender(self) -> Optional[AppleScriptMessageService]:
        sender = AppleScriptMessageService(self.config)
        if sender.is_available():
            logger.info("Messages.app is scriptable, outbound sends enabled")
            return sender

        if self.config.require_imessage_enabled:
            raise ServiceUnavailableError("Messages.app cannot be scripted via osascript")
        logger.warning("Messages.app is not scriptable, outbound sends will fail")
        return None

    def validate_recipient(self, recipient: str) -> bool:
        """
        Check a destination can be addressed

        Raises:
            InvalidRecipientFormatError: If the format is not recognised
        """
        classify_destination(recipient)
        return True

    def validate_message_content(self, content: str) -> bool:
        """
        Check message text is sendable

        Raises:
            MessageTooLargeError: If the text is over max_message_length
            MessageValidationError: If the text is empty
        """
        if not isinstance(content, str) or not content.strip():
            raise MessageValidationError("Message content must be non-empty text")

        if len(content) > self.config.max_message_length:
            raise MessageTooLargeError(
                f"Message length {len(content)} exceeds limit of {self.config.max_message_length}"
            )
        return True

    def _describe(self, recipient: str, content: str) -> str:
        parts = []
        if self.config.log_recipients:
            parts.append(f"to {recipient}")
        if self.config.log_message_content:
            parts.append(f"{content[:50]!r}")
        return " ".join(parts) or f"({len(content)} chars)"

    def _retry_delay(self, attempt: int) -> float:
        return self.config.initial_retry_delay * (self.config.retry_backoff_factor ** (attempt - 1))

    async def _attempt_send(self, recipient: str, content: str) -> str:
        """One send through AppleScript, with its failure classified"""
        if self._sender is None:
            raise ServiceUnavailableError("Messages.app is not available")

        try:
            return await self._sender.send_message(recipient, content)
        except AuthenticationError:
            raise
        except MessagingError as e:
            lowered = str(e).lower()
            if "network" in lowered or "connection" in lowered:
                raise NetworkError(str(e)) from e
            raise MessageSendError(str(e)) from e

    async def send_message(
        self,
        recipient: str,
        content: str,
        retry_on_failure: bool = True,
    ) -> MessageResult:
        """
        Send a text to a thread or handle

        Args:
            recipient: chat.db chat identifier, phone number or email
            content: Message text
            retry_on_failure: Retry transient failures with backoff

        Returns:
            MessageResult describing the final attempt

        Raises:
            MessageValidationError: Bad content
            InvalidRecipientFormatError: Bad destination
            RateLimitError: The per-minute budget is spent
        """
        self.stats.attempts += 1

        if self.config.validate_recipients:
            self.validate_recipient(recipient)
        self.validate_message_content(content)

        if not self.rate_limiter.check_rate_limit():
            wait = self.rate_limiter.seconds_until_available()
            raise RateLimitError(f"Send budget exhausted, next slot in {wait:.0f}s")

        logger.info(f"Sending message {self._describe(recipient, content)}")
        max_attempts = 1 + (self.config.max_retry_attempts if retry_on_failure else 0)
        started = time.monotonic()
        last_error: Optional[MessagingError] = None

        for attempt in range(max_attempts):
            if attempt:
                delay = self._retry_delay(attempt)
                self.stats.retries += 1
                logger.warning(f"Send attempt {attempt} failed, retrying in {delay:g}s: {last_error}")
                await asyncio.sleep(delay)

            try:
                message_id = await self._attempt_send(recipient, content)
            except RETRYABLE_ERRORS as e:
                last_error = e
                continue
            except MessagingError as e:
                last_error = e
                break

            duration = time.monotonic() - started
            self.rate_limiter.record_send()
            self.stats.record_success(duration)
            logger.debug(f"Message {message_id} sent after {attempt} retries")
            return MessageResult(
                success=True,
                message_id=message_id,
                timestamp=datetime.now(),
                retry_count=attempt,
                duration_seconds=duration,
            )

        self.stats.failed += 1
        logger.error(f"Message send failed: {last_error}")
        return MessageResult(
            success=False,
            error=str(last_error),
            timestamp=datetime.now(),
            retry_count=attempt,
            duration_seconds=time.monotonic() - started,
        )

    def get_metrics(self) -> Dict[str, Any]:
        """
        Send counters for status reporting

        Returns:
            Dict of attempts, outcomes, retries, timing and rate-limit usage
        """
        success_rate = self.stats.sent / self.stats.attempts if self.stats.attempts else 0.0
        return {
            'total_attempts': self.stats.attempts,
            'successful_sends': self.stats.sent,
            'failed_sends': self.stats.failed,
            'success_rate': success_rate,
            'total_retries': self.stats.retries,
            'average_duration_seconds': self.stats.average_send_seconds,
            'last_send_time': self.stats.last_sent_at.isoformat() if self.stats.last_sent_at else None,
            'rate_limit_messages_per_minute': self.rate_limiter.messages_per_minute,
            'current_rate_limit_usage': self.rate_limiter.usage,
        }

    def reset_metrics(self) -> None:
        self.stats = SendStats()
        logger.info("Send metrics reset")

    def is_available(self) -> bool:
        """True if Messages.app can currently be scripted"""
        return self._sender is not None and self._sender.is_available()
