"""
Unit tests for messaging service module.

The AppleScript sender is patched out; these tests cover validation,
retries, rate limiting and metrics.
"""

import pytest
from unittest.mock import AsyncMock, Mock, patch
from datetime import datetime

from src.messaging.service import (
    MessageService, 
    MessageResult, 
    RateLimiter
)
from src.messaging.applescript_service import (
    AppleScriptMessageService,
    DestinationKind,
    build_send_script,
    classify_destination,
)
from src.messaging.config import MessageConfig
from src.messaging.exceptions import (
    AuthenticationError,
    MessageSendError,
    MessageTooLargeError,
    MessageValidationError,
    InvalidRecipientFormatError,
    RateLimitError,
    ServiceUnavailableError,
)


class TestMessageResult:
    """Test the MessageResult dataclass."""
    
    def test_message_result_creation(self):
        """Test creating a MessageResult."""
        timestamp = datetime.now()
        result = MessageResult(
            success=True,
            message_id="test_123",
            timestamp=timestamp,
            retry_count=0,
            duration_seconds=1.5
        )
        
        assert result.success is True
        assert result.message_id == "test_123"
        assert result.error is None
        assert result.timestamp == timestamp


class TestRateLimiter:
    """Test the per-minute rate limiter."""
    
    def test_rate_limit(self):
        limiter = RateLimiter(messages_per_minute=2)
        
        assert limiter.check_rate_limit() is True
        limiter.record_send()
        limiter.record_send()
        assert limiter.check_rate_limit() is False


class TestMessageService:
    """Test the MessageService class."""
    
    def setup_method(self):
        """Set up test fixtures."""
        self.config = MessageConfig(
            max_message_length=100,
            require_imessage_enabled=False,
            validate_recipients=True,
            max_retry_attempts=2,
            initial_retry_delay=0.001,
        )
        self.patcher = patch('src.messaging.service.AppleScriptMessageService')
        self.mock_applescript = self.patcher.start()
        self.sender = self.mock_applescript.return_value
        self.sender.is_available.return_value = True
        self.sender.send_message = AsyncMock(return_value="applescript_1")
    
    def teardown_method(self):
        self.patcher.stop()
    
    def test_service_creation(self):
        """Test creating service with AppleScript."""
        service = MessageService(self.config)
        assert service.config == self.config
        assert service.is_available() is True
    
    def test_unavailable_when_not_required(self):
        """Test the service degrades when Messages cannot be scripted."""
        self.sender.is_available.return_value = False
        service = MessageService(self.config)
        assert service.is_available() is False
    
    def test_unavailable_when_required(self):
        """Test construction fails when Messages is required but unavailable."""
        self.sender.is_available.return_value = False
        with pytest.raises(ServiceUnavailableError):
            MessageService(MessageConfig(require_imessage_enabled=True))
    
    def test_validate_recipient_valid(self):
        """Test validating emails, phone numbers and group chat ids."""
        service = MessageService(self.config)
        
        valid_recipients = [
            "test@example.com",
            "user+tag@domain.co.uk",
            "+15551234567",
            "555-123-4567",
            "chat123456789",
        ]
        
        for recipient in valid_recipients:
            assert service.validate_recipient(recipient) is True
    
    def test_validate_recipient_invalid(self):
        """Test validating invalid recipients."""
        service = MessageService(self.config)
        
        invalid_recipients = [
            "",
            "   ",
            "invalid-email",
            "@domain.com",
            "123",
            "chatroom",
            None
        ]
        
        for recipient in invalid_recipients:
            with pytest.raises(InvalidRecipientFormatError):
                service.validate_recipient(recipient)
    
    def test_validate_message_content(self):
        """Test validating message content."""
        service = MessageService(self.config)
        
        assert service.validate_message_content("A" * 100) is True
        
        with pytest.raises(MessageTooLargeError):
            service.validate_message_content("A" * 101)
        
        for content in ["", "   ", None]:
            with pytest.raises(MessageValidationError):
                service.validate_message_content(content)
    
    @pytest.mark.asyncio
    async def test_send_message_success(self):
        """Test a successful send updates metrics."""
        service = MessageService(self.config)
        
        result = await service.send_message("+15551234567", "hey")
        
        assert result.success is True
        assert result.message_id == "applescript_1"
        self.sender.send_message.assert_awaited_once_with("+15551234567", "hey")
        metrics = service.get_metrics()
        assert metrics['successful_sends'] == 1
        assert metrics['success_rate'] == 1.0
        assert metrics['current_rate_limit_usage'] == 1
    
    @pytest.mark.asyncio
    async def test_send_message_retries(self):
        """Test transient failures are retried."""
        self.sender.send_message.side_effect = [
            MessageSendError("AppleScript failed: timeout"),
            "applescript_2",
        ]
        service = MessageService(self.config)
        
        result = await service.send_message("chat123", "hey")
        
        assert result.success is True
        assert result.retry_count == 1
        assert service.get_metrics()['total_retries'] == 1
    
    @pytest.mark.asyncio
    async def test_send_message_gives_up(self):
        """Test the result reports failure after retries are exhausted."""
        self.sender.send_message.side_effect = MessageSendError("AppleScript failed")
        service = MessageService(self.config)
        
        result = await service.send_message("+15551234567", "hey")
        
        assert result.success is False
        assert "AppleScript failed" in result.error
        assert self.sender.send_message.await_count == 3
        assert service.get_metrics()['failed_sends'] == 1
    
    @pytest.mark.asyncio
    async def test_permission_error_not_retried(self):
        """Test authentication errors fail immediately."""
        self.sender.send_message.side_effect = AuthenticationError("not permitted")
        service = MessageService(self.config)
        
        result = await service.send_message("+15551234567", "hey")
        
        assert result.success is False
        assert self.sender.send_message.await_count == 1
    
    @pytest.mark.asyncio
    async def test_rate_limit_exceeded(self):
        """Test sends beyond the rate limit are refused."""
        config = MessageConfig(require_imessage_enabled=False, rate_limit_messages_per_minute=1)
        service = MessageService(config)
        
        await service.send_message("+15551234567", "one")
        with pytest.raises(RateLimitError):
            await service.send_message("+15551234567", "two")
    
    @pytest.mark.asyncio
    async def test_send_without_service(self):
        """Test sending when Messages is unavailable reports failure."""
        self.sender.is_available.return_value = False
        service = MessageService(self.config)
        
        result = await service.send_message("+15551234567", "hey")
        
        assert result.success is False
    
    def test_reset_metrics(self):
        """Test resetting metrics."""
        service = MessageService(self.config)
        service.stats.attempts = 5
        service.reset_metrics()
        assert service.get_metrics()['total_attempts'] == 0


class TestAppleScriptSender:
    """Test destination handling in the AppleScript sender."""
    
    def test_classify_destination(self):
        assert classify_destination("chat123456789") is DestinationKind.GROUP_CHAT
        assert classify_destination("friend@icloud.com") is DestinationKind.EMAIL
        assert classify_destination("(555) 123-4567") is DestinationKind.PHONE
        
        with pytest.raises(InvalidRecipientFormatError):
            classify_destination("chatroom")
    
    def test_group_chat_script_uses_chat_id(self):
        script = build_send_script("chat42", 'say "hi"')
        
        assert 'chat id "iMessage;+;chat42"' in script
        assert 'send "say \\"hi\\""' in script
        assert "buddy" not in script
    
    def test_direct_script_uses_buddy(self):
        script = build_send_script("+15551112222", "back\\slash")
        
        assert 'buddy "+15551112222"' in script
        assert "back\\\\slash" in script
    
    def test_permission_error(self):
        sender = AppleScriptMessageService(MessageConfig())
        failed = Mock(returncode=1, stderr="execution error: Not authorized (-1743)")
        
        with patch('src.messaging.applescript_service.subprocess.run', return_value=failed):
            with pytest.raises(AuthenticationError):
                sender.send_message_sync("+15551112222", "hey")
    
    def test_osascript_failure(self):
        sender = AppleScriptMessageService(MessageConfig())
        failed = Mock(returncode=1, stderr="Can't get buddy")
        
        with patch('src.messaging.applescript_service.subprocess.run', return_value=failed):
            with pytest.raises(MessageSendError, match="Can't get buddy"):
                sender.send_message_sync("+15551112222", "hey")
