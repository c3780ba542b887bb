"""
Messaging module for the takeover agent.

This module is the iMessage transport: sending through Messages.app with
validation, rate limiting and retries, and watching the Messages database
for the inbound event stream.
"""

from .decoder import MessageDecoder, extract_message_text
from .applescript_service import DestinationKind, classify_destination
from .service import MessageService, MessageResult, SendStats
from .watcher import MessagesDatabaseWatcher, convert_apple_timestamp
from .transport import IMessageTransport
from .config import MessageConfig, load_config
from .exceptions import (
    MessagingError,
    MessageValidationError,
    RecipientValidationError,
    MessageSendError,
    NetworkError,
    AuthenticationError,
    RateLimitError,
    ServiceUnavailableError,
    MessageDatabaseError,
    MessageTooLargeError,
    InvalidRecipientFormatError,
)

__all__ = [
    # Message decoding
    'MessageDecoder',
    'extract_message_text',
    
    # Message sending
    'MessageService',
    'MessageResult',
    'SendStats',
    'DestinationKind',
    'classify_destination',
    
    # Watching and transport
    'MessagesDatabaseWatcher',
    'convert_apple_timestamp',
    'IMessageTransport',
    
    # Configuration
    'MessageConfig',
    'load_config',
    
    # Exceptions
    'MessagingError',
    'MessageValidationError',
    'RecipientValidationError',
    'MessageSendError',
    'NetworkError',
    'AuthenticationError',
    'RateLimitError',
    'ServiceUnavailableError',
    'MessageDatabaseError',
    'MessageTooLargeError',
    'InvalidRecipientFormatError',
]
