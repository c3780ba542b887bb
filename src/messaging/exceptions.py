"""
Exceptions raised by the iMessage transport.

The takeover core treats any MessagingError as an environmental failure
of the send or the listing it attempted; it never inspects subclasses.
"""


class MessagingError(Exception):
    """Base class for transport failures."""
    pass


class MessageValidationError(MessagingError):
    """Message text is empty or otherwise unsendable."""
    pass


class RecipientValidationError(MessagingError):
    """Destination cannot be addressed."""
    pass


class MessageSendError(MessagingError):
    """osascript ran but the send did not go through."""
    pass


class NetworkError(MessagingError):
    """Send failed for a connectivity reason; retried."""
    pass


class AuthenticationError(MessagingError):
    """This process lacks the Automation permission for Messages.app."""
    pass


class RateLimitError(MessagingError):
    """The per-minute send budget is used up."""
    pass


class ServiceUnavailableError(MessagingError):
    """Messages.app cannot be scripted on this machine."""
    pass


class MessageDatabaseError(MessagingError):
    """chat.db is missing, unreadable or has an unexpected schema."""
    pass


class MessageTooLargeError(MessageValidationError):
    """Message text is longer than max_message_length."""
    pass


class InvalidRecipientFormatError(RecipientValidationError):
    """Destination is not a chat id, phone number or email address."""
    pass
