"""
AppleScript sender for Messages.app.

Each send runs one osascript process. Group threads are addressed by their
chat id, one-to-one threads by the buddy handle on the iMessage service.
"""

import asyncio
import logging
import re
import subprocess
import time
from enum import Enum
from typing import Optional

from .config import MessageConfig
from .exceptions import AuthenticationError, InvalidRecipientFormatError, MessageSendError

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
PHONE_PATTERN = re.compile(r'^\+?1?[0-9]{10,15}$')
GROUP_CHAT_PATTERN = re.compile(r'^chat[0-9]+$')

# osascript stderr fragments that mean the Automation permission is missing
PERMISSION_ERRORS = ("AppleEvent handler failed", "not allowed", "-1743")

SEND_TO_BUDDY = '''
tell application "Messages"
    set targetService to 1st service whose service type = iMessage
    send "{text}" to buddy "{handle}" of targetService
end tell
'''

SEND_TO_CHAT = '''
tell application "Messages"
    send "{text}" to chat id "iMessage;+;{chat_id}"
end tell
'''

AVAILABILITY_SCRIPT = 'tell application "Messages" to return name'


class DestinationKind(Enum):
    """How Messages.app addresses a destination"""
    GROUP_CHAT = "group_chat"
    EMAIL = "email"
    PHONE = "phone"


def classify_destination(destination: Optional[str]) -> DestinationKind:
    """
    Work out what kind of address a thread id or handle is

    Args:
        destination: chat.db chat identifier, email address or phone number

    Returns:
        DestinationKind for the destination

    Raises:
        InvalidRecipientFormatError: If it is none of the above
    """
    if not isinstance(destination, str) or not destination.strip():
        raise InvalidRecipientFormatError("Destination must be a non-empty string")

    destination = destination.strip()
    if GROUP_CHAT_PATTERN.match(destination):
        return DestinationKind.GROUP_CHAT
    if EMAIL_PATTERN.match(destination):
        return DestinationKind.EMAIL
    if PHONE_PATTERN.match(re.sub(r'[^\d+]', '', destination)):
        return DestinationKind.PHONE

    raise InvalidRecipientFormatError(f"Invalid destination format: {destination}")


def quote_applescript(text: str) -> str:
    """Escape text for use inside an AppleScript string literal"""
    return text.replace('\\', '\\\\').replace('"', '\\"')


def build_send_script(destination: str, text: str) -> str:
    """
    Build the osascript source that sends text to a destination

    Destinations that are not recognised are sent as a buddy handle and
    left for Messages.app to reject.
    """
    quoted_text = quote_applescript(text)
    destination = destination.strip()
    if GROUP_CHAT_PATTERN.match(destination):
        return SEND_TO_CHAT.format(text=quoted_text, chat_id=quote_applescript(destination))
    return SEND_TO_BUDDY.format(text=quoted_text, handle=quote_applescript(destination))


class AppleScriptMessageService:
    """Sends messages by scripting Messages.app through osascript"""

    def __init__(self, config: MessageConfig):
        self.config = config

    def _run_osascript(self, script: str, timeout: float) -> subprocess.CompletedProcess:
        return subprocess.run(
            ['osascript', '-e', script],
            capture_output=True,
            text=True,
            timeout=timeout,
        )

    def send_message_sync(self, destination: str, text: str) -> str:
        """
        Send one message, blocking until osascript exits

        Returns:
            Locally generated message id

        Raises:
            AuthenticationError: If this process may not control Messages.app
            MessageSendError: If osascript failed or timed out
        """
        script = build_send_script(destination, text)
        try:
            result = self._run_osascript(script, self.config.send_timeout_seconds)
        except subprocess.TimeoutExpired:
            raise MessageSendError(
                f"osascript did not finish within {self.config.send_timeout_seconds}s"
            )
        except OSError as e:
            raise MessageSendError(f"Could not run osascript: {e}")

        if result.returncode != 0:
            stderr = result.stderr.strip()
            if any(fragment in stderr for fragment in PERMISSION_ERRORS):
                raise AuthenticationError(
                    "Messages automation not permitted. Allow it in System Settings > "
                    "Privacy & Security > Automation"
                )
            raise MessageSendError(f"osascript failed: {stderr}")

        message_id = f"applescript_{int(time.time() * 1000)}"
        logger.debug(f"Sent {message_id}")
        return message_id

    async def send_message(self, destination: str, text: str) -> str:
        """Send one message without blocking the event loop"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.send_message_sync, destination, text)

    def is_available(self) -> bool:
        """True if osascript can talk to Messages.app"""
        try:
            return self._run_osascript(AVAILABILITY_SCRIPT, 5).returncode == 0
        except (OSError, subprocess.SubprocessError):
            return False
