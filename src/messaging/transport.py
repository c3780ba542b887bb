"""iMessage transport for the takeover agent.

Combines the AppleScript-backed MessageService for sending with the chat.db
watcher for thread listing and the inbound event stream.
"""

import asyncio
from typing import AsyncIterator, List, Optional

from src.takeover.models import MessageEvent, ThreadInfo
from src.utils.logger_config import get_logger

from .config import MessageConfig, load_config
from .exceptions import MessageSendError
from .service import MessageService
from .watcher import MessagesDatabaseWatcher

logger = get_logger(__name__)


class IMessageTransport:
    """Transport implementation over Messages.app"""

    def __init__(
        self,
        config: Optional[MessageConfig] = None,
        user_identifier: Optional[str] = None,
        service: Optional[MessageService] = None,
        watcher: Optional[MessagesDatabaseWatcher] = None,
    ):
        self.config = config or load_config()
        self.service = service or MessageService(self.config)
        self.watcher = watcher or MessagesDatabaseWatcher(self.config, user_identifier)

    async def send(self, destination: str, text: str) -> None:
        """
        Send a message to a thread or address

        Raises:
            MessagingError: If the message could not be delivered to Messages.app
        """
        result = await self.service.send_message(destination, text)
        if not result.success:
            raise MessageSendError(result.error or "Message send failed")

    async def list_threads(self, filter_text: Optional[str] = None) -> List[ThreadInfo]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.watcher.list_threads, filter_text)

    def events(self) -> AsyncIterator[MessageEvent]:
        return self.watcher.events()

    def close(self) -> None:
        self.watcher.stop()
        metrics = self.service.get_metrics()
        logger.info(
            f"Transport closed: {metrics['successful_sends']} sent, "
            f"{metrics['failed_sends']} failed"
        )
