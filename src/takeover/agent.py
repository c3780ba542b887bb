"""TakeoverAgent - wires the takeover core to its collaborators and runs it"""

import asyncio
from datetime import datetime
from typing import Any, Dict, Optional

from src.utils.logger_config import get_logger

from .config import AgentConfig
from .interfaces import Generator, Transport
from .orchestrator import TakeoverOrchestrator
from .router import EventRouter
from .scanner import InactivityScanner
from .store import ConversationStore

logger = get_logger(__name__)


class TakeoverAgent:
    """Owns the conversation store and runs the event router and inactivity scanner"""

    def __init__(
        self,
        config: AgentConfig,
        transport: Transport,
        generator: Generator,
        store: Optional[ConversationStore] = None,
    ):
        """
        Initialize the agent

        Args:
            config: Agent settings
            transport: Message transport collaborator
            generator: Text generation collaborator
            store: Conversation store to use; a fresh one sized from config by default
        """
        if not config.user_identifier:
            raise ValueError("user_identifier is required to run the takeover agent")

        self.config = config
        self.transport = transport
        self.store = store or ConversationStore(
            sample_capacity=config.style_sample_count,
            exchange_capacity=config.exchange_history_size,
        )
        self.orchestrator = TakeoverOrchestrator(self.store, transport, generator, config)
        self.scanner = InactivityScanner(self.store, self.orchestrator, config)
        self.router = EventRouter(self.store, self.orchestrator, config)

        self.is_running = False
        self.started_at: Optional[datetime] = None

    async def run(self) -> None:
        """
        Consume transport events and run periodic scans until the event
        stream ends or the agent is stopped
        """
        if self.is_running:
            logger.warning("Takeover agent is already running")
            return

        self.is_running = True
        self.started_at = datetime.now()
        logger.info(
            f"Takeover agent running for {self.config.user_identifier} "
            f"(threshold {self.config.inactivity_threshold_ms / 1000:g}s, "
            f"max {self.config.max_turns} messages per session)"
        )

        scan_task = asyncio.create_task(self.scanner.start_scanning())
        try:
            await self.router.run(self.transport.events())
        finally:
            await self.stop()
            scan_task.cancel()
            await asyncio.gather(scan_task, return_exceptions=True)

    async def stop(self) -> None:
        """Stop scanning and cancel outstanding orchestrator work"""
        if not self.is_running:
            return

        self.is_running = False
        self.scanner.stop_scanning()
        await self.orchestrator.shutdown()
        logger.info("Takeover agent stopped")

    def get_status(self) -> Dict[str, Any]:
        """
        Get current agent status

        Returns:
            Running state, scanner status and a summary per tracked conversation
        """
        return {
            "is_running": self.is_running,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "events_processed": self.router.events_processed,
            "scanner": self.scanner.get_status(),
            "conversations": [conv.get_summary() for conv in self.store.all()],
        }
