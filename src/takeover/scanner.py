"""InactivityScanner - periodic sweep that triggers takeover offers"""

import asyncio
from datetime import datetime
from typing import Any, Dict, Optional

from src.utils.logger_config import get_logger

from .config import AgentConfig
from .exceptions import TakeoverError
from .orchestrator import TakeoverOrchestrator
from .store import ConversationStore

logger = get_logger(__name__)


class InactivityScanner:
    """Runs the eligibility sweep on a fixed period"""

    def __init__(
        self,
        store: ConversationStore,
        orchestrator: TakeoverOrchestrator,
        config: AgentConfig,
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.config = config

        # Runtime state
        self.is_running = False
        self.last_error: Optional[str] = None
        self.last_scan_at: Optional[datetime] = None
        self.scan_count = 0

    async def scan_once(self) -> Dict[str, Any]:
        """
        Perform a single sweep

        Returns:
            Dictionary with sweep results
        """
        start_time = datetime.now()

        expired = self.store.expire_cool_downs(self.config.reactivation_grace_ms)

        eligible = self.store.list_eligible_for_offer(
            self.config.inactivity_threshold_ms,
            self.config.max_inactivity_ms,
            exclude_thread_id=self.config.self_thread,
            recent_counterpart_window_ms=self.config.recent_counterpart_window_ms,
        )
        if eligible:
            logger.info(f"Found {len(eligible)} inactive conversation(s)")

        offers_sent = 0
        for conv in eligible:
            try:
                if await self.orchestrator.offer(conv.id):
                    offers_sent += 1
            except TakeoverError:
                raise
            except Exception as e:
                logger.error(f"Error processing inactive conversation {conv.id}: {e}")
                self.last_error = str(e)

        self.scan_count += 1
        self.last_scan_at = datetime.now()

        return {
            "eligible": len(eligible),
            "offers_sent": offers_sent,
            "cool_downs_expired": len(expired),
            "duration_seconds": (datetime.now() - start_time).total_seconds(),
        }

    async def start_scanning(self) -> None:
        """
        Run the sweep every scan interval until stopped
        """
        if self.is_running:
            logger.warning("Inactivity scanner is already running")
            return

        interval = self.config.scan_interval_ms / 1000
        logger.info(f"Starting inactivity checks every {interval:g}s")
        self.is_running = True

        try:
            while self.is_running:
                await asyncio.sleep(interval)
                if not self.is_running:
                    break
                try:
                    await self.scan_once()
                except TakeoverError:
                    raise
                except Exception as e:
                    # Continue scanning even after errors
                    logger.error(f"Inactivity scan failed: {e}")
                    self.last_error = str(e)
        finally:
            self.is_running = False
            logger.info("Stopped inactivity checks")

    def stop_scanning(self) -> None:
        """
        Stop the sweep loop after the current cycle
        """
        if self.is_running:
            logger.info("Stopping inactivity scanner...")
            self.is_running = False

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "scan_count": self.scan_count,
            "last_scan_at": self.last_scan_at.isoformat() if self.last_scan_at else None,
            "last_error": self.last_error,
            "scan_interval_ms": self.config.scan_interval_ms,
        }
