"""EventRouter - single ingress for every message event from the transport.

Store mutations for an event are applied synchronously, in arrival order.
Orchestrator work that suspends (generation, sends) is dispatched as a
background task so the router keeps consuming events meanwhile; a user's
own message can therefore reclaim a conversation while a generation call
for it is still outstanding.
"""

import asyncio
from typing import AsyncIterator, Set

from src.utils.logger_config import get_logger

from .approval import ApprovalDecision, classify
from .config import AgentConfig
from .exceptions import TakeoverError
from .models import AutomationState, MessageEvent
from .orchestrator import TakeoverOrchestrator
from .prompts import is_agent_notice
from .store import ConversationStore

logger = get_logger(__name__)


class EventRouter:
    """Classifies message events and dispatches them to the store and orchestrator"""

    def __init__(
        self,
        store: ConversationStore,
        orchestrator: TakeoverOrchestrator,
        config: AgentConfig,
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.config = config
        self._tasks: Set[asyncio.Task] = set()
        self.events_processed = 0

    def _dispatch(self, coro, label: str) -> asyncio.Task:
        task = asyncio.create_task(self._guarded(coro, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guarded(self, coro, label: str) -> None:
        try:
            await coro
        except TakeoverError:
            raise
        except Exception as e:
            logger.error(f"Error in {label}: {e}")

    async def drain(self) -> None:
        """Wait for all dispatched orchestrator work to finish"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def handle_event(self, event: MessageEvent) -> str:
        """
        Route one message event

        Returns:
            How the event was classified
        """
        self.events_processed += 1
        text = event.text or ""

        if event.thread_id in (self.config.self_thread, self.config.user_identifier):
            return self._handle_self_thread(event, text)

        if event.is_from_self:
            if self.store.consume_echo(event.thread_id, text):
                return "agent_echo"

            self.store.record_own_message(
                event.thread_id, text, event.timestamp, is_automated=False
            )
            return "own_message"

        conv = self.store.record_counterpart_message(event.thread_id, text, event.timestamp)
        logger.debug(f"Message from {event.sender} in {event.thread_id}")

        if conv.automation_state is AutomationState.ACTIVE:
            if conv.pending_turn is not None:
                self._dispatch(
                    self.orchestrator.continue_session(event.thread_id),
                    f"session turn for {event.thread_id}",
                )
                return "session_reply"
        elif conv.automation_state is AutomationState.COOLING_DOWN:
            if self.orchestrator.schedule_reactivation(event.thread_id):
                return "reactivation_scheduled"

        return "counterpart_message"

    def _handle_self_thread(self, event: MessageEvent, text: str) -> str:
        # Incoming copies in the note-to-self thread mirror our own sends
        if not event.is_from_self:
            return "self_copy"

        # Offers and notices are tracked under the self-thread whichever
        # address Messages files their copy under
        if self.store.consume_echo(self.config.self_thread, text):
            return "agent_echo"

        # Late or duplicate copies of an offer must never approve it
        if is_agent_notice(text):
            logger.debug(f"Ignoring copy of agent notice in {event.thread_id}")
            return "agent_notice"

        self.store.record_own_message(event.thread_id, text, event.timestamp, is_automated=False)

        awaiting = self.store.latest_awaiting_approval()
        if awaiting is None:
            return "self_note"

        decision = classify(text)
        if decision is ApprovalDecision.APPROVE:
            self._dispatch(
                self.orchestrator.handle_approval(awaiting.id),
                f"approval for {awaiting.id}",
            )
            return "approved"

        if decision is ApprovalDecision.DENY:
            self.orchestrator.handle_denial(awaiting.id)
            return "denied"

        logger.info(f"Unclear reply to takeover offer for {awaiting.counterpart_name}, ignoring")
        return "unclear"

    async def run(self, events: AsyncIterator[MessageEvent]) -> None:
        """Consume the transport's event stream until it ends"""
        async for event in events:
            try:
                await self.handle_event(event)
            except TakeoverError:
                raise
            except Exception as e:
                logger.error(f"Error handling message in {event.thread_id}: {e}")
