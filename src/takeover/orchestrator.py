"""TakeoverOrchestrator - offer, approval and the bounded automated session.

Every step is a single event-driven invocation: one offer, one generation
turn, one wind-down. The next turn is triggered by the next counterpart
message (via the router), never by waiting inside a turn. After every await
the conversation is re-read from the store and stale results are dropped.
"""

import asyncio
from datetime import timedelta
from typing import Dict, Optional, Set

from src.utils.logger_config import get_logger

from .config import AgentConfig
from .exceptions import GenerationError
from .interfaces import Generator, Transport
from .models import DEFAULT_COUNTERPART_NAME, AutomationState, Conversation
from .prompts import (
    DEFAULT_EXIT_MESSAGE,
    ERROR_NOTICE_TEMPLATE,
    OFFER_TEMPLATE,
    build_turn_prompt,
    build_wind_down_prompt,
)
from .sanitizer import clean_generated_text
from .store import ConversationStore

logger = get_logger(__name__)

WIND_DOWN_SAMPLE_COUNT = 10

# Counterpart phrases that mean the exchange is reaching its natural end
WIND_DOWN_INDICATORS = (
    "gotta go",
    "talk later",
    "bye",
    "see you",
    "ttyl",
    "ok cool",
    "sounds good",
    "alright",
    "perfect",
)


def latest_counterpart_text(conv: Conversation) -> str:
    for entry in reversed(conv.recent_exchange):
        if not entry.is_from_me:
            return entry.text or ""
    return ""


def signals_wind_down(text: str) -> bool:
    """True if a counterpart message reads like a goodbye or a closing ack"""
    lowered = (text or "").lower()
    return any(indicator in lowered for indicator in WIND_DOWN_INDICATORS)


class TakeoverOrchestrator:
    """Drives offers and automated sessions on top of the ConversationStore"""

    def __init__(
        self,
        store: ConversationStore,
        transport: Transport,
        generator: Generator,
        config: AgentConfig,
    ):
        self.store = store
        self.transport = transport
        self.generator = generator
        self.config = config

        self._reply_timers: Dict[str, asyncio.Task] = {}
        self._reactivations: Dict[str, asyncio.Task] = {}
        self._background: Set[asyncio.Task] = set()

    # Helpers
    def _is_current(self, thread_id: str, session_id: int) -> Optional[Conversation]:
        """The conversation if the given session is still the active one"""
        conv = self.store.snapshot(thread_id)
        if conv is None or not conv.is_active or conv.session_id != session_id:
            return None
        return conv

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _cancel_reply_timer(self, thread_id: str) -> None:
        task = self._reply_timers.pop(thread_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _send_tracked(
        self, destination: str, text: str, echo_thread: Optional[str] = None
    ) -> None:
        """
        Send as the agent, registering the echo the transport will produce

        Args:
            destination: Address to send to
            text: Message text
            echo_thread: Thread the echo is expected in, if not the destination
        """
        echo_thread = echo_thread or destination
        self.store.expect_echo(echo_thread, text)
        try:
            await self.transport.send(destination, text)
        except Exception:
            self.store.forget_echo(echo_thread, text)
            raise

    async def _send_to_user(self, text: str) -> None:
        await self._send_tracked(
            self.config.user_identifier, text, echo_thread=self.config.self_thread
        )

    async def _notify_user(self, text: str) -> bool:
        """Best-effort single-line notice to the user's own address"""
        try:
            await self._send_to_user(text)
            return True
        except Exception as e:
            logger.error(f"Could not deliver notice to user: {e}")
            return False

    async def resolve_counterpart_name(self, thread_id: str) -> str:
        """
        Look up the thread's display name through the transport

        Returns:
            Display name, or the generic placeholder if it cannot be resolved
        """
        try:
            threads = await self.transport.list_threads(thread_id)
        except Exception as e:
            logger.warning(f"Name resolution failed for {thread_id}: {e}")
            return DEFAULT_COUNTERPART_NAME

        for thread in threads:
            if thread.thread_id == thread_id and thread.display_name:
                return thread.display_name
        return DEFAULT_COUNTERPART_NAME

    # Offer / approval
    async def offer(self, thread_id: str) -> bool:
        """
        Ask the user whether to take over a quiet conversation.

        Returns:
            True if the offer was sent and the conversation awaits approval
        """
        if not self.store.is_offerable(thread_id):
            logger.debug(f"Skipping offer for {thread_id}: no longer eligible")
            return False

        name = await self.resolve_counterpart_name(thread_id)
        self.store.set_counterpart_name(thread_id, name)

        # State may have moved while resolving the name
        if not self.store.is_offerable(thread_id):
            logger.debug(f"Skipping offer for {thread_id}: state changed during lookup")
            return False

        if not self.store.set_awaiting_approval(thread_id):
            return False

        try:
            await self._send_to_user(OFFER_TEMPLATE.format(name=name))
        except Exception as e:
            logger.error(f"Offer for {thread_id} ({name}) failed to send: {e}")
            self.store.clear_awaiting_approval(thread_id)
            return False

        logger.info(f"Sent takeover offer for {name} ({thread_id})")
        return True

    async def handle_approval(self, thread_id: str) -> bool:
        """
        Start a session for an approved offer and send its first turn.

        Returns:
            True if a new session was started
        """
        conv = self.store.snapshot(thread_id)
        if conv is None:
            logger.warning(f"Approval for unknown conversation {thread_id}")
            return False
        if conv.is_active:
            logger.debug(f"Ignoring duplicate approval for {thread_id}")
            return False

        if not self.store.enter_active(thread_id):
            return False

        logger.info(f"User approved takeover for {conv.counterpart_name} ({thread_id})")
        await self.run_turn(thread_id, self.store.snapshot(thread_id).session_id)
        return True

    def handle_denial(self, thread_id: str) -> bool:
        """Drop the offer; nothing is sent"""
        cleared = self.store.clear_awaiting_approval(thread_id)
        if cleared:
            logger.info(f"User declined takeover for {thread_id}")
        return cleared

    # Session turns
    async def continue_session(self, thread_id: str) -> bool:
        """
        Produce the next turn after a counterpart reply in an active session.

        Returns:
            True if this call claimed the pending turn
        """
        turn = self.store.take_pending_turn(thread_id)
        if turn is None:
            return False

        self._cancel_reply_timer(thread_id)
        session_id = self.store.snapshot(thread_id).session_id

        if self.config.reply_delay_ms:
            await asyncio.sleep(self.config.reply_delay_ms / 1000)
        conv = self._is_current(thread_id, session_id)
        if conv is None:
            logger.info(f"{thread_id}: session ended before turn {turn} could start")
            return True

        if signals_wind_down(latest_counterpart_text(conv)):
            logger.info(f"{thread_id}: {conv.counterpart_name} is wrapping up, winding down early")
            await self.finish_session(thread_id, session_id)
            return True

        logger.debug(f"{thread_id}: counterpart replied, producing turn {turn}")
        await self.run_turn(thread_id, session_id)
        return True

    async def run_turn(self, thread_id: str, session_id: int) -> None:
        """One generation turn for the given session"""
        conv = self._is_current(thread_id, session_id)
        if conv is None:
            return

        turns_before = conv.turns_sent_this_session
        if turns_before >= self.config.max_turns:
            await self.finish_session(thread_id, session_id)
            return

        exchange = list(conv.recent_exchange)[-self.config.context_exchange_count:]
        samples = list(conv.own_message_samples)[-self.config.context_sample_count:]
        prompt = build_turn_prompt(
            counterpart_name=conv.counterpart_name,
            exchange=exchange,
            samples=samples,
            turns_sent=turns_before,
            max_turns=self.config.max_turns,
        )

        logger.debug(
            f"{thread_id}: generating message {turns_before + 1}/{self.config.max_turns}"
        )
        try:
            raw = await self.generator.generate(prompt)
        except Exception as e:
            await self._fail_session(thread_id, session_id, "generation", e)
            return

        # Drop the result if the user reclaimed or another turn got there first
        current = self._is_current(thread_id, session_id)
        if current is None or current.turns_sent_this_session != turns_before:
            logger.info(f"{thread_id}: discarding stale generation result")
            return

        text = clean_generated_text(raw)
        if not text:
            await self._fail_session(
                thread_id, session_id, "generation", GenerationError("empty response after cleanup")
            )
            return

        try:
            await self._send_tracked(thread_id, text)
        except Exception as e:
            await self._fail_session(thread_id, session_id, "send", e)
            return

        self.store.record_own_message(
            thread_id, text, self.store.clock(), is_automated=True
        )
        if self._is_current(thread_id, session_id) is None:
            return

        turns = self.store.increment_turn(thread_id)
        logger.info(f"{thread_id}: sent automated message {turns}/{self.config.max_turns}")

        if turns >= self.config.max_turns:
            await self.finish_session(thread_id, session_id)
            return

        self.store.set_pending_turn(thread_id, turns + 1)
        self._start_reply_timer(thread_id, session_id, turns + 1)

    async def finish_session(self, thread_id: str, session_id: int) -> None:
        """Send the wind-down message and end the session into cool-down"""
        self._cancel_reply_timer(thread_id)
        conv = self._is_current(thread_id, session_id)
        if conv is None:
            return

        await self.wind_down(thread_id, session_id)

        if self._is_current(thread_id, session_id) is not None:
            self.store.leave_active(thread_id, cool_down=True)
            logger.info(f"Agent session complete for {conv.counterpart_name} ({thread_id})")

    async def wind_down(self, thread_id: str, session_id: int) -> bool:
        """
        Best-effort exit message in the user's style.

        Returns:
            True if the message was sent
        """
        conv = self._is_current(thread_id, session_id)
        if conv is None:
            return False

        samples = list(conv.own_message_samples)[-WIND_DOWN_SAMPLE_COUNT:]
        prompt = build_wind_down_prompt(conv.counterpart_name, samples)

        try:
            text = clean_generated_text(await self.generator.generate(prompt))
        except Exception as e:
            logger.warning(f"{thread_id}: wind-down generation failed, using default: {e}")
            text = ""
        text = text or DEFAULT_EXIT_MESSAGE

        if self._is_current(thread_id, session_id) is None:
            logger.info(f"{thread_id}: session ended before wind-down, not sending")
            return False

        try:
            await self._send_tracked(thread_id, text)
        except Exception as e:
            logger.error(f"{thread_id}: wind-down message failed to send: {e}")
            return False

        self.store.record_own_message(thread_id, text, self.store.clock(), is_automated=True)
        logger.info(f"{thread_id}: sent wind-down message")
        return True

    async def _fail_session(
        self, thread_id: str, session_id: int, step: str, error: Exception
    ) -> None:
        """End the session after an environmental failure and tell the user"""
        logger.error(f"{thread_id}: {step} failed during active session: {error}")
        self._cancel_reply_timer(thread_id)

        conv = self._is_current(thread_id, session_id)
        if conv is None:
            return

        self.store.leave_active(thread_id, cool_down=False)
        await self._notify_user(ERROR_NOTICE_TEMPLATE.format(name=conv.counterpart_name))

    # Timers
    def _start_reply_timer(self, thread_id: str, session_id: int, turn: int) -> None:
        self._cancel_reply_timer(thread_id)
        self._reply_timers[thread_id] = self._spawn(
            self._reply_timeout(thread_id, session_id, turn)
        )

    async def _reply_timeout(self, thread_id: str, session_id: int, turn: int) -> None:
        await asyncio.sleep(self.config.response_timeout_ms / 1000)

        conv = self._is_current(thread_id, session_id)
        if conv is None or conv.pending_turn != turn:
            return

        # Claim the slot so a late reply cannot start another turn
        self.store.take_pending_turn(thread_id)
        if self._reply_timers.get(thread_id) is asyncio.current_task():
            del self._reply_timers[thread_id]

        logger.info(f"{thread_id}: no reply from {conv.counterpart_name}, winding down")
        try:
            await self.finish_session(thread_id, session_id)
        except Exception as e:
            logger.error(f"{thread_id}: error finishing timed-out session: {e}")

    def schedule_reactivation(self, thread_id: str) -> bool:
        """
        Re-activate a recently ended session after a short delay when the
        counterpart writes again during the cool-down grace window.

        Returns:
            True if a re-activation was scheduled
        """
        conv = self.store.snapshot(thread_id)
        if conv is None or conv.automation_state is not AutomationState.COOLING_DOWN:
            return False
        if conv.deactivated_at is None:
            return False

        since = self.store.clock() - conv.deactivated_at
        if since >= timedelta(milliseconds=self.config.reactivation_grace_ms):
            return False
        if thread_id in self._reactivations:
            return False

        self.store.set_reactivation_pending(thread_id, True)
        logger.info(
            f"{thread_id}: counterpart replied {int(since.total_seconds())}s after session end, "
            f"re-activating in {self.config.reactivation_delay_ms / 1000:.0f}s"
        )
        self._reactivations[thread_id] = self._spawn(self._reactivate_after_delay(thread_id))
        return True

    async def _reactivate_after_delay(self, thread_id: str) -> None:
        try:
            await asyncio.sleep(self.config.reactivation_delay_ms / 1000)

            conv = self.store.snapshot(thread_id)
            # record_own_message / set_awaiting_approval clear the flag
            if conv is None or not conv.reactivation_pending:
                logger.info(f"{thread_id}: re-activation cancelled by user activity")
                return
            self.store.set_reactivation_pending(thread_id, False)

            if conv.automation_state not in (AutomationState.COOLING_DOWN, AutomationState.IDLE):
                return
            if not self.store.enter_active(thread_id, reactivation=True):
                return

            logger.info(f"Re-activated agent for {conv.counterpart_name} ({thread_id})")
            await self.run_turn(thread_id, self.store.snapshot(thread_id).session_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"{thread_id}: error during re-activation: {e}")
        finally:
            self._reactivations.pop(thread_id, None)

    async def shutdown(self) -> None:
        """Cancel outstanding timers"""
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._reply_timers.clear()
        self._reactivations.clear()
