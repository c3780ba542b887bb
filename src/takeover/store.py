"""ConversationStore - authoritative in-memory state for every tracked thread.

All mutation of Conversation records goes through the methods here. Each
method runs to completion without awaiting, so under the asyncio event loop
every mutation is applied atomically with respect to the router and the
scanner.
"""

import copy
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from src.utils.logger_config import get_logger

from .exceptions import ConversationNotFoundError
from .models import AutomationState, Conversation, ExchangeEntry

logger = get_logger(__name__)

# Expected echoes older than this many entries are dropped
MAX_EXPECTED_ECHOES = 20


def _ms(value: int) -> timedelta:
    return timedelta(milliseconds=value)


class ConversationStore:
    """Owns one Conversation record per thread id"""

    def __init__(
        self,
        sample_capacity: int = 50,
        exchange_capacity: int = 50,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the store

        Args:
            sample_capacity: Own-message samples retained per conversation
            exchange_capacity: Exchange entries retained per conversation
            clock: Source of the current time
        """
        self.sample_capacity = sample_capacity
        self.exchange_capacity = exchange_capacity
        self.clock = clock
        self._conversations: Dict[str, Conversation] = {}

    # Lookup
    def get_or_create(self, thread_id: str) -> Conversation:
        """Return the record for thread_id, creating an Idle one on first sight"""
        conv = self._conversations.get(thread_id)
        if conv is None:
            conv = Conversation(
                id=thread_id,
                created_at=self.clock(),
                own_message_samples=deque(maxlen=self.sample_capacity),
                recent_exchange=deque(maxlen=self.exchange_capacity),
            )
            self._conversations[thread_id] = conv
            logger.debug(f"Tracking new conversation {thread_id}")
        return conv

    def _require(self, thread_id: str) -> Conversation:
        conv = self._conversations.get(thread_id)
        if conv is None:
            raise ConversationNotFoundError(thread_id)
        return conv

    def snapshot(self, thread_id: str) -> Optional[Conversation]:
        """Detached copy of a conversation, or None if never seen"""
        conv = self._conversations.get(thread_id)
        return copy.deepcopy(conv) if conv is not None else None

    def all(self) -> List[Conversation]:
        """Detached copies of every tracked conversation"""
        return [copy.deepcopy(conv) for conv in self._conversations.values()]

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, thread_id: str) -> bool:
        return thread_id in self._conversations

    # Message recording
    def record_own_message(
        self, thread_id: str, message_text: str, sent_at: datetime, is_automated: bool
    ) -> Conversation:
        """
        Record a message sent from the user's side of a thread.

        Automated sends only become thread activity. A message written by
        the user also moves the inactivity clock, feeds the style samples and
        unconditionally hands control back: any session, offer or cool-down
        ends and the state returns to Idle.
        """
        conv = self.get_or_create(thread_id)
        conv.recent_exchange.append(
            ExchangeEntry(
                text=message_text,
                is_from_me=True,
                timestamp=sent_at,
                is_automated=is_automated,
            )
        )

        if is_automated:
            return conv

        conv.last_own_message_at = sent_at
        conv.own_message_samples.append(
            ExchangeEntry(text=message_text, is_from_me=True, timestamp=sent_at)
        )

        previous = conv.automation_state
        if previous is AutomationState.ACTIVE:
            conv.deactivated_at = self.clock()
            logger.info(f"User took back control of {thread_id}")
        conv.automation_state = AutomationState.IDLE
        conv.turns_sent_this_session = 0
        conv.pending_turn = None
        conv.reactivation_pending = False
        conv.offered_at = None

        if previous is not AutomationState.IDLE:
            logger.info(f"{thread_id}: {previous.value} -> idle (own message)")
        return conv

    def record_counterpart_message(
        self, thread_id: str, message_text: str, received_at: datetime
    ) -> Conversation:
        """Record a message from the counterpart"""
        conv = self.get_or_create(thread_id)
        conv.recent_exchange.append(
            ExchangeEntry(text=message_text, is_from_me=False, timestamp=received_at)
        )
        conv.last_counterpart_message_at = received_at
        return conv

    def set_counterpart_name(self, thread_id: str, name: str) -> None:
        conv = self._require(thread_id)
        conv.counterpart_name = name

    # State transitions
    def set_awaiting_approval(self, thread_id: str) -> bool:
        """
        Idle/CoolingDown -> AwaitingApproval

        Returns:
            True if the transition happened
        """
        conv = self._require(thread_id)
        if conv.automation_state not in (AutomationState.IDLE, AutomationState.COOLING_DOWN):
            logger.warning(
                f"Not offering {thread_id}: state is {conv.automation_state.value}"
            )
            return False

        conv.automation_state = AutomationState.AWAITING_APPROVAL
        conv.offered_at = self.clock()
        conv.reactivation_pending = False
        logger.info(f"{thread_id}: awaiting approval")
        return True

    def clear_awaiting_approval(self, thread_id: str) -> bool:
        """AwaitingApproval -> Idle; no-op in any other state"""
        conv = self._require(thread_id)
        if conv.automation_state is not AutomationState.AWAITING_APPROVAL:
            return False

        conv.automation_state = AutomationState.IDLE
        conv.offered_at = None
        logger.info(f"{thread_id}: approval cleared, back to idle")
        return True

    def enter_active(self, thread_id: str, reactivation: bool = False) -> bool:
        """
        Start an automated session.

        Allowed from AwaitingApproval, and from CoolingDown or Idle only on
        the re-activation path.

        Returns:
            True if the session started
        """
        conv = self._require(thread_id)
        state = conv.automation_state
        allowed = state is AutomationState.AWAITING_APPROVAL or (
            reactivation and state in (AutomationState.COOLING_DOWN, AutomationState.IDLE)
        )
        if not allowed:
            logger.warning(
                f"Refusing to activate {thread_id} from {state.value}"
                f" (reactivation={reactivation})"
            )
            return False

        conv.automation_state = AutomationState.ACTIVE
        conv.turns_sent_this_session = 0
        conv.pending_turn = None
        conv.offered_at = None
        conv.reactivation_pending = False
        conv.session_id += 1
        logger.info(f"{thread_id}: {state.value} -> active (session {conv.session_id})")
        return True

    def leave_active(self, thread_id: str, cool_down: bool = True) -> bool:
        """
        End the current automated session.

        Args:
            cool_down: Land in CoolingDown (eligible for re-activation) rather than Idle

        Returns:
            True if a session was ended
        """
        conv = self._require(thread_id)
        if conv.automation_state is not AutomationState.ACTIVE:
            return False

        conv.automation_state = (
            AutomationState.COOLING_DOWN if cool_down else AutomationState.IDLE
        )
        conv.turns_sent_this_session = 0
        conv.pending_turn = None
        conv.deactivated_at = self.clock()
        logger.info(f"{thread_id}: active -> {conv.automation_state.value}")
        return True

    def increment_turn(self, thread_id: str) -> int:
        """Count one automated message in the current session"""
        conv = self._require(thread_id)
        conv.turns_sent_this_session += 1
        return conv.turns_sent_this_session

    def set_pending_turn(self, thread_id: str, turn: Optional[int]) -> None:
        """Record which turn is waiting on the next counterpart message"""
        conv = self._require(thread_id)
        conv.pending_turn = turn if conv.is_active else None

    def take_pending_turn(self, thread_id: str) -> Optional[int]:
        """Claim the pending turn; only one caller can ever get a given turn"""
        conv = self._require(thread_id)
        turn = conv.pending_turn
        conv.pending_turn = None
        return turn if conv.is_active else None

    def set_reactivation_pending(self, thread_id: str, pending: bool) -> None:
        conv = self._require(thread_id)
        conv.reactivation_pending = pending

    def expire_cool_downs(self, grace_ms: int, now: Optional[datetime] = None) -> List[str]:
        """
        Move CoolingDown conversations whose grace window has elapsed to Idle

        Returns:
            Thread ids that were expired
        """
        now = now or self.clock()
        expired = []
        for conv in self._conversations.values():
            if conv.automation_state is not AutomationState.COOLING_DOWN:
                continue
            if conv.reactivation_pending:
                continue
            if conv.deactivated_at is None or now - conv.deactivated_at >= _ms(grace_ms):
                conv.automation_state = AutomationState.IDLE
                expired.append(conv.id)
                logger.info(f"{conv.id}: cool-down elapsed, back to idle")
        return expired

    # Echo tracking
    def expect_echo(self, thread_id: str, text: str) -> None:
        """Remember a message the agent sent so its transport echo can be recognized"""
        conv = self.get_or_create(thread_id)
        conv.expected_echoes.append(text.strip())
        if len(conv.expected_echoes) > MAX_EXPECTED_ECHOES:
            del conv.expected_echoes[0]

    def forget_echo(self, thread_id: str, text: str) -> None:
        """Drop an expectation for a message that was never actually sent"""
        conv = self._conversations.get(thread_id)
        if conv is not None and text.strip() in conv.expected_echoes:
            conv.expected_echoes.remove(text.strip())

    def consume_echo(self, thread_id: str, text: str) -> bool:
        """
        Check whether an own-message event is the echo of an agent send

        Returns:
            True if the event matched (and the expectation was consumed)
        """
        conv = self._conversations.get(thread_id)
        if conv is None:
            return False
        key = text.strip()
        if key in conv.expected_echoes:
            conv.expected_echoes.remove(key)
            return True
        return False

    # Queries
    def _is_offerable(self, conv: Conversation) -> bool:
        if conv.automation_state is AutomationState.IDLE:
            return True
        if conv.automation_state is AutomationState.COOLING_DOWN:
            # Only with counterpart activity since the session ended, and
            # not while a re-activation is already scheduled
            return (
                not conv.reactivation_pending
                and conv.last_counterpart_message_at is not None
                and conv.deactivated_at is not None
                and conv.last_counterpart_message_at > conv.deactivated_at
            )
        return False

    def is_offerable(self, thread_id: str) -> bool:
        """Whether the conversation's state currently allows a takeover offer"""
        conv = self._conversations.get(thread_id)
        return conv is not None and self._is_offerable(conv)

    def list_eligible_for_offer(
        self,
        inactivity_threshold_ms: int,
        max_inactivity_ms: int,
        exclude_thread_id: Optional[str] = None,
        recent_counterpart_window_ms: int = 300_000,
        now: Optional[datetime] = None,
    ) -> List[Conversation]:
        """
        Conversations where the counterpart is owed a reply and the user has
        gone quiet for between the threshold and the staleness bound
        (both inclusive).

        Returns:
            Detached copies of the eligible conversations
        """
        now = now or self.clock()
        threshold = _ms(inactivity_threshold_ms)
        max_inactivity = _ms(max_inactivity_ms)
        counterpart_window = _ms(recent_counterpart_window_ms)

        eligible = []
        for conv in self._conversations.values():
            if exclude_thread_id and conv.id == exclude_thread_id:
                continue

            if not self._is_offerable(conv):
                continue

            own_baseline = conv.last_own_message_at or conv.created_at
            inactivity = now - own_baseline
            if not threshold <= inactivity <= max_inactivity:
                continue

            if conv.last_counterpart_message_at is None:
                continue
            if now - conv.last_counterpart_message_at >= counterpart_window:
                continue

            # Double-check state before adding
            if self._is_offerable(conv):
                eligible.append(copy.deepcopy(conv))

        return eligible

    def latest_awaiting_approval(self) -> Optional[Conversation]:
        """The most recently offered conversation still waiting on the user"""
        awaiting = [
            conv for conv in self._conversations.values() if conv.is_awaiting_approval
        ]
        if not awaiting:
            return None
        latest = max(awaiting, key=lambda c: c.offered_at or c.created_at)
        return copy.deepcopy(latest)
