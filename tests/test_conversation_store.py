"""
Unit tests for the ConversationStore.

Covers the reclaim and clock rules, state transitions, echo tracking and
the offer eligibility window.
"""

import pytest

from src.takeover.exceptions import ConversationNotFoundError
from src.takeover.models import AutomationState
from src.takeover.store import ConversationStore, MAX_EXPECTED_ECHOES

from tests.fakes import FakeClock, FRIEND, USER

THRESHOLD = 120_000
MAX_INACTIVITY = 3_600_000


class TestConversationLookup:
    """Test lookup-or-create and detached reads."""

    def setup_method(self):
        self.clock = FakeClock()
        self.store = ConversationStore(sample_capacity=3, exchange_capacity=4, clock=self.clock)

    def test_get_or_create_is_idempotent(self):
        first = self.store.get_or_create(FRIEND)
        second = self.store.get_or_create(FRIEND)

        assert first is second
        assert len(self.store) == 1
        assert first.automation_state is AutomationState.IDLE
        assert first.created_at == self.clock.now
        assert first.last_own_message_at is None
        assert first.last_counterpart_message_at is None

    def test_snapshot_is_detached(self):
        self.store.record_counterpart_message(FRIEND, "hi", self.clock.now)

        snap = self.store.snapshot(FRIEND)
        snap.automation_state = AutomationState.ACTIVE
        snap.recent_exchange.clear()

        live = self.store.snapshot(FRIEND)
        assert live.automation_state is AutomationState.IDLE
        assert len(live.recent_exchange) == 1

    def test_snapshot_unknown_thread(self):
        assert self.store.snapshot("nobody") is None
        assert "nobody" not in self.store

    def test_mutating_unknown_thread_raises(self):
        with pytest.raises(ConversationNotFoundError) as exc_info:
            self.store.enter_active("nobody")
        assert exc_info.value.thread_id == "nobody"

    def test_histories_are_bounded(self):
        for i in range(10):
            self.store.record_own_message(FRIEND, f"msg {i}", self.clock.now, is_automated=False)

        conv = self.store.snapshot(FRIEND)
        assert [s.text for s in conv.own_message_samples] == ["msg 7", "msg 8", "msg 9"]
        assert [e.text for e in conv.recent_exchange] == ["msg 6", "msg 7", "msg 8", "msg 9"]


class TestMessageRecording:
    """Test own/counterpart recording and user reclaim."""

    def setup_method(self):
        self.clock = FakeClock()
        self.store = ConversationStore(clock=self.clock)

    def _activate(self, turns: int = 0):
        self.store.get_or_create(FRIEND)
        assert self.store.set_awaiting_approval(FRIEND)
        assert self.store.enter_active(FRIEND)
        for _ in range(turns):
            self.store.increment_turn(FRIEND)
        self.store.set_pending_turn(FRIEND, turns + 1)

    @pytest.mark.parametrize("turns", [0, 1, 2, 3])
    def test_own_message_reclaims_active_session(self, turns):
        self._activate(turns)

        self.store.record_own_message(FRIEND, "I got this", self.clock.now, is_automated=False)

        conv = self.store.snapshot(FRIEND)
        assert conv.automation_state is AutomationState.IDLE
        assert conv.turns_sent_this_session == 0
        assert conv.pending_turn is None
        assert conv.deactivated_at == self.clock.now

    def test_automated_message_does_not_move_clock(self):
        earlier = self.clock.ago(60_000)
        self.store.record_own_message(FRIEND, "mine", earlier, is_automated=False)
        self._activate()

        self.store.record_own_message(FRIEND, "bot", self.clock.now, is_automated=True)

        conv = self.store.snapshot(FRIEND)
        assert conv.last_own_message_at == earlier
        assert [s.text for s in conv.own_message_samples] == ["mine"]
        assert conv.recent_exchange[-1].is_automated is True
        assert conv.automation_state is AutomationState.ACTIVE

    def test_own_message_clears_awaiting_approval(self):
        self.store.get_or_create(FRIEND)
        self.store.set_awaiting_approval(FRIEND)

        self.store.record_own_message(FRIEND, "nvm replying", self.clock.now, is_automated=False)

        conv = self.store.snapshot(FRIEND)
        assert conv.automation_state is AutomationState.IDLE
        assert conv.offered_at is None

    def test_own_message_ends_cool_down(self):
        self._activate()
        self.store.leave_active(FRIEND)
        self.store.set_reactivation_pending(FRIEND, True)

        self.store.record_own_message(FRIEND, "back", self.clock.now, is_automated=False)

        conv = self.store.snapshot(FRIEND)
        assert conv.automation_state is AutomationState.IDLE
        assert conv.reactivation_pending is False

    def test_counterpart_message(self):
        self.store.record_counterpart_message(FRIEND, "you there?", self.clock.now)

        conv = self.store.snapshot(FRIEND)
        assert conv.last_counterpart_message_at == self.clock.now
        assert conv.recent_exchange[-1].is_from_me is False
        assert conv.last_own_message_at is None


class TestStateTransitions:
    """Test the guarded automation state transitions."""

    def setup_method(self):
        self.clock = FakeClock()
        self.store = ConversationStore(clock=self.clock)
        self.store.get_or_create(FRIEND)

    def test_idle_cannot_jump_to_active(self):
        assert self.store.enter_active(FRIEND) is False
        assert self.store.snapshot(FRIEND).automation_state is AutomationState.IDLE

    def test_offer_then_activate(self):
        assert self.store.set_awaiting_approval(FRIEND)
        assert self.store.snapshot(FRIEND).offered_at == self.clock.now

        assert self.store.enter_active(FRIEND)
        conv = self.store.snapshot(FRIEND)
        assert conv.automation_state is AutomationState.ACTIVE
        assert conv.session_id == 1
        assert conv.offered_at is None

    def test_no_second_offer_while_awaiting(self):
        self.store.set_awaiting_approval(FRIEND)
        assert self.store.set_awaiting_approval(FRIEND) is False

    def test_clear_awaiting_approval_only_from_awaiting(self):
        assert self.store.clear_awaiting_approval(FRIEND) is False
        self.store.set_awaiting_approval(FRIEND)
        assert self.store.clear_awaiting_approval(FRIEND) is True
        assert self.store.snapshot(FRIEND).automation_state is AutomationState.IDLE

    def test_leave_active_to_cool_down(self):
        self.store.set_awaiting_approval(FRIEND)
        self.store.enter_active(FRIEND)
        self.store.increment_turn(FRIEND)

        assert self.store.leave_active(FRIEND)
        conv = self.store.snapshot(FRIEND)
        assert conv.automation_state is AutomationState.COOLING_DOWN
        assert conv.turns_sent_this_session == 0
        assert conv.deactivated_at == self.clock.now

    def test_leave_active_to_idle(self):
        self.store.set_awaiting_approval(FRIEND)
        self.store.enter_active(FRIEND)

        self.store.leave_active(FRIEND, cool_down=False)
        conv = self.store.snapshot(FRIEND)
        assert conv.automation_state is AutomationState.IDLE
        assert conv.deactivated_at == self.clock.now

    def test_leave_active_when_not_active(self):
        assert self.store.leave_active(FRIEND) is False
        assert self.store.snapshot(FRIEND).deactivated_at is None

    def test_reactivation_path(self):
        self.store.set_awaiting_approval(FRIEND)
        self.store.enter_active(FRIEND)
        self.store.leave_active(FRIEND)

        assert self.store.enter_active(FRIEND) is False
        assert self.store.enter_active(FRIEND, reactivation=True) is True
        assert self.store.snapshot(FRIEND).session_id == 2

    def test_pending_turn_is_taken_once(self):
        self.store.set_awaiting_approval(FRIEND)
        self.store.enter_active(FRIEND)
        self.store.set_pending_turn(FRIEND, 2)

        assert self.store.take_pending_turn(FRIEND) == 2
        assert self.store.take_pending_turn(FRIEND) is None

    def test_pending_turn_requires_active(self):
        self.store.set_pending_turn(FRIEND, 2)
        assert self.store.snapshot(FRIEND).pending_turn is None

    def test_expire_cool_downs(self):
        self.store.set_awaiting_approval(FRIEND)
        self.store.enter_active(FRIEND)
        self.store.leave_active(FRIEND)

        self.clock.advance(299_999)
        assert self.store.expire_cool_downs(300_000) == []

        self.clock.advance(1)
        assert self.store.expire_cool_downs(300_000) == [FRIEND]
        assert self.store.snapshot(FRIEND).automation_state is AutomationState.IDLE

    def test_expire_skips_pending_reactivation(self):
        self.store.set_awaiting_approval(FRIEND)
        self.store.enter_active(FRIEND)
        self.store.leave_active(FRIEND)
        self.store.set_reactivation_pending(FRIEND, True)

        self.clock.advance(600_000)
        assert self.store.expire_cool_downs(300_000) == []


class TestEchoTracking:
    """Test expected-echo bookkeeping."""

    def setup_method(self):
        self.store = ConversationStore(clock=FakeClock())

    def test_echo_consumed_once(self):
        self.store.expect_echo(FRIEND, "on my way ")

        assert self.store.consume_echo(FRIEND, "on my way") is True
        assert self.store.consume_echo(FRIEND, "on my way") is False

    def test_forget_echo(self):
        self.store.expect_echo(USER, "offer")
        self.store.forget_echo(USER, "offer")
        assert self.store.consume_echo(USER, "offer") is False

    def test_unknown_thread_has_no_echoes(self):
        assert self.store.consume_echo("nobody", "hi") is False

    def test_expected_echoes_are_bounded(self):
        for i in range(MAX_EXPECTED_ECHOES + 5):
            self.store.expect_echo(FRIEND, f"msg {i}")

        conv = self.store.snapshot(FRIEND)
        assert len(conv.expected_echoes) == MAX_EXPECTED_ECHOES
        assert self.store.consume_echo(FRIEND, "msg 0") is False


class TestOfferEligibility:
    """Test listEligibleForOffer bounds and exclusions."""

    def setup_method(self):
        self.clock = FakeClock()
        self.store = ConversationStore(clock=self.clock)

    def _conversation(self, thread_id, own_ago_ms, counterpart_ago_ms=10_000):
        self.store.record_own_message(
            thread_id, "hey", self.clock.ago(own_ago_ms), is_automated=False
        )
        if counterpart_ago_ms is not None:
            self.store.record_counterpart_message(
                thread_id, "you there?", self.clock.ago(counterpart_ago_ms)
            )

    def _eligible_ids(self, **kwargs):
        return [
            conv.id
            for conv in self.store.list_eligible_for_offer(THRESHOLD, MAX_INACTIVITY, **kwargs)
        ]

    def test_threshold_is_inclusive(self):
        self._conversation("at-threshold", THRESHOLD)
        self._conversation("just-under", THRESHOLD - 1)

        assert self._eligible_ids() == ["at-threshold"]

    def test_max_inactivity_is_inclusive(self):
        self._conversation("at-max", MAX_INACTIVITY)
        self._conversation("just-over", MAX_INACTIVITY + 1)

        assert self._eligible_ids() == ["at-max"]

    def test_requires_recent_counterpart_message(self):
        self._conversation("silent", 125_000, counterpart_ago_ms=None)
        self._conversation("stale", 125_000, counterpart_ago_ms=300_000)
        self._conversation("recent", 125_000, counterpart_ago_ms=299_999)

        assert self._eligible_ids() == ["recent"]

    def test_excludes_self_thread(self):
        self._conversation(USER, 125_000)
        self._conversation(FRIEND, 125_000)

        assert self._eligible_ids(exclude_thread_id=USER) == [FRIEND]

    @pytest.mark.parametrize("state", ["awaiting", "active"])
    def test_no_duplicate_offers(self, state):
        self._conversation(FRIEND, 125_000)
        self.store.set_awaiting_approval(FRIEND)
        if state == "active":
            self.store.enter_active(FRIEND)

        assert self._eligible_ids() == []
        assert self.store.is_offerable(FRIEND) is False

    def test_uses_creation_time_without_own_messages(self):
        self.store.record_counterpart_message(FRIEND, "hello?", self.clock.now)
        assert self._eligible_ids() == []

        self.clock.advance(THRESHOLD)
        self.store.record_counterpart_message(FRIEND, "hello??", self.clock.now)
        assert self._eligible_ids() == [FRIEND]

    def test_cooling_down_needs_new_counterpart_activity(self):
        self._conversation(FRIEND, 125_000, counterpart_ago_ms=20_000)
        self.store.set_awaiting_approval(FRIEND)
        self.store.enter_active(FRIEND)
        self.store.leave_active(FRIEND)
        assert self._eligible_ids() == []

        self.clock.advance(1_000)
        self.store.record_counterpart_message(FRIEND, "still there?", self.clock.now)
        assert self._eligible_ids() == [FRIEND]

        self.store.set_reactivation_pending(FRIEND, True)
        assert self._eligible_ids() == []

    def test_results_are_detached(self):
        self._conversation(FRIEND, 125_000)
        conv = self.store.list_eligible_for_offer(THRESHOLD, MAX_INACTIVITY)[0]
        conv.automation_state = AutomationState.ACTIVE

        assert self.store.snapshot(FRIEND).automation_state is AutomationState.IDLE

    def test_latest_awaiting_approval(self):
        assert self.store.latest_awaiting_approval() is None

        self._conversation("first", 125_000)
        self._conversation("second", 125_000)
        self.store.set_awaiting_approval("first")
        self.clock.advance(1_000)
        self.store.set_awaiting_approval("second")

        assert self.store.latest_awaiting_approval().id == "second"
