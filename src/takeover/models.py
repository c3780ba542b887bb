"""Data classes and types for the takeover core.

This module defines the per-conversation record held by the
ConversationStore, the automation state machine states, and the event and
thread shapes exchanged with the transport collaborator.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Optional


DEFAULT_COUNTERPART_NAME = "your friend"


class AutomationState(Enum):
    """Automation states of a single conversation"""

    IDLE = "idle"
    AWAITING_APPROVAL = "awaiting_approval"
    ACTIVE = "active"
    COOLING_DOWN = "cooling_down"


@dataclass
class ExchangeEntry:
    """One message in a thread, in either direction."""
    text: str
    is_from_me: bool
    timestamp: datetime
    is_automated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging and status output."""
        return {
            "text": self.text,
            "is_from_me": self.is_from_me,
            "timestamp": self.timestamp.isoformat(),
            "is_automated": self.is_automated,
        }


@dataclass
class MessageEvent:
    """Inbound or outbound message event delivered by the transport."""
    thread_id: str
    text: str
    sender: str
    timestamp: datetime
    is_from_self: bool


@dataclass
class ThreadInfo:
    """Thread listing entry returned by the transport."""
    thread_id: str
    display_name: Optional[str] = None


@dataclass
class Conversation:
    """State of one counterpart thread.

    `own_message_samples` and `recent_exchange` are bounded deques; the
    store creates them with the configured capacities.
    """
    id: str
    created_at: datetime = field(default_factory=datetime.now)
    counterpart_name: str = DEFAULT_COUNTERPART_NAME
    last_own_message_at: Optional[datetime] = None
    last_counterpart_message_at: Optional[datetime] = None
    automation_state: AutomationState = AutomationState.IDLE
    turns_sent_this_session: int = 0
    deactivated_at: Optional[datetime] = None
    own_message_samples: Deque[ExchangeEntry] = field(default_factory=deque)
    recent_exchange: Deque[ExchangeEntry] = field(default_factory=deque)

    # Turn number waiting for the next counterpart message, None when the
    # session is not waiting on the counterpart.
    pending_turn: Optional[int] = None
    session_id: int = 0
    offered_at: Optional[datetime] = None
    reactivation_pending: bool = False
    # Texts sent by the agent whose transport echo has not been seen yet
    expected_echoes: List[str] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.automation_state is AutomationState.ACTIVE

    @property
    def is_awaiting_approval(self) -> bool:
        return self.automation_state is AutomationState.AWAITING_APPROVAL

    def get_summary(self) -> Dict[str, Any]:
        """Summary used for status reporting."""
        return {
            "thread_id": self.id,
            "counterpart_name": self.counterpart_name,
            "state": self.automation_state.value,
            "turns_sent_this_session": self.turns_sent_this_session,
            "last_own_message_at": (
                self.last_own_message_at.isoformat() if self.last_own_message_at else None
            ),
            "last_counterpart_message_at": (
                self.last_counterpart_message_at.isoformat()
                if self.last_counterpart_message_at else None
            ),
            "deactivated_at": self.deactivated_at.isoformat() if self.deactivated_at else None,
            "samples": len(self.own_message_samples),
            "exchange": len(self.recent_exchange),
        }
