"""
Takeover module for the Messages Agent system.

This module watches conversations for the user going quiet while a
counterpart is waiting, offers to take over, and on approval runs a short
automated exchange in the user's style before handing control back.
"""

from .agent import TakeoverAgent
from .approval import ApprovalDecision, classify
from .config import AgentConfig, load_agent_config
from .exceptions import TakeoverError, ConversationNotFoundError, GenerationError
from .interfaces import Generator, Transport
from .models import AutomationState, Conversation, ExchangeEntry, MessageEvent, ThreadInfo
from .orchestrator import TakeoverOrchestrator
from .router import EventRouter
from .scanner import InactivityScanner
from .store import ConversationStore

__all__ = [
    # Application
    'TakeoverAgent',
    'AgentConfig',
    'load_agent_config',

    # Core components
    'ConversationStore',
    'InactivityScanner',
    'TakeoverOrchestrator',
    'EventRouter',
    'ApprovalDecision',
    'classify',

    # Types
    'AutomationState',
    'Conversation',
    'ExchangeEntry',
    'MessageEvent',
    'ThreadInfo',
    'Transport',
    'Generator',

    # Exceptions
    'TakeoverError',
    'ConversationNotFoundError',
    'GenerationError',
]
