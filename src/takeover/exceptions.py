"""
Custom exceptions for the takeover core.

Environmental failures (transport, generation, name resolution) are caught
at the point of the external call and turned into state transitions. Only
programming-level invariant violations propagate out of the core.
"""


class TakeoverError(Exception):
    """Base exception for all takeover-core errors."""
    pass


class ConversationNotFoundError(TakeoverError):
    """Raised when a mutator is asked to act on a thread id the store has never seen."""

    def __init__(self, thread_id: str):
        super().__init__(f"No conversation tracked for thread {thread_id!r}")
        self.thread_id = thread_id


class GenerationError(TakeoverError):
    """Raised when the generation collaborator fails or returns unusable output."""
    pass
