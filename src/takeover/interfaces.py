"""Collaborator protocols consumed by the takeover core."""

from typing import AsyncIterator, List, Optional, Protocol, runtime_checkable

from .models import MessageEvent, ThreadInfo


@runtime_checkable
class Transport(Protocol):
    """Message transport: sends, thread listing and the event stream.

    `send` raises on failure; retries are the transport's business.
    """

    async def send(self, destination: str, text: str) -> None: ...

    async def list_threads(self, filter_text: Optional[str] = None) -> List[ThreadInfo]: ...

    def events(self) -> AsyncIterator[MessageEvent]: ...


@runtime_checkable
class Generator(Protocol):
    """Natural-language generation service. Output is untrusted text."""

    async def generate(self, prompt: str) -> str: ...


__all__ = ["Transport", "Generator"]
