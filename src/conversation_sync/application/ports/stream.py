from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

from conversation_sync.application.dto.events import ChatEvent


@dataclass(frozen=True, slots=True)
class StreamFrame:
    """One dispatched Server-Sent Events frame."""

    data: str
    event: str = "message"
    id: str | None = None
    retry_ms: int | None = None


class EventStream(Protocol):
    def open(self, last_event_id: str | None = None) -> AsyncIterator[StreamFrame]:
        """Connect and yield frames until the server closes the stream.

        Raises ``TransportError`` when the connection cannot be established
        or breaks.
        """
        ...


class EventCodec(Protocol):
    def decode(self, frame: StreamFrame) -> ChatEvent:
        """Raises ``MalformedEventError`` for frames that cannot be understood."""
        ...
