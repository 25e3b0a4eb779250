"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import itertools
from collections.abc import AsyncIterator, Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from conversation_sync.application.dto.principal import Principal
from conversation_sync.application.dto.snapshot import ConversationSnapshot
from conversation_sync.application.exceptions import FetchError, TransportError
from conversation_sync.application.ports.listener import SyncListener
from conversation_sync.application.ports.stream import StreamFrame
from conversation_sync.domain.entities.message import Attachment, Message
from conversation_sync.domain.entities.typing_state import TypingState
from conversation_sync.domain.value_objects.enums import ConnectionState, SenderKind
from conversation_sync.infrastructure.sse.parser import SseDecoder

CONVERSATION_ID = "conv-1"
T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

_ids = itertools.count(1)


@pytest.fixture
def principal() -> Principal:
    return Principal(user_id="user-1", display_name="Tenant", party="client")


@pytest.fixture
def worker_principal() -> Principal:
    return Principal(user_id="wrk-7", display_name="Builder", party="wrk")


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def make_message(
    *,
    id: str | None = None,
    correlation_id: str | None = None,
    conversation_id: str = CONVERSATION_ID,
    sender_kind: SenderKind = SenderKind.REMOTE,
    sender_id: str | None = "wrk-7",
    body: str = "hello",
    created_at: datetime | None = None,
    attachments: tuple[Attachment, ...] = (),
    deleted_at: datetime | None = None,
) -> Message:
    return Message(
        id=id if id is not None else f"msg-{next(_ids)}",
        correlation_id=correlation_id,
        conversation_id=conversation_id,
        sender_kind=sender_kind,
        sender_id=sender_id,
        body=body,
        created_at=created_at or T0,
        attachments=attachments,
        deleted_at=deleted_at,
    )


class FixedClock:
    def __init__(self, now: datetime = T0) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@dataclass
class FakeChatApi:
    """In-memory REST endpoints.

    ``create_gate`` (when set) holds every create call until it is released,
    so tests can interleave pushed events with an in-flight send.
    """

    conversation_id: str = CONVERSATION_ID
    pages: list[ConversationSnapshot] = field(default_factory=list)
    fetch_error: Exception | None = None
    create_error: Exception | None = None
    create_gate: asyncio.Event | None = None
    created_at: datetime = T0
    next_message_id: str | None = None
    fetch_calls: list[dict[str, Any]] = field(default_factory=list)
    created: list[tuple[str, str]] = field(default_factory=list)
    updated: list[tuple[str, str]] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    read_marks: list[str] = field(default_factory=list)
    typing: list[bool] = field(default_factory=list)
    closed: bool = False

    async def fetch_messages(self, *, limit: int | None = None, before: str | None = None) -> ConversationSnapshot:
        self.fetch_calls.append({"limit": limit, "before": before})
        if self.fetch_error is not None:
            raise self.fetch_error
        if self.pages:
            return self.pages.pop(0)
        return ConversationSnapshot(conversation_id=self.conversation_id)

    async def create_message(
        self,
        body: str,
        correlation_id: str,
        attachments: Sequence[Attachment] = (),
    ) -> Message:
        self.created.append((correlation_id, body))
        if self.create_gate is not None:
            await self.create_gate.wait()
        if self.create_error is not None:
            raise self.create_error
        return make_message(
            id=self.next_message_id or f"srv-{correlation_id}",
            correlation_id=correlation_id,
            sender_kind=SenderKind.LOCAL,
            sender_id="user-1",
            body=body,
            created_at=self.created_at,
            attachments=tuple(attachments),
        )

    async def update_message(self, message_id: str, body: str) -> Message:
        self.updated.append((message_id, body))
        return make_message(id=message_id, body=body, sender_kind=SenderKind.LOCAL, created_at=T0)

    async def delete_message(self, message_id: str) -> None:
        self.deleted.append(message_id)

    async def mark_read(self, last_read_message_id: str) -> None:
        self.read_marks.append(last_read_message_id)

    async def set_typing(self, is_typing: bool) -> None:
        self.typing.append(is_typing)

    async def aclose(self) -> None:
        self.closed = True


class FakeEventStream:
    """Each ``open`` plays the next scripted session.

    A session is a list of frames, optionally ending in an exception; once the
    scripts run out the stream stays open until cancelled.
    """

    def __init__(self, *sessions: list[StreamFrame | Exception]) -> None:
        self.sessions = list(sessions)
        self.opened_with: list[str | None] = []
        self.queue: asyncio.Queue[StreamFrame] = asyncio.Queue()

    async def open(self, last_event_id: str | None = None) -> AsyncIterator[StreamFrame]:
        self.opened_with.append(last_event_id)
        if self.sessions:
            for item in self.sessions.pop(0):
                if isinstance(item, Exception):
                    raise item
                yield item
            return
        while True:
            yield await self.queue.get()


def failing_fetch() -> FetchError:
    return FetchError("GET /messages returned 503", status_code=503)


def dropped_connection() -> TransportError:
    return TransportError("connection reset")


@dataclass
class RecordingListener(SyncListener):
    snapshots: list[list[Message]] = field(default_factory=list)
    scrolls: int = 0
    new_message_hints: int = 0
    typing: list[frozenset[TypingState]] = field(default_factory=list)
    read_states: list[tuple[str | None, int]] = field(default_factory=list)
    states: list[ConnectionState] = field(default_factory=list)

    def on_messages_changed(self, messages: list[Message]) -> None:
        self.snapshots.append(messages)

    def on_scroll_to_bottom(self) -> None:
        self.scrolls += 1

    def on_new_messages_available(self) -> None:
        self.new_message_hints += 1

    def on_typing_changed(self, users: frozenset[TypingState]) -> None:
        self.typing.append(users)

    def on_read_state_changed(self, last_read_message_id: str | None, unread_count: int) -> None:
        self.read_states.append((last_read_message_id, unread_count))

    def on_connection_state_changed(self, state: ConnectionState) -> None:
        self.states.append(state)


async def wait_for(predicate, timeout: float = 1.0) -> None:
    """Poll ``predicate`` on the running loop until it holds."""
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


def decode_lines(lines: Iterable[str]) -> Iterator[StreamFrame]:
    decoder = SseDecoder()
    for line in lines:
        frame = decoder.feed(line)
        if frame is not None:
            yield frame


def encode_frame(data: str, *, event: str | None = None, id: str | None = None) -> str:
    """Server side of the framing, for scripted event-stream bodies."""
    parts = []
    if id is not None:
        parts.append(f"id: {id}\n")
    if event is not None:
        parts.append(f"event: {event}\n")
    for line in data.split("\n"):
        parts.append(f"data: {line}\n")
    parts.append("\n")
    return "".join(parts)
