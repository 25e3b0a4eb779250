from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from conversation_sync.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class ConversationSnapshot:
    """One page of history, oldest first."""

    conversation_id: str
    messages: list[Message] = field(default_factory=list)
    last_read_message_id: str | None = None
    unread_count: int | None = None


@dataclass(frozen=True, slots=True)
class ReadReceipt:
    user_id: str | None
    last_read_message_id: str
    is_remote: bool
    updated_at: datetime | None = None
