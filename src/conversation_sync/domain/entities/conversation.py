from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Conversation:
    id: str
    last_read_message_id: str | None
    unread_count: int
    remote_last_read_message_id: str | None = None
