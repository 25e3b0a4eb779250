from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class MessageDeletion:
    message_id: str
    deleted_at: datetime


@dataclass(frozen=True, slots=True)
class TypingSignal:
    user_id: str
    display_name: str


@dataclass(frozen=True, slots=True)
class ChatEvent:
    """A push-channel event after envelope normalization.

    ``payload`` is already decoded for the known types: a ``Message`` for
    ``message.created``/``message.updated``, a ``MessageDeletion``, a
    ``TypingSignal`` or a ``ReadReceipt``. Other types keep the raw value.
    """

    type: str
    payload: Any = None
    conversation_id: str | None = None
    event_id: str | None = None
    last_message_id: str | None = None
    last_read_message_id: str | None = None
    unread_count: int | None = None
    resync_recommended: bool = False
