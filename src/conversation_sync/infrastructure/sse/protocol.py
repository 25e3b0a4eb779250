"""Chat event envelope models.

Payloads are read from ``payload``. The legacy ``data`` key is only
honoured when the codec is built with ``accept_legacy_data_key=True``.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, Field

from conversation_sync.infrastructure.http.schemas import CamelModel


class ActorSchema(CamelModel):
    kind: str | None = None
    user_id: str | None = None


class ChatEventEnvelope(CamelModel):
    type: str
    event_id: str | None = None
    conversation_id: str | None = None
    payload: Any = None
    data: Any = None
    actor: ActorSchema | None = None
    last_message_id: str | None = None
    last_read_message_id: str | None = None
    unread_count: int | None = None
    resync_recommended: bool = False


class MessageDeletedPayload(CamelModel):
    message_id: str
    deleted_at: datetime | None = None


class TypingPayload(CamelModel):
    user_id: str
    display_name: str = Field(
        default="",
        validation_alias=AliasChoices("displayName", "userName", "display_name"),
    )


class ReadUpdatedPayload(CamelModel):
    user_id: str | None = None
    last_read_message_id: str
    updated_at: datetime | None = None
