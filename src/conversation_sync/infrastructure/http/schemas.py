"""Wire models for the conversation REST endpoints (camelCase JSON)."""
from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class AttachmentSchema(CamelModel):
    file_id: str
    filename: str
    mime_type: str
    size_bytes: int
    url: str | None = None


class SenderSchema(CamelModel):
    id: str
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None


class MessageSchema(CamelModel):
    id: str
    conversation_id: str = ""
    sender_type: str = "system"
    sender_user_id: str | None = None
    body: str = ""
    attachments: list[AttachmentSchema] = []
    correlation_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("correlationId", "clientGeneratedId", "correlation_id"),
    )
    created_at: datetime
    edited_at: datetime | None = None
    deleted_at: datetime | None = None
    sender: SenderSchema | None = None


class MessagesPageResponse(CamelModel):
    """``GET /conversations/{id}/messages``; messages newest first."""

    conversation_id: str
    messages: list[MessageSchema] = []
    last_read_message_id: str | None = None
    unread_count: int | None = None


class MessageResponse(CamelModel):
    message: MessageSchema


class CreateMessageRequest(CamelModel):
    body: str
    correlation_id: str
    attachments: list[AttachmentSchema] = []


class UpdateMessageRequest(CamelModel):
    body: str


class MarkReadRequest(CamelModel):
    last_read_message_id: str


class TypingRequest(CamelModel):
    is_typing: bool
