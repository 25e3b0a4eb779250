from __future__ import annotations

from datetime import datetime, timezone

from conversation_sync.application.dto.principal import Principal
from conversation_sync.domain.entities.message import Attachment, Message
from conversation_sync.domain.value_objects.enums import SenderKind
from conversation_sync.infrastructure.http.schemas import AttachmentSchema, MessageSchema

SYSTEM_SENDER_TYPE = "system"


def as_utc(ts: datetime | None) -> datetime | None:
    """Naive timestamps from the wire are taken as UTC."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def sender_kind_for(sender_type: str, principal: Principal) -> SenderKind:
    if sender_type == SYSTEM_SENDER_TYPE:
        return SenderKind.SYSTEM
    if sender_type == principal.party:
        return SenderKind.LOCAL
    return SenderKind.REMOTE


def schema_to_entity(schema: MessageSchema, principal: Principal) -> Message:
    kind = sender_kind_for(schema.sender_type, principal)
    return Message(
        id=schema.id,
        correlation_id=schema.correlation_id,
        conversation_id=schema.conversation_id,
        sender_kind=kind,
        sender_id=None if kind == SenderKind.SYSTEM else schema.sender_user_id,
        sender_name=_sender_name(schema),
        body="" if schema.deleted_at is not None else schema.body,
        attachments=tuple(attachment_to_entity(a) for a in schema.attachments),
        created_at=as_utc(schema.created_at),  # type: ignore[arg-type]
        edited_at=as_utc(schema.edited_at),
        deleted_at=as_utc(schema.deleted_at),
    )


def attachment_to_entity(schema: AttachmentSchema) -> Attachment:
    return Attachment(
        file_id=schema.file_id,
        filename=schema.filename,
        mime_type=schema.mime_type,
        size_bytes=schema.size_bytes,
        url=schema.url,
    )


def attachment_to_schema(entity: Attachment) -> AttachmentSchema:
    return AttachmentSchema(
        file_id=entity.file_id,
        filename=entity.filename,
        mime_type=entity.mime_type,
        size_bytes=entity.size_bytes,
        url=entity.url,
    )


def _sender_name(schema: MessageSchema) -> str | None:
    if schema.sender is None:
        return None
    return schema.sender.name or schema.sender.email
