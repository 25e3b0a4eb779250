from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from conversation_sync.domain.value_objects.enums import DeliveryStatus, SenderKind


@dataclass(frozen=True, slots=True)
class Attachment:
    file_id: str
    filename: str
    mime_type: str
    size_bytes: int
    url: str | None = None


@dataclass(frozen=True, slots=True)
class Message:
    id: str | None
    correlation_id: str | None
    conversation_id: str
    sender_kind: SenderKind
    sender_id: str | None
    body: str
    created_at: datetime
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)
    edited_at: datetime | None = None
    deleted_at: datetime | None = None
    delivery_status: DeliveryStatus | None = None
    sender_name: str | None = None

    @property
    def is_confirmed(self) -> bool:
        return self.id is not None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
