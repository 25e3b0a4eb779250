"""JSON chat events → ``ChatEvent`` with decoded payloads."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ValidationError

from conversation_sync.application.dto.events import ChatEvent, MessageDeletion, TypingSignal
from conversation_sync.application.dto.principal import Principal
from conversation_sync.application.dto.snapshot import ReadReceipt
from conversation_sync.application.exceptions import MalformedEventError
from conversation_sync.application.ports.clock import Clock, SystemClock
from conversation_sync.application.ports.stream import StreamFrame
from conversation_sync.domain.value_objects.enums import ChatEventType
from conversation_sync.infrastructure.http.mappers import as_utc, schema_to_entity
from conversation_sync.infrastructure.http.schemas import MessageSchema
from conversation_sync.infrastructure.sse.protocol import (
    ActorSchema,
    ChatEventEnvelope,
    MessageDeletedPayload,
    ReadUpdatedPayload,
    TypingPayload,
)

_PAYLOAD_REQUIRED = frozenset(
    t.value
    for t in (
        ChatEventType.MESSAGE_CREATED,
        ChatEventType.MESSAGE_UPDATED,
        ChatEventType.MESSAGE_DELETED,
        ChatEventType.TYPING_STARTED,
        ChatEventType.TYPING_STOPPED,
        ChatEventType.READ_UPDATED,
    )
)


class JsonEventCodec:
    def __init__(
        self,
        principal: Principal,
        *,
        accept_legacy_data_key: bool = False,
        clock: Clock | None = None,
    ) -> None:
        self._principal = principal
        self._accept_legacy_data_key = accept_legacy_data_key
        self._clock = clock or SystemClock()

    def decode(self, frame: StreamFrame) -> ChatEvent:
        try:
            envelope = ChatEventEnvelope.model_validate_json(frame.data)
        except ValidationError as exc:
            raise MalformedEventError(f"Invalid event envelope: {exc.error_count()} error(s)") from exc

        raw = envelope.payload
        if raw is None and self._accept_legacy_data_key:
            raw = envelope.data
        if raw is None and envelope.type in _PAYLOAD_REQUIRED:
            raise MalformedEventError(f"Event {envelope.type} has no payload")

        try:
            payload = self._decode_payload(envelope.type, raw, envelope.actor)
        except ValidationError as exc:
            raise MalformedEventError(
                f"Invalid {envelope.type} payload: {exc.error_count()} error(s)"
            ) from exc

        return ChatEvent(
            type=envelope.type,
            payload=payload,
            conversation_id=envelope.conversation_id,
            event_id=envelope.event_id or frame.id,
            last_message_id=envelope.last_message_id,
            last_read_message_id=envelope.last_read_message_id,
            unread_count=envelope.unread_count,
            resync_recommended=envelope.resync_recommended,
        )

    def _decode_payload(self, event_type: str, raw: Any, actor: ActorSchema | None) -> Any:
        if event_type in (ChatEventType.MESSAGE_CREATED, ChatEventType.MESSAGE_UPDATED):
            return schema_to_entity(_validate(MessageSchema, raw), self._principal)

        if event_type == ChatEventType.MESSAGE_DELETED:
            deleted = _validate(MessageDeletedPayload, raw)
            return MessageDeletion(
                message_id=deleted.message_id,
                deleted_at=as_utc(deleted.deleted_at) or self._clock.now(),
            )

        if event_type in (ChatEventType.TYPING_STARTED, ChatEventType.TYPING_STOPPED):
            typing = _validate(TypingPayload, raw)
            return TypingSignal(user_id=typing.user_id, display_name=typing.display_name)

        if event_type == ChatEventType.READ_UPDATED:
            receipt = _validate(ReadUpdatedPayload, raw)
            user_id = receipt.user_id or (actor.user_id if actor else None)
            return ReadReceipt(
                user_id=user_id,
                last_read_message_id=receipt.last_read_message_id,
                is_remote=user_id != self._principal.user_id,
                updated_at=as_utc(receipt.updated_at),
            )

        return raw


def _validate(model: type[BaseModel], raw: Any) -> Any:
    if isinstance(raw, str):
        return model.model_validate_json(raw)
    return model.model_validate(raw)
