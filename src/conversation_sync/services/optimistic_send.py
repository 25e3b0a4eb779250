"""Locally-originated messages: placeholder first, server confirmation later."""
from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Sequence
from datetime import datetime

from conversation_sync.application.background import BackgroundTasks
from conversation_sync.application.dto.principal import Principal
from conversation_sync.application.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from conversation_sync.application.ports.api import ChatApi
from conversation_sync.application.ports.clock import Clock, SystemClock
from conversation_sync.domain.entities.message import Attachment, Message
from conversation_sync.domain.message_store import MessageStore
from conversation_sync.domain.value_objects.enums import DeliveryStatus, SenderKind
from conversation_sync.domain.value_objects.ids import new_correlation_id

logger = logging.getLogger(__name__)


class OptimisticSendController:
    """Owns each local message from placeholder to confirmation.

    Confirmation may come from the create response or from a pushed
    ``message.created`` carrying the same correlation id; both go through
    :meth:`reconcile`, so whichever lands second changes nothing.
    """

    def __init__(
        self,
        store: MessageStore,
        api: ChatApi,
        principal: Principal,
        conversation_id: str,
        *,
        clock: Clock | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._store = store
        self._api = api
        self._principal = principal
        self._conversation_id = conversation_id
        self._clock = clock or SystemClock()
        self._on_change = on_change
        self._tasks = BackgroundTasks()
        self._unconfirmed: set[str] = set()

    @property
    def conversation_id(self) -> str:
        return self._conversation_id

    @conversation_id.setter
    def conversation_id(self, value: str) -> None:
        self._conversation_id = value

    def pending(self) -> list[str]:
        return sorted(self._unconfirmed)

    def send(self, body: str, attachments: Sequence[Attachment] = ()) -> str:
        """Insert a ``sending`` placeholder and start the create request.

        Returns the correlation id right away; the request runs in the
        background.
        """
        text = body.strip()
        if not text and not attachments:
            raise ValidationError("Message body is empty")

        correlation_id = new_correlation_id()
        placeholder = Message(
            id=None,
            correlation_id=correlation_id,
            conversation_id=self._conversation_id,
            sender_kind=SenderKind.LOCAL,
            sender_id=self._principal.user_id,
            sender_name=self._principal.display_name,
            body=text,
            attachments=tuple(attachments),
            created_at=self._placeholder_timestamp(),
            delivery_status=DeliveryStatus.SENDING,
        )
        self._store.append(placeholder)
        self._unconfirmed.add(correlation_id)
        self._changed()

        self._dispatch(correlation_id, text, placeholder.attachments)
        return correlation_id

    def retry(self, correlation_id: str) -> None:
        placeholder = self._store.get_by_correlation_id(correlation_id)
        if placeholder is None or placeholder.is_confirmed:
            raise NotFoundError(f"No unconfirmed message with correlation id {correlation_id}")
        if placeholder.delivery_status != DeliveryStatus.FAILED:
            raise ConflictError(f"Message {correlation_id} is {placeholder.delivery_status}, not failed")

        self._store.set_delivery_status(correlation_id, DeliveryStatus.SENDING)
        self._changed()
        self._dispatch(correlation_id, placeholder.body, placeholder.attachments)

    def reconcile(self, message: Message, *, notify: bool = True) -> bool:
        """Merge a confirmed message, replacing its placeholder when one exists.

        With ``notify=False`` the caller batches and reports the change itself.
        """
        if message.correlation_id is None:
            changed = self._store.append(message)
        else:
            changed = self._store.upsert_by_correlation_id(
                message.correlation_id,
                dataclasses.replace(message, delivery_status=DeliveryStatus.SENT),
            )
            self._unconfirmed.discard(message.correlation_id)
        if changed and notify:
            self._changed()
        return changed

    async def drain(self) -> None:
        await self._tasks.drain()

    async def close(self) -> None:
        await self._tasks.cancel_all()

    def _dispatch(self, correlation_id: str, body: str, attachments: tuple[Attachment, ...]) -> None:
        self._tasks.spawn(
            self._deliver(correlation_id, body, attachments),
            name=f"send-{correlation_id}",
        )

    async def _deliver(self, correlation_id: str, body: str, attachments: tuple[Attachment, ...]) -> None:
        try:
            message = await self._api.create_message(body, correlation_id, attachments)
        except Exception:
            logger.exception("Failed to send message %s", correlation_id)
            if self._store.set_delivery_status(correlation_id, DeliveryStatus.FAILED):
                self._changed()
            return

        if message.correlation_id != correlation_id:
            message = dataclasses.replace(message, correlation_id=correlation_id)
        if not self.reconcile(message):
            logger.debug("Message %s was already confirmed by the event stream", correlation_id)

    def _placeholder_timestamp(self) -> datetime:
        # Local clock may trail the server; keep the placeholder at the tail.
        now = self._clock.now()
        newest = self._store.newest()
        if newest is not None and newest.created_at > now:
            return newest.created_at
        return now

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()
