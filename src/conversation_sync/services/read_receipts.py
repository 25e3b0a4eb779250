"""Local read position and remote read receipts."""
from __future__ import annotations

import logging
from collections.abc import Callable

from conversation_sync.application.background import BackgroundTasks
from conversation_sync.application.dto.snapshot import ReadReceipt
from conversation_sync.application.ports.api import ChatApi
from conversation_sync.domain.entities.conversation import Conversation
from conversation_sync.domain.message_store import MessageStore
from conversation_sync.domain.value_objects.enums import SenderKind

logger = logging.getLogger(__name__)


class ReadReceiptTracker:
    """Owns ``last_read_message_id`` for the current user.

    The local marker moves first and the POST follows in the background; a
    failed POST is logged and never rolled back.
    """

    def __init__(
        self,
        store: MessageStore,
        api: ChatApi,
        conversation_id: str,
        *,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._store = store
        self._api = api
        self._conversation_id = conversation_id
        self._on_change = on_change
        self._tasks = BackgroundTasks()
        self._last_read_message_id: str | None = None
        self._remote_last_read_message_id: str | None = None
        self._reported_unread_count = 0

    @property
    def last_read_message_id(self) -> str | None:
        return self._last_read_message_id

    @property
    def remote_last_read_message_id(self) -> str | None:
        return self._remote_last_read_message_id

    @property
    def unread_count(self) -> int:
        """Messages from other parties after the read marker.

        Derived from the store when the marker is in it, otherwise the last
        server-reported count.
        """
        if self._last_read_message_id is None:
            return self._reported_unread_count
        position = self._store.index_of(self._last_read_message_id)
        if position is None:
            return self._reported_unread_count
        return sum(
            1
            for message in self._store.snapshot()[position + 1:]
            if message.is_confirmed
            and not message.is_deleted
            and message.sender_kind != SenderKind.LOCAL
        )

    def conversation(self) -> Conversation:
        return Conversation(
            id=self._conversation_id,
            last_read_message_id=self._last_read_message_id,
            unread_count=self.unread_count,
            remote_last_read_message_id=self._remote_last_read_message_id,
        )

    def set_conversation_id(self, conversation_id: str) -> None:
        self._conversation_id = conversation_id

    def seed(self, last_read_message_id: str | None, unread_count: int | None = None) -> None:
        """Adopt server-reported read state without issuing a POST.

        An older marker than the one held locally is ignored together with
        its unread count.
        """
        changed = False
        if last_read_message_id is not None and last_read_message_id != self._last_read_message_id:
            if not self._is_ahead(last_read_message_id):
                logger.debug("Ignoring stale read marker %s", last_read_message_id)
                return
            self._last_read_message_id = last_read_message_id
            changed = True
        if unread_count is not None and unread_count != self._reported_unread_count:
            self._reported_unread_count = unread_count
            changed = True
        if changed:
            self._changed()

    def mark_read(self, message_id: str | None) -> bool:
        if message_id is None or message_id == self._last_read_message_id:
            return False

        self._last_read_message_id = message_id
        self._reported_unread_count = 0
        self._changed()
        self._tasks.spawn(self._persist(message_id), name=f"mark-read-{message_id}")
        return True

    def apply_remote(self, receipt: ReadReceipt) -> bool:
        """Apply a pushed receipt; the read marker only ever moves forward.

        Receipts from other parties are also kept as the remote marker. Our own
        receipts (echoes, other sessions) are never re-posted.
        """
        changed = False
        if receipt.is_remote and receipt.last_read_message_id != self._remote_last_read_message_id:
            self._remote_last_read_message_id = receipt.last_read_message_id
            changed = True
        if (
            receipt.last_read_message_id != self._last_read_message_id
            and self._is_ahead(receipt.last_read_message_id)
        ):
            self._last_read_message_id = receipt.last_read_message_id
            changed = True
        if changed:
            self._changed()
        return changed

    async def drain(self) -> None:
        await self._tasks.drain()

    async def close(self) -> None:
        await self._tasks.cancel_all()

    async def _persist(self, message_id: str) -> None:
        try:
            await self._api.mark_read(message_id)
        except Exception:
            logger.exception("Failed to mark message %s as read", message_id)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def _is_ahead(self, message_id: str) -> bool:
        if self._last_read_message_id is None:
            return True
        current = self._store.index_of(self._last_read_message_id)
        if current is None:
            # Nothing to compare against until the marker is loaded.
            return True
        candidate = self._store.index_of(message_id)
        return candidate is not None and candidate > current
