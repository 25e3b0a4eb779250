"""Composition root: one engine per open conversation."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from types import TracebackType

from conversation_sync.application.background import BackgroundTasks
from conversation_sync.application.dto.principal import Principal
from conversation_sync.application.dto.snapshot import ConversationSnapshot
from conversation_sync.application.exceptions import ConflictError, NotFoundError, ValidationError
from conversation_sync.application.ports.api import ChatApi
from conversation_sync.application.ports.clock import Clock, SystemClock
from conversation_sync.application.ports.listener import SyncListener
from conversation_sync.application.ports.stream import EventCodec, EventStream
from conversation_sync.domain.entities.conversation import Conversation
from conversation_sync.domain.entities.message import Attachment, Message
from conversation_sync.domain.entities.typing_state import TypingState
from conversation_sync.domain.message_store import MessageStore, editable_fields
from conversation_sync.domain.value_objects.enums import ConnectionState
from conversation_sync.services.event_stream import (
    DEFAULT_RECONNECT_DELAY_SECONDS,
    EventStreamManager,
)
from conversation_sync.services.optimistic_send import OptimisticSendController
from conversation_sync.services.read_receipts import ReadReceiptTracker
from conversation_sync.services.typing_presence import (
    DEFAULT_EXPIRY_SECONDS,
    TypingPresenceTracker,
)
from conversation_sync.services.viewport import DEFAULT_AT_BOTTOM_THRESHOLD_PX, Viewport

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_PAGE_SIZE = 50


class SyncEngine:
    """Keeps one conversation's message log, read state and typing presence in sync.

    ``start()`` fetches history then connects the event stream; ``stop()`` is
    the single teardown point: it closes the stream, cancels every typing
    timer and in-flight background call, and releases the API client.

    Usage::

        async with SyncEngine(conversation_id, principal, api, stream, codec) as engine:
            engine.send("hello")
    """

    def __init__(
        self,
        conversation_id: str,
        principal: Principal,
        api: ChatApi,
        stream: EventStream,
        codec: EventCodec,
        *,
        listener: SyncListener | None = None,
        clock: Clock | None = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY_SECONDS,
        typing_expiry: float = DEFAULT_EXPIRY_SECONDS,
        at_bottom_threshold_px: float = DEFAULT_AT_BOTTOM_THRESHOLD_PX,
        history_page_size: int = DEFAULT_HISTORY_PAGE_SIZE,
    ) -> None:
        self._conversation_id = conversation_id
        self._api = api
        self._listener = listener or SyncListener()
        self._clock = clock or SystemClock()
        self._history_page_size = history_page_size

        self._store = MessageStore()
        self._viewport = Viewport(at_bottom_threshold_px)
        self._tasks = BackgroundTasks()
        self._sender = OptimisticSendController(
            self._store, api, principal, conversation_id,
            clock=self._clock,
            on_change=self._messages_changed,
        )
        self._receipts = ReadReceiptTracker(
            self._store, api, conversation_id,
            on_change=self._read_state_changed,
        )
        self._typing = TypingPresenceTracker(
            principal.user_id,
            expiry_seconds=typing_expiry,
            clock=self._clock,
            on_change=self._listener.on_typing_changed,
        )
        self._events = EventStreamManager(
            stream,
            codec,
            store=self._store,
            sender=self._sender,
            receipts=self._receipts,
            typing=self._typing,
            viewport=self._viewport,
            listener=self._listener,
            resync=self.fetch_initial,
            on_messages_changed=self._messages_changed,
            reconnect_delay=reconnect_delay,
        )

        self._started = False
        self._stopped = False
        self._local_typing = False
        self._history_exhausted = False

    async def __aenter__(self) -> SyncEngine:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    # -- state -------------------------------------------------------------

    @property
    def conversation_id(self) -> str:
        return self._conversation_id

    @property
    def connection_state(self) -> ConnectionState:
        return self._events.state

    @property
    def is_at_bottom(self) -> bool:
        return self._viewport.at_bottom

    @property
    def has_new_messages(self) -> bool:
        return self._viewport.has_new_messages

    @property
    def history_exhausted(self) -> bool:
        return self._history_exhausted

    @property
    def store(self) -> MessageStore:
        return self._store

    @property
    def events(self) -> EventStreamManager:
        return self._events

    def snapshot(self) -> list[Message]:
        return self._store.snapshot()

    def typing_users(self) -> frozenset[TypingState]:
        return self._typing.active_users()

    def conversation(self) -> Conversation:
        return self._receipts.conversation()

    def pending_sends(self) -> list[str]:
        return self._sender.pending()

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        if self._started:
            return
        if self._stopped:
            raise ConflictError("Engine was stopped; create a new one")
        await self.fetch_initial()
        await self._events.connect()
        self._started = True
        logger.info("Sync engine started for conversation %s", self._conversation_id)

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        await self._events.close()
        self._typing.close()
        await self._sender.close()
        await self._receipts.close()
        await self._tasks.cancel_all()
        await self._api.aclose()
        logger.info("Sync engine stopped for conversation %s", self._conversation_id)

    async def drain(self) -> None:
        """Wait for in-flight sends, read receipts and typing calls."""
        await self._sender.drain()
        await self._receipts.drain()
        await self._tasks.drain()

    # -- history -----------------------------------------------------------

    async def fetch_initial(self) -> ConversationSnapshot:
        """Fetch the newest page and merge it; also used for resync.

        Raises ``FetchError``; retrying is up to the caller.
        """
        snapshot = await self._api.fetch_messages(limit=self._history_page_size)
        self._merge(snapshot.messages)
        self._receipts.seed(snapshot.last_read_message_id, snapshot.unread_count)
        if len(snapshot.messages) < self._history_page_size:
            self._history_exhausted = True
        self._messages_changed()
        logger.debug(
            "Merged %d fetched message(s), store holds %d",
            len(snapshot.messages), len(self._store),
        )
        return snapshot

    async def load_older(self, limit: int | None = None) -> int:
        """Backfill the page before the oldest confirmed message; returns how many were added."""
        oldest = self._store.oldest_confirmed()
        if oldest is None or self._history_exhausted:
            return 0
        page_size = limit or self._history_page_size
        snapshot = await self._api.fetch_messages(limit=page_size, before=oldest.id)
        if len(snapshot.messages) < page_size:
            self._history_exhausted = True
        added = self._merge(snapshot.messages)
        if added:
            self._listener.on_messages_changed(self._store.snapshot())
        return added

    # -- sending -----------------------------------------------------------

    def send(self, body: str, attachments: Sequence[Attachment] = ()) -> str:
        # Sending re-anchors the view at the newest message.
        self._viewport.set_at_bottom(True)
        correlation_id = self._sender.send(body, attachments)
        self._listener.on_scroll_to_bottom()
        if self._local_typing:
            self.set_local_typing(False)
        return correlation_id

    def retry(self, correlation_id: str) -> None:
        self._sender.retry(correlation_id)

    async def edit_message(self, message_id: str, body: str) -> Message:
        current = self._require_editable(message_id)
        text = body.strip()
        if not text:
            raise ValidationError("Message body is empty")
        if text == current.body:
            return current

        updated = await self._api.update_message(message_id, text)
        if self._store.apply_update(message_id, editable_fields(updated)):
            self._messages_changed()
        return self._store.get(message_id) or updated

    async def delete_message(self, message_id: str) -> None:
        self._require_editable(message_id)
        await self._api.delete_message(message_id)
        if self._store.apply_tombstone(message_id, self._clock.now()):
            self._messages_changed()

    def set_local_typing(self, is_typing: bool) -> bool:
        if is_typing == self._local_typing:
            return False
        self._local_typing = is_typing
        self._tasks.spawn(self._publish_typing(is_typing), name=f"typing-{is_typing}")
        return True

    # -- viewport / read state ---------------------------------------------

    def mark_read(self, message_id: str | None = None) -> bool:
        if message_id is None:
            newest = self._store.newest_confirmed()
            message_id = newest.id if newest is not None else None
        return self._receipts.mark_read(message_id)

    def set_at_bottom(self, at_bottom: bool) -> None:
        if self._viewport.set_at_bottom(at_bottom):
            self.mark_read()

    def update_scroll_position(self, scroll_top: float, scroll_height: float, client_height: float) -> bool:
        at_bottom = self._viewport.is_near_bottom(scroll_top, scroll_height, client_height)
        self.set_at_bottom(at_bottom)
        return at_bottom

    # -- internals ---------------------------------------------------------

    def _merge(self, messages: list[Message]) -> int:
        """Merge server messages; known ids pick up server-side edits and deletions."""
        added = 0
        for message in messages:
            existing = self._store.get(message.id) if message.id is not None else None
            if existing is None:
                if self._sender.reconcile(message, notify=False):
                    added += 1
            elif message.deleted_at is not None:
                self._store.apply_tombstone(existing.id, message.deleted_at)  # type: ignore[arg-type]
            else:
                self._store.apply_update(existing.id, editable_fields(message))  # type: ignore[arg-type]
        return added

    def _require_editable(self, message_id: str) -> Message:
        current = self._store.get(message_id)
        if current is None:
            raise NotFoundError(f"Message {message_id} not found")
        if current.is_deleted:
            raise ConflictError(f"Message {message_id} is deleted")
        return current

    async def _publish_typing(self, is_typing: bool) -> None:
        try:
            await self._api.set_typing(is_typing)
        except Exception:
            logger.exception("Failed to publish typing=%s", is_typing)

    def _messages_changed(self) -> None:
        if self._viewport.at_bottom:
            self.mark_read()
        self._listener.on_messages_changed(self._store.snapshot())

    def _read_state_changed(self) -> None:
        self._listener.on_read_state_changed(
            self._receipts.last_read_message_id,
            self._receipts.unread_count,
        )
