"""Push-channel lifecycle and event routing."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import aclosing

from conversation_sync.application.dto.events import ChatEvent, MessageDeletion, TypingSignal
from conversation_sync.application.dto.snapshot import ReadReceipt
from conversation_sync.application.exceptions import AppError, MalformedEventError, TransportError
from conversation_sync.application.ports.listener import SyncListener
from conversation_sync.application.ports.stream import EventCodec, EventStream, StreamFrame
from conversation_sync.domain.entities.message import Message
from conversation_sync.domain.message_store import MessageStore, editable_fields
from conversation_sync.domain.value_objects.enums import ChatEventType, ConnectionState
from conversation_sync.services.optimistic_send import OptimisticSendController
from conversation_sync.services.read_receipts import ReadReceiptTracker
from conversation_sync.services.typing_presence import TypingPresenceTracker
from conversation_sync.services.viewport import Viewport

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY_SECONDS = 5.0

EventHandler = Callable[[ChatEvent], Awaitable[None]]


class EventStreamManager:
    """Keeps the event stream connected and routes each event to its owner.

    ``disconnected → connecting → connected``; any transport error or a
    server-side close drops back to ``disconnected`` and schedules exactly one
    reconnect after a fixed delay. Attempts are not capped.
    """

    def __init__(
        self,
        stream: EventStream,
        codec: EventCodec,
        *,
        store: MessageStore,
        sender: OptimisticSendController,
        receipts: ReadReceiptTracker,
        typing: TypingPresenceTracker,
        viewport: Viewport,
        listener: SyncListener,
        resync: Callable[[], Awaitable[object]],
        on_messages_changed: Callable[[], None],
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY_SECONDS,
    ) -> None:
        self._stream = stream
        self._codec = codec
        self._store = store
        self._sender = sender
        self._receipts = receipts
        self._typing = typing
        self._viewport = viewport
        self._listener = listener
        self._resync = resync
        self._on_messages_changed = on_messages_changed
        self._reconnect_delay = reconnect_delay

        self._state = ConnectionState.DISCONNECTED
        self._task: asyncio.Task[None] | None = None
        self._last_event_id: str | None = None
        self._attempts = 0
        self._conversation_id: str | None = None
        self._handlers: dict[str, EventHandler] = {
            ChatEventType.CONNECTED.value: self._on_connected,
            ChatEventType.PING.value: self._on_ping,
            ChatEventType.MESSAGE_CREATED.value: self._on_message_created,
            ChatEventType.MESSAGE_UPDATED.value: self._on_message_updated,
            ChatEventType.MESSAGE_DELETED.value: self._on_message_deleted,
            ChatEventType.TYPING_STARTED.value: self._on_typing_started,
            ChatEventType.TYPING_STOPPED.value: self._on_typing_stopped,
            ChatEventType.READ_UPDATED.value: self._on_read_updated,
        }

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def last_event_id(self) -> str | None:
        return self._last_event_id

    @property
    def conversation_id(self) -> str | None:
        """Conversation id announced by the server's ``connected`` event."""
        return self._conversation_id

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    async def connect(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="event-stream")
        logger.info("Event stream manager started")

    async def close(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Event stream manager stopped")
        self._set_state(ConnectionState.DISCONNECTED)

    async def handle_frame(self, frame: StreamFrame) -> None:
        if frame.id is not None:
            self._last_event_id = frame.id
        if frame.event != "message":
            logger.debug("Ignoring %s frame", frame.event)
            return

        try:
            event = self._codec.decode(frame)
        except MalformedEventError as exc:
            logger.warning("Dropping malformed event: %s", exc.detail)
            return
        await self.dispatch(event)

    async def dispatch(self, event: ChatEvent) -> None:
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.debug("Ignoring unknown event type: %s", event.type)
            return
        try:
            await handler(event)
        except Exception:
            logger.exception("Error handling %s event", event.type)

    # -- connection loop ---------------------------------------------------

    async def _run(self) -> None:
        while True:
            self._set_state(ConnectionState.CONNECTING)
            try:
                await self._consume()
                logger.info("Event stream closed by server")
            except TransportError as exc:
                logger.warning("Event stream error: %s", exc.detail)
            except Exception:
                logger.exception("Event stream failed")

            self._set_state(ConnectionState.DISCONNECTED)
            self._attempts += 1
            logger.info(
                "Reconnecting event stream in %.1fs (attempt %d)",
                self._reconnect_delay, self._attempts,
            )
            await asyncio.sleep(self._reconnect_delay)

    async def _consume(self) -> None:
        async with aclosing(self._stream.open(self._last_event_id)) as frames:
            async for frame in frames:
                if self._state != ConnectionState.CONNECTED:
                    self._set_state(ConnectionState.CONNECTED)
                    self._attempts = 0
                await self.handle_frame(frame)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        logger.debug("Event stream %s -> %s", self._state, state)
        self._state = state
        self._listener.on_connection_state_changed(state)

    # -- handlers ----------------------------------------------------------

    async def _on_connected(self, event: ChatEvent) -> None:
        if event.conversation_id:
            self._conversation_id = event.conversation_id
            self._sender.conversation_id = event.conversation_id
            self._receipts.set_conversation_id(event.conversation_id)
        self._receipts.seed(event.last_read_message_id, event.unread_count)

        if event.resync_recommended or event.last_message_id:
            logger.info(
                "Resyncing conversation (resync_recommended=%s, last_message_id=%s)",
                event.resync_recommended, event.last_message_id,
            )
            try:
                await self._resync()
            except AppError as exc:
                logger.warning("Resync failed: %s", exc.detail)

    async def _on_ping(self, event: ChatEvent) -> None:
        pass

    async def _on_message_created(self, event: ChatEvent) -> None:
        message: Message = event.payload
        if not self._sender.reconcile(message):
            return

        if self._viewport.at_bottom:
            self._listener.on_scroll_to_bottom()
        else:
            self._viewport.has_new_messages = True
            self._listener.on_new_messages_available()

    async def _on_message_updated(self, event: ChatEvent) -> None:
        message: Message = event.payload
        if message.id is None:
            return
        if message.deleted_at is not None:
            changed = self._store.apply_tombstone(message.id, message.deleted_at)
        else:
            changed = self._store.apply_update(message.id, editable_fields(message))
        if changed:
            self._on_messages_changed()
        else:
            logger.debug("Update for %s changed nothing", message.id)

    async def _on_message_deleted(self, event: ChatEvent) -> None:
        deletion: MessageDeletion = event.payload
        if self._store.apply_tombstone(deletion.message_id, deletion.deleted_at):
            self._on_messages_changed()

    async def _on_typing_started(self, event: ChatEvent) -> None:
        signal: TypingSignal = event.payload
        self._typing.start(signal.user_id, signal.display_name)

    async def _on_typing_stopped(self, event: ChatEvent) -> None:
        signal: TypingSignal = event.payload
        self._typing.stop(signal.user_id)

    async def _on_read_updated(self, event: ChatEvent) -> None:
        receipt: ReadReceipt = event.payload
        self._receipts.apply_remote(receipt)
