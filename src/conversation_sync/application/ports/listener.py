from __future__ import annotations

from conversation_sync.domain.entities.message import Message
from conversation_sync.domain.entities.typing_state import TypingState
from conversation_sync.domain.value_objects.enums import ConnectionState


class SyncListener:
    """UI-facing callbacks. Subclass and override what the view needs."""

    def on_messages_changed(self, messages: list[Message]) -> None:
        pass

    def on_scroll_to_bottom(self) -> None:
        pass

    def on_new_messages_available(self) -> None:
        pass

    def on_typing_changed(self, users: frozenset[TypingState]) -> None:
        pass

    def on_read_state_changed(self, last_read_message_id: str | None, unread_count: int) -> None:
        pass

    def on_connection_state_changed(self, state: ConnectionState) -> None:
        pass
