from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from conversation_sync.application.dto.snapshot import ConversationSnapshot
from conversation_sync.domain.entities.message import Attachment, Message


class ChatApi(Protocol):
    """REST endpoints of one conversation."""

    async def fetch_messages(
        self,
        *,
        limit: int | None = None,
        before: str | None = None,
    ) -> ConversationSnapshot: ...

    async def create_message(
        self,
        body: str,
        correlation_id: str,
        attachments: Sequence[Attachment] = (),
    ) -> Message: ...

    async def update_message(self, message_id: str, body: str) -> Message: ...

    async def delete_message(self, message_id: str) -> None: ...

    async def mark_read(self, last_read_message_id: str) -> None: ...

    async def set_typing(self, is_typing: bool) -> None: ...

    async def aclose(self) -> None: ...
