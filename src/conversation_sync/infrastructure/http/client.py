"""httpx implementation of the ``ChatApi`` port."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx
from pydantic import ValidationError

from conversation_sync.application.dto.principal import Principal
from conversation_sync.application.dto.snapshot import ConversationSnapshot
from conversation_sync.application.exceptions import FetchError, TransportError
from conversation_sync.domain.entities.message import Attachment, Message
from conversation_sync.infrastructure.http.mappers import attachment_to_schema, schema_to_entity
from conversation_sync.infrastructure.http.schemas import (
    CreateMessageRequest,
    MarkReadRequest,
    MessageResponse,
    MessagesPageResponse,
    TypingRequest,
    UpdateMessageRequest,
)

logger = logging.getLogger(__name__)


class HttpChatApi:
    """REST calls for one conversation, relative to the client's ``base_url``."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        conversation_id: str,
        principal: Principal,
        *,
        owns_client: bool = False,
    ) -> None:
        self._client = client
        self._conversation_id = conversation_id
        self._principal = principal
        self._owns_client = owns_client

    @property
    def base_path(self) -> str:
        return f"/conversations/{self._conversation_id}"

    async def fetch_messages(
        self,
        *,
        limit: int | None = None,
        before: str | None = None,
    ) -> ConversationSnapshot:
        params: dict[str, Any] = {}
        if limit is not None:
            params["limit"] = limit
        if before is not None:
            params["before"] = before

        try:
            response = await self._request("GET", f"{self.base_path}/messages", params=params)
            page = MessagesPageResponse.model_validate_json(response.content)
        except TransportError as exc:
            raise FetchError(exc.detail, status_code=exc.status_code) from exc
        except ValidationError as exc:
            raise FetchError(f"Unexpected messages response: {exc.error_count()} error(s)") from exc

        # Newest first on the wire.
        messages = [schema_to_entity(m, self._principal) for m in reversed(page.messages)]
        logger.debug("Fetched %d message(s) for %s", len(messages), page.conversation_id)
        return ConversationSnapshot(
            conversation_id=page.conversation_id,
            messages=messages,
            last_read_message_id=page.last_read_message_id,
            unread_count=page.unread_count,
        )

    async def create_message(
        self,
        body: str,
        correlation_id: str,
        attachments: Sequence[Attachment] = (),
    ) -> Message:
        request = CreateMessageRequest(
            body=body,
            correlation_id=correlation_id,
            attachments=[attachment_to_schema(a) for a in attachments],
        )
        response = await self._request(
            "POST", f"{self.base_path}/messages", json=request.model_dump(by_alias=True),
        )
        return self._message_from(response)

    async def update_message(self, message_id: str, body: str) -> Message:
        request = UpdateMessageRequest(body=body)
        response = await self._request(
            "PATCH",
            f"{self.base_path}/messages/{message_id}",
            json=request.model_dump(by_alias=True),
        )
        return self._message_from(response)

    async def delete_message(self, message_id: str) -> None:
        await self._request("DELETE", f"{self.base_path}/messages/{message_id}")

    async def mark_read(self, last_read_message_id: str) -> None:
        request = MarkReadRequest(last_read_message_id=last_read_message_id)
        await self._request(
            "POST", f"{self.base_path}/read", json=request.model_dump(by_alias=True),
        )

    async def set_typing(self, is_typing: bool) -> None:
        request = TypingRequest(is_typing=is_typing)
        await self._request(
            "POST", f"{self.base_path}/typing", json=request.model_dump(by_alias=True),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransportError(
                f"{method} {url} returned {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc
        return response

    def _message_from(self, response: httpx.Response) -> Message:
        try:
            envelope = MessageResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise TransportError(
                f"Unexpected message response: {exc.error_count()} error(s)",
                status_code=response.status_code,
            ) from exc
        return schema_to_entity(envelope.message, self._principal)
