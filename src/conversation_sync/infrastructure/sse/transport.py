"""httpx streaming implementation of the ``EventStream`` port."""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import httpx

from conversation_sync.application.exceptions import TransportError
from conversation_sync.application.ports.stream import StreamFrame
from conversation_sync.infrastructure.sse.parser import SseDecoder

logger = logging.getLogger(__name__)

CONTENT_TYPE = "text/event-stream"


class HttpEventStream:
    def __init__(
        self,
        client: httpx.AsyncClient,
        path: str,
        *,
        connect_timeout: float = 10.0,
    ) -> None:
        self._client = client
        self._path = path
        # Reads block until the server pushes; only connecting is bounded.
        self._timeout = httpx.Timeout(connect_timeout, read=None)

    async def open(self, last_event_id: str | None = None) -> AsyncIterator[StreamFrame]:
        headers = {"Accept": CONTENT_TYPE, "Cache-Control": "no-cache"}
        if last_event_id:
            headers["Last-Event-ID"] = last_event_id

        try:
            async with self._client.stream(
                "GET", self._path, headers=headers, timeout=self._timeout,
            ) as response:
                if response.status_code != 200:
                    raise TransportError(
                        f"Event stream returned {response.status_code}",
                        status_code=response.status_code,
                    )
                content_type = response.headers.get("content-type", "")
                if not content_type.startswith(CONTENT_TYPE):
                    raise TransportError(f"Unexpected event stream content type: {content_type!r}")

                logger.debug("Event stream open: %s", self._path)
                decoder = SseDecoder()
                async for line in response.aiter_lines():
                    frame = decoder.feed(line)
                    if frame is not None:
                        yield frame
        except httpx.HTTPError as exc:
            raise TransportError(f"Event stream failed: {exc}") from exc
