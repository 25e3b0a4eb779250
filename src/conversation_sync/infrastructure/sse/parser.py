"""Server-Sent Events framing (text/event-stream)."""
from __future__ import annotations

from conversation_sync.application.ports.stream import StreamFrame

DEFAULT_EVENT = "message"


class SseDecoder:
    """Line-fed decoder; returns a frame each time a blank line ends one.

    The last ``id:`` seen persists across frames, as ``EventSource`` does.
    """

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []
        self._retry_ms: int | None = None
        self.last_event_id: str | None = None

    def feed(self, line: str) -> StreamFrame | None:
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value
        elif name == "id":
            if "\0" not in value:
                self.last_event_id = value or None
        elif name == "retry":
            if value.isdigit():
                self._retry_ms = int(value)
        return None

    def _dispatch(self) -> StreamFrame | None:
        data, event, retry_ms = self._data, self._event, self._retry_ms
        self._data, self._event, self._retry_ms = [], "", None
        if not data:
            return None
        return StreamFrame(
            data="\n".join(data),
            event=event or DEFAULT_EVENT,
            id=self.last_event_id,
            retry_ms=retry_ms,
        )

