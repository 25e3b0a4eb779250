"""SSE transport and end-to-end wiring against an httpx MockTransport."""
from __future__ import annotations

import json

import httpx
import pytest

from conversation_sync.app import create_engine
from conversation_sync.application.exceptions import TransportError
from conversation_sync.config import Settings
from conversation_sync.infrastructure.sse.transport import HttpEventStream
from tests.conftest import CONVERSATION_ID, RecordingListener, encode_frame, wait_for

EVENTS_PATH = f"/conversations/{CONVERSATION_ID}/events"


def _sse_body(*frames: str) -> bytes:
    return ": hello\n\n".encode() + "".join(frames).encode()


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url="http://testserver/api", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_open_yields_frames_and_sends_last_event_id():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream; charset=utf-8"},
            content=_sse_body(
                encode_frame('{"type":"connected"}', id="10"),
                encode_frame("{}", event="ping"),
            ),
        )

    async with _client(handler) as client:
        stream = HttpEventStream(client, EVENTS_PATH)
        frames = [frame async for frame in stream.open(last_event_id="9")]

    assert [(f.event, f.id) for f in frames] == [("message", "10"), ("ping", "10")]
    assert seen[0].headers["Last-Event-ID"] == "9"
    assert seen[0].headers["Accept"] == "text/event-stream"


@pytest.mark.asyncio
async def test_open_rejects_error_status():
    async with _client(lambda request: httpx.Response(401)) as client:
        stream = HttpEventStream(client, EVENTS_PATH)
        with pytest.raises(TransportError) as exc_info:
            async for _ in stream.open():
                pass

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_open_rejects_wrong_content_type():
    async with _client(lambda request: httpx.Response(200, json={"ok": True})) as client:
        stream = HttpEventStream(client, EVENTS_PATH)
        with pytest.raises(TransportError):
            async for _ in stream.open():
                pass


@pytest.mark.asyncio
async def test_create_engine_wires_rest_and_stream(principal):
    message = {
        "id": "m1",
        "conversationId": CONVERSATION_ID,
        "senderType": "wrk",
        "senderUserId": "wrk-7",
        "body": "Inspection booked",
        "createdAt": "2024-05-01T12:00:00Z",
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/events"):
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=_sse_body(encode_frame(
                    json.dumps({"type": "message.created", "payload": message}), id="1",
                )),
            )
        if request.url.path.endswith("/messages"):
            return httpx.Response(200, json={"conversationId": CONVERSATION_ID, "messages": []})
        return httpx.Response(204)

    config = Settings(API_BASE_URL="http://testserver/api", RECONNECT_DELAY_SECONDS=0.01)
    client = _client(handler)
    listener = RecordingListener()
    engine = create_engine(CONVERSATION_ID, principal, listener, config=config, client=client)

    async with engine:
        await wait_for(lambda: engine.store.get("m1") is not None)
        assert engine.events.last_event_id == "1"

    assert [m.id for m in listener.snapshots[-1]] == ["m1"]
    await client.aclose()
