from __future__ import annotations

import asyncio

import pytest

from conversation_sync.application.exceptions import (
    ConflictError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from conversation_sync.domain.message_store import MessageStore
from conversation_sync.domain.value_objects.enums import DeliveryStatus, SenderKind
from conversation_sync.services.optimistic_send import OptimisticSendController
from tests.conftest import CONVERSATION_ID, FakeChatApi, FixedClock, at, make_message


@pytest.fixture
def api() -> FakeChatApi:
    return FakeChatApi()


@pytest.fixture
def store() -> MessageStore:
    return MessageStore()


@pytest.fixture
def changes() -> list[int]:
    return []


@pytest.fixture
def sender(store, api, principal, changes) -> OptimisticSendController:
    return OptimisticSendController(
        store, api, principal, CONVERSATION_ID,
        clock=FixedClock(),
        on_change=lambda: changes.append(1),
    )


@pytest.mark.asyncio
async def test_send_inserts_placeholder_immediately(sender, store):
    cid = sender.send("  hi there  ")

    placeholder = store.get_by_correlation_id(cid)
    assert placeholder.id is None
    assert placeholder.body == "hi there"
    assert placeholder.delivery_status == DeliveryStatus.SENDING
    assert placeholder.sender_kind == SenderKind.LOCAL
    assert sender.pending() == [cid]
    await sender.close()


@pytest.mark.asyncio
async def test_send_confirms_from_create_response(sender, store, api):
    cid = sender.send("hi")
    await sender.drain()

    assert len(store) == 1
    confirmed = store.get_by_correlation_id(cid)
    assert confirmed.id == f"srv-{cid}"
    assert confirmed.delivery_status == DeliveryStatus.SENT
    assert api.created == [(cid, "hi")]
    assert sender.pending() == []


@pytest.mark.asyncio
async def test_send_rejects_empty_body(sender, store, api):
    with pytest.raises(ValidationError):
        sender.send("   ")

    assert len(store) == 0
    assert api.created == []


@pytest.mark.asyncio
async def test_failed_send_marks_placeholder_failed(sender, store, api):
    api.create_error = TransportError("POST /messages returned 500", status_code=500)

    cid = sender.send("hi")
    await sender.drain()

    placeholder = store.get_by_correlation_id(cid)
    assert placeholder.delivery_status == DeliveryStatus.FAILED
    assert placeholder.id is None
    assert sender.pending() == [cid]


@pytest.mark.asyncio
async def test_retry_resends_with_same_correlation_id(sender, store, api):
    api.create_error = TransportError("boom")
    cid = sender.send("hi")
    await sender.drain()

    api.create_error = None
    sender.retry(cid)
    assert store.get_by_correlation_id(cid).delivery_status == DeliveryStatus.SENDING
    await sender.drain()

    assert [c for c, _ in api.created] == [cid, cid]
    assert store.get_by_correlation_id(cid).delivery_status == DeliveryStatus.SENT
    assert len(store) == 1


@pytest.mark.asyncio
async def test_retry_requires_failed_placeholder(sender, api):
    api.create_gate = asyncio.Event()
    cid = sender.send("hi")

    with pytest.raises(ConflictError):
        sender.retry(cid)
    with pytest.raises(NotFoundError):
        sender.retry("client_0_unknown")

    api.create_gate.set()
    await sender.drain()
    with pytest.raises(NotFoundError):
        sender.retry(cid)


@pytest.mark.asyncio
async def test_pushed_echo_before_response_yields_one_entry(sender, store, api, changes):
    api.create_gate = asyncio.Event()
    cid = sender.send("hi")

    echo = make_message(
        id=f"srv-{cid}", correlation_id=cid, sender_kind=SenderKind.LOCAL, body="hi", created_at=at(0),
    )
    assert sender.reconcile(echo) is True
    notified = len(changes)

    api.create_gate.set()
    await sender.drain()

    assert len(store) == 1
    assert store.get(f"srv-{cid}").delivery_status == DeliveryStatus.SENT
    assert len(changes) == notified


@pytest.mark.asyncio
async def test_reconcile_without_correlation_id_appends(sender, store):
    assert sender.reconcile(make_message(id="m1")) is True
    assert sender.reconcile(make_message(id="m1")) is False
    assert len(store) == 1


@pytest.mark.asyncio
async def test_placeholder_never_sorts_before_newest(store, api, principal):
    store.append(make_message(id="m1", created_at=at(30)))
    sender = OptimisticSendController(store, api, principal, CONVERSATION_ID, clock=FixedClock(at(0)))

    cid = sender.send("late clock")

    assert store.snapshot()[-1].correlation_id == cid
    await sender.close()


@pytest.mark.asyncio
async def test_close_cancels_in_flight_sends(sender, api):
    api.create_gate = asyncio.Event()
    sender.send("hi")
    await asyncio.sleep(0)

    await sender.close()
    await sender.drain()

    assert len(sender.pending()) == 1
