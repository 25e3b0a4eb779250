"""Ordered, deduplicated message log for one conversation.

Entries are sorted by ``created_at``; equal timestamps keep insertion order.
A confirmed ``id`` and a ``correlation_id`` each identify at most one entry,
and a tombstoned entry is mutated in place, never removed.
"""
from __future__ import annotations

import bisect
import dataclasses
import logging
from collections.abc import Iterator, Mapping
from datetime import datetime
from typing import Any

from conversation_sync.domain.entities.message import Message
from conversation_sync.domain.value_objects.enums import DeliveryStatus

logger = logging.getLogger(__name__)

PATCHABLE_FIELDS = frozenset({"body", "attachments", "edited_at", "sender_name"})


def _created_at(message: Message) -> datetime:
    return message.created_at


def editable_fields(message: Message) -> dict[str, Any]:
    """The part of a confirmed message that an edit may change."""
    return {field: getattr(message, field) for field in sorted(PATCHABLE_FIELDS)}


class MessageStore:
    def __init__(self) -> None:
        self._entries: list[Message] = []
        self._by_id: dict[str, Message] = {}
        self._by_correlation_id: dict[str, Message] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._entries))

    def snapshot(self) -> list[Message]:
        return list(self._entries)

    def get(self, message_id: str) -> Message | None:
        return self._by_id.get(message_id)

    def get_by_correlation_id(self, correlation_id: str) -> Message | None:
        return self._by_correlation_id.get(correlation_id)

    def index_of(self, message_id: str) -> int | None:
        message = self._by_id.get(message_id)
        if message is None:
            return None
        return self._locate(message)

    def newest(self) -> Message | None:
        return self._entries[-1] if self._entries else None

    def newest_confirmed(self) -> Message | None:
        for message in reversed(self._entries):
            if message.is_confirmed:
                return message
        return None

    def oldest_confirmed(self) -> Message | None:
        for message in self._entries:
            if message.is_confirmed:
                return message
        return None

    def clear(self) -> None:
        self._entries.clear()
        self._by_id.clear()
        self._by_correlation_id.clear()

    # -- mutations ---------------------------------------------------------

    def append(self, message: Message) -> bool:
        """Insert ``message`` at its sorted position.

        Returns False without touching the store when an entry with the same
        id or correlation id is already present.
        """
        if message.id is not None and message.id in self._by_id:
            return False
        if message.correlation_id is not None and message.correlation_id in self._by_correlation_id:
            return False
        self._insert(message)
        return True

    def upsert_by_correlation_id(self, correlation_id: str, final: Message) -> bool:
        """Swap the unconfirmed placeholder for its confirmed counterpart.

        Falls back to :meth:`append` when no entry carries ``correlation_id``;
        a no-op when that entry is already confirmed.
        """
        if final.correlation_id != correlation_id:
            final = dataclasses.replace(final, correlation_id=correlation_id)

        placeholder = self._by_correlation_id.get(correlation_id)
        if placeholder is None:
            return self.append(final)
        if placeholder.is_confirmed:
            return False

        duplicate = self._by_id.get(final.id) if final.id is not None else None
        if duplicate is not None:
            # The confirmed copy already arrived without its correlation id.
            self._remove(placeholder)
            logger.debug(
                "Dropped placeholder %s, message %s already stored", correlation_id, final.id,
            )
            return True

        self._replace(placeholder, final)
        return True

    def apply_update(self, message_id: str, patch: Mapping[str, Any]) -> bool:
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be patched: {sorted(unknown)}")

        current = self._by_id.get(message_id)
        if current is None or current.is_deleted:
            return False

        updated = dataclasses.replace(current, **patch)
        if updated == current:
            return False
        self._replace(current, updated)
        return True

    def apply_tombstone(self, message_id: str, deleted_at: datetime) -> bool:
        current = self._by_id.get(message_id)
        if current is None or current.is_deleted:
            return False
        self._replace(
            current,
            dataclasses.replace(current, body="", attachments=(), deleted_at=deleted_at),
        )
        return True

    def set_delivery_status(self, correlation_id: str, status: DeliveryStatus) -> bool:
        current = self._by_correlation_id.get(correlation_id)
        if current is None or current.is_confirmed or current.delivery_status == status:
            return False
        self._replace(current, dataclasses.replace(current, delivery_status=status))
        return True

    # -- internals ---------------------------------------------------------

    def _insert(self, message: Message) -> None:
        entries = self._entries
        if not entries or entries[-1].created_at <= message.created_at:
            entries.append(message)
        else:
            position = bisect.bisect_right(entries, message.created_at, key=_created_at)
            entries.insert(position, message)
        self._index(message)

    def _replace(self, old: Message, new: Message) -> None:
        entries = self._entries
        position = self._locate(old)
        self._unindex(old)

        fits_before = position == 0 or entries[position - 1].created_at <= new.created_at
        fits_after = position == len(entries) - 1 or new.created_at <= entries[position + 1].created_at
        if fits_before and fits_after:
            entries[position] = new
            self._index(new)
        else:
            del entries[position]
            self._insert(new)

    def _remove(self, message: Message) -> None:
        del self._entries[self._locate(message)]
        self._unindex(message)

    def _locate(self, message: Message) -> int:
        entries = self._entries
        start = bisect.bisect_left(entries, message.created_at, key=_created_at)
        for position in range(start, len(entries)):
            if entries[position] is message:
                return position
        raise LookupError(f"Message not in store: id={message.id} cid={message.correlation_id}")

    def _index(self, message: Message) -> None:
        if message.id is not None:
            self._by_id[message.id] = message
        if message.correlation_id is not None:
            self._by_correlation_id[message.correlation_id] = message

    def _unindex(self, message: Message) -> None:
        if message.id is not None and self._by_id.get(message.id) is message:
            del self._by_id[message.id]
        if (
            message.correlation_id is not None
            and self._by_correlation_id.get(message.correlation_id) is message
        ):
            del self._by_correlation_id[message.correlation_id]
