"""Entrypoint: python -m conversation_sync <conversation_id> --user-id ..."""
from __future__ import annotations

import argparse
import asyncio
import logging

from conversation_sync.app import create_engine
from conversation_sync.application.dto.principal import Principal
from conversation_sync.application.ports.listener import SyncListener
from conversation_sync.config import settings
from conversation_sync.domain.entities.message import Message
from conversation_sync.domain.entities.typing_state import TypingState
from conversation_sync.domain.value_objects.enums import ConnectionState

logger = logging.getLogger("conversation_sync.watch")


class LoggingListener(SyncListener):
    """Prints conversation activity to the log as it happens."""

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def on_messages_changed(self, messages: list[Message]) -> None:
        for message in messages:
            if not message.is_confirmed or message.id in self._seen:
                continue
            self._seen.add(message.id)
            logger.info(
                "[%s] %s: %s",
                message.created_at.isoformat(timespec="seconds"),
                message.sender_name or message.sender_kind,
                "<deleted>" if message.is_deleted else message.body,
            )

    def on_typing_changed(self, users: frozenset[TypingState]) -> None:
        if users:
            logger.info("Typing: %s", ", ".join(sorted(u.display_name for u in users)))

    def on_read_state_changed(self, last_read_message_id: str | None, unread_count: int) -> None:
        logger.info("Read up to %s, %d unread", last_read_message_id, unread_count)

    def on_connection_state_changed(self, state: ConnectionState) -> None:
        logger.info("Connection %s", state)


async def _watch(args: argparse.Namespace) -> None:
    principal = Principal(user_id=args.user_id, display_name=args.name or args.user_id, party=args.party)
    async with create_engine(args.conversation_id, principal, LoggingListener()) as engine:
        for body in args.send:
            engine.send(body)
        await engine.drain()
        if args.once:
            return
        await asyncio.Event().wait()


def main() -> None:
    parser = argparse.ArgumentParser(prog="conversation_sync", description="Follow a conversation")
    parser.add_argument("conversation_id")
    parser.add_argument("--user-id", required=True)
    parser.add_argument("--name")
    parser.add_argument("--party", default="client", choices=["client", "wrk"])
    parser.add_argument("--send", action="append", default=[], help="message to send after connecting")
    parser.add_argument("--once", action="store_true", help="exit after the initial fetch")
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(_watch(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
