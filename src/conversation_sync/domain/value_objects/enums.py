from __future__ import annotations

from enum import StrEnum


class SenderKind(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"
    SYSTEM = "system"


class DeliveryStatus(StrEnum):
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ChatEventType(StrEnum):
    CONNECTED = "connected"
    PING = "ping"
    MESSAGE_CREATED = "message.created"
    MESSAGE_UPDATED = "message.updated"
    MESSAGE_DELETED = "message.deleted"
    TYPING_STARTED = "typing.started"
    TYPING_STOPPED = "typing.stopped"
    READ_UPDATED = "read.updated"
