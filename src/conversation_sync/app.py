from __future__ import annotations

import logging

import httpx

from conversation_sync.application.dto.principal import Principal
from conversation_sync.application.ports.listener import SyncListener
from conversation_sync.config import Settings, settings
from conversation_sync.infrastructure.http.client import HttpChatApi
from conversation_sync.infrastructure.http.request_id import attach_request_id
from conversation_sync.infrastructure.sse.codec import JsonEventCodec
from conversation_sync.infrastructure.sse.transport import HttpEventStream
from conversation_sync.services.sync_engine import SyncEngine

logger = logging.getLogger(__name__)


def create_http_client(config: Settings = settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=config.API_BASE_URL,
        headers=config.auth_headers,
        timeout=config.HTTP_TIMEOUT_SECONDS,
        event_hooks={"request": [attach_request_id]},
    )


def create_engine(
    conversation_id: str,
    principal: Principal,
    listener: SyncListener | None = None,
    *,
    config: Settings = settings,
    client: httpx.AsyncClient | None = None,
) -> SyncEngine:
    """Wire a ``SyncEngine`` against the REST and SSE endpoints in ``config``.

    When ``client`` is omitted the engine owns a fresh one and closes it on stop.
    """
    owns_client = client is None
    http = client or create_http_client(config)
    api = HttpChatApi(http, conversation_id, principal, owns_client=owns_client)
    stream = HttpEventStream(
        http,
        f"/conversations/{conversation_id}/events",
        connect_timeout=config.HTTP_TIMEOUT_SECONDS,
    )
    codec = JsonEventCodec(principal, accept_legacy_data_key=config.ACCEPT_LEGACY_DATA_KEY)
    logger.debug("Engine wired for %s at %s", conversation_id, config.API_BASE_URL)
    return SyncEngine(
        conversation_id,
        principal,
        api,
        stream,
        codec,
        listener=listener,
        reconnect_delay=config.RECONNECT_DELAY_SECONDS,
        typing_expiry=config.TYPING_EXPIRY_SECONDS,
        at_bottom_threshold_px=config.AT_BOTTOM_THRESHOLD_PX,
        history_page_size=config.HISTORY_PAGE_SIZE,
    )
