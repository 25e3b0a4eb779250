from __future__ import annotations

import uuid
from contextvars import ContextVar

import httpx

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")

HEADER = "X-Request-ID"


async def attach_request_id(request: httpx.Request) -> None:
    """httpx request hook: tag every outgoing call with a request id."""
    if HEADER not in request.headers:
        request.headers[HEADER] = request_id_ctx.get() or uuid.uuid4().hex
