from __future__ import annotations

import secrets
import time
from typing import NewType

CorrelationId = NewType("CorrelationId", str)


def new_correlation_id() -> CorrelationId:
    """Millisecond timestamp plus a random suffix; unique without a server round trip."""
    return CorrelationId(f"client_{time.time_ns() // 1_000_000}_{secrets.token_hex(6)}")
