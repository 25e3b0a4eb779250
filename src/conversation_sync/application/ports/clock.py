from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    """Source of local timestamps: placeholder ``created_at``, locally applied
    deletions and typing ``started_at``. Server timestamps always win once a
    message is confirmed."""

    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        """Timezone-aware UTC, comparable with timestamps parsed off the wire."""
        return datetime.now(timezone.utc)
