from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class TypingState:
    user_id: str
    display_name: str
    started_at: datetime
