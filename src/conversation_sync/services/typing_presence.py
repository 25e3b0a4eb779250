"""Ephemeral "is typing" presence of remote users."""
from __future__ import annotations

import logging
from collections.abc import Callable

from conversation_sync.application.ports.clock import Clock, SystemClock
from conversation_sync.application.timers import TimerRegistry
from conversation_sync.domain.entities.typing_state import TypingState

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_SECONDS = 3.0


class TypingPresenceTracker:
    """Each ``start`` (re)arms a per-user expiry timer; ``stop`` disarms it.

    Whichever of ``stop`` or expiry comes first removes the user.
    """

    def __init__(
        self,
        self_user_id: str,
        *,
        expiry_seconds: float = DEFAULT_EXPIRY_SECONDS,
        clock: Clock | None = None,
        on_change: Callable[[frozenset[TypingState]], None] | None = None,
    ) -> None:
        self._self_user_id = self_user_id
        self._expiry_seconds = expiry_seconds
        self._clock = clock or SystemClock()
        self._on_change = on_change
        self._states: dict[str, TypingState] = {}
        self._timers = TimerRegistry()

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    def active_users(self) -> frozenset[TypingState]:
        return frozenset(self._states.values())

    def is_typing(self, user_id: str) -> bool:
        return user_id in self._states

    def start(self, user_id: str, display_name: str) -> None:
        if user_id == self._self_user_id:
            return
        self._states[user_id] = TypingState(
            user_id=user_id,
            display_name=display_name,
            started_at=self._clock.now(),
        )
        self._timers.set(user_id, self._expiry_seconds, lambda: self._expire(user_id))
        self._changed()

    def stop(self, user_id: str) -> None:
        self._timers.cancel(user_id)
        if self._states.pop(user_id, None) is not None:
            self._changed()

    def close(self) -> None:
        self._timers.clear_all()
        if self._states:
            self._states.clear()
            self._changed()

    def _expire(self, user_id: str) -> None:
        if self._states.pop(user_id, None) is not None:
            logger.debug("Typing presence expired for %s", user_id)
            self._changed()

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self.active_users())
