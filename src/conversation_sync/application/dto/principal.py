from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """The signed-in user the engine acts for.

    ``party`` is the wire ``senderType`` this user's messages carry
    (``"client"`` for tenants, ``"wrk"`` for the build team).
    """

    user_id: str
    display_name: str
    party: str = "client"
