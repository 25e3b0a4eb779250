from __future__ import annotations

DEFAULT_AT_BOTTOM_THRESHOLD_PX = 100


class Viewport:
    """Whether the message list is anchored at the bottom, as reported by the view."""

    def __init__(self, threshold_px: float = DEFAULT_AT_BOTTOM_THRESHOLD_PX) -> None:
        self.threshold_px = threshold_px
        self.at_bottom = True
        self.has_new_messages = False

    def is_near_bottom(self, scroll_top: float, scroll_height: float, client_height: float) -> bool:
        return scroll_height - scroll_top - client_height < self.threshold_px

    def set_at_bottom(self, at_bottom: bool) -> bool:
        """Record the anchor state; True when this is a scrolled-up → bottom transition."""
        arrived = at_bottom and not self.at_bottom
        self.at_bottom = at_bottom
        if at_bottom:
            self.has_new_messages = False
        return arrived
