"""
Hairfolio Backend: Session Visit Tracker
=========================================

What:  Per-browsing-session "already counted" markers, one per designer.
Who:   AnalyticsAggregator.track_visit; owned by a ClientSession.
When:  Markers live until the session is closed or expires.
"""

from typing import Set


class SessionVisitTracker:
    """Remembers which designers' visits were already counted in this session."""

    def __init__(self) -> None:
        self._tracked: Set[str] = set()

    def should_track(self, designer_id: str) -> bool:
        """True only on the first call for `designer_id` within the session."""
        if designer_id in self._tracked:
            return False
        self._tracked.add(designer_id)
        return True

    def is_tracked(self, designer_id: str) -> bool:
        return designer_id in self._tracked

    def discard(self, designer_id: str) -> None:
        """Drop one marker so the next visit counts again."""
        self._tracked.discard(designer_id)

    def clear(self) -> None:
        """Forget every marker (session ended)."""
        self._tracked.clear()

    def __len__(self) -> int:
        return len(self._tracked)
