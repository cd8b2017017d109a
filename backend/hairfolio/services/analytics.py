"""
Hairfolio Backend: Analytics Aggregator
========================================

What:  Engagement counters and derived metrics for each designer.
How:   Every event is a small mutation of DesignerRecord.stats applied
       through the persistence gateway as a compare-and-set update
       (`atomic_counters`, the default) or as a plain whole-record
       read-modify-write when that is switched off.
Who:   TryOnController (views, trial results, bookings), designer routes
       (visits, summary, reset).

Derived metrics:
    popularStyles   top 5 of styleViews by count, descending; equal counts
                    keep first-insertion order. Recomputed on every view.
    conversionRate  Σbookings / Σviews × 100, or 0 when there are no views.
                    Recomputed on every booking.

Events for designers without a stored record are ignored. Persistence
failures are logged and never raised to the caller.
"""

import logging
from typing import List, Mapping, Optional

from hairfolio.schemas.designer import (
    MAX_TRIAL_RESULTS,
    POPULAR_STYLES_LIMIT,
    AnalyticsSummary,
    DesignerRecord,
    DesignerStats,
    TopStyle,
    TrialResult,
    now_iso,
)
from hairfolio.services.persistence import Mutation, PersistenceGateway, WriteOutcome
from hairfolio.services.session_tracker import SessionVisitTracker

logger = logging.getLogger(__name__)


# ── Ranking helpers ───────────────────────────────────────────────────────


def rank_styles(counts: Mapping[str, int], limit: int = POPULAR_STYLES_LIMIT) -> List[str]:
    """Style refs by count descending; ties keep insertion order (stable sort)."""
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [url for url, _ in ranked[:limit]]


def top_style(counts: Mapping[str, int]) -> Optional[TopStyle]:
    ranked = rank_styles(counts, limit=1)
    if not ranked:
        return None
    return TopStyle(url=ranked[0], count=counts[ranked[0]])


def conversion_rate(stats: DesignerStats) -> float:
    total_views = sum(stats.style_views.values())
    total_bookings = sum(stats.bookings.values())
    if total_views == 0:
        return 0.0
    return total_bookings / total_views * 100


class AnalyticsAggregator:
    """
    Records engagement events and summarizes them.

    Usage:
        analytics = AnalyticsAggregator(gateway)
        await analytics.track_style_view("kim", "https://.../bob.jpg")
        summary = await analytics.summarize("kim")
    """

    def __init__(self, gateway: PersistenceGateway, atomic_counters: bool = True):
        self.gateway = gateway
        self.atomic_counters = atomic_counters

    async def _apply(self, designer_id: str, event: str, mutate: Mutation) -> Optional[WriteOutcome]:
        if self.atomic_counters:
            outcome = await self.gateway.update_atomic(designer_id, mutate)
        else:
            outcome = await self.gateway.update(designer_id, mutate)

        if outcome is None:
            logger.debug("Ignoring %s for unknown designer '%s'", event, designer_id)
        elif not outcome.success:
            logger.warning(
                "%s for '%s' not saved remotely (local=%s): %s",
                event,
                designer_id,
                outcome.local_ok,
                outcome.remote_error,
            )
        return outcome

    # ══════════════════════════════════════════════════════════════════════
    # Events
    # ══════════════════════════════════════════════════════════════════════

    async def track_visit(self, designer_id: str, tracker: SessionVisitTracker) -> bool:
        """
        Count one portfolio visit, at most once per (designer, session).

        Returns True when this call incremented the counter.
        """
        if not tracker.should_track(designer_id):
            return False

        def mutate(record: DesignerRecord) -> None:
            record.stats.visits += 1
            record.stats.last_updated = now_iso()

        outcome = await self._apply(designer_id, "visit", mutate)
        if outcome is None:
            # Unknown designer: leave the session unmarked.
            tracker.discard(designer_id)
            return False
        return True

    async def track_style_view(self, designer_id: str, style_ref: str) -> None:
        def mutate(record: DesignerRecord) -> None:
            stats = record.stats
            stats.style_views[style_ref] = stats.style_views.get(style_ref, 0) + 1
            stats.total_try_ons += 1
            stats.popular_styles = rank_styles(stats.style_views)
            stats.last_updated = now_iso()

        await self._apply(designer_id, "style view", mutate)

    async def track_booking(self, designer_id: str, style_ref: str) -> None:
        def mutate(record: DesignerRecord) -> None:
            stats = record.stats
            stats.bookings[style_ref] = stats.bookings.get(style_ref, 0) + 1
            stats.conversion_rate = conversion_rate(stats)
            stats.last_updated = now_iso()

        await self._apply(designer_id, "booking", mutate)

    async def record_trial_result(self, designer_id: str, entry: TrialResult) -> None:
        """Prepend a try-on outcome; only the newest MAX_TRIAL_RESULTS are kept."""

        def mutate(record: DesignerRecord) -> None:
            stats = record.stats
            stats.trial_results = [entry, *stats.trial_results][:MAX_TRIAL_RESULTS]
            stats.last_updated = now_iso()

        await self._apply(designer_id, "trial result", mutate)

    async def reset_analytics(self, designer_id: str) -> bool:
        """
        Replace stats with the zeroed default shape and a fresh lastUpdated.

        Returns whether the remote save succeeded (False for unknown designers).
        """

        def mutate(record: DesignerRecord) -> None:
            record.stats = DesignerStats(last_updated=now_iso())

        outcome = await self.gateway.update(designer_id, mutate)
        if outcome is None:
            return False
        if outcome.success:
            logger.info("Analytics reset for designer '%s'", designer_id)
        else:
            logger.warning(
                "Analytics reset for '%s' kept locally only: %s",
                designer_id,
                outcome.remote_error,
            )
        return outcome.success

    # ══════════════════════════════════════════════════════════════════════
    # Read model
    # ══════════════════════════════════════════════════════════════════════

    async def summarize(self, designer_id: str) -> AnalyticsSummary:
        stats = (await self.gateway.read(designer_id)).stats
        return AnalyticsSummary(
            visits=stats.visits,
            total_views=sum(stats.style_views.values()),
            total_bookings=sum(stats.bookings.values()),
            conversion_rate=stats.conversion_rate,
            top_viewed_style=top_style(stats.style_views),
            top_booked_style=top_style(stats.bookings),
            popular_styles=list(stats.popular_styles),
            trial_results=list(stats.trial_results),
            last_updated=stats.last_updated,
        )
