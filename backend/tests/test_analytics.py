"""
Hairfolio Backend: Analytics Aggregator Tests
==============================================

What we test:
    ✅ Visits counted once per session
    ✅ Style views, totalTryOns, popularStyles (top 5, stable ties)
    ✅ Bookings and conversion rate
    ✅ Trial history capped at 20, newest first
    ✅ Reset and summary read model
    ✅ No lost increments with atomic counters; the read-modify-write race when they are off
"""

import asyncio

import pytest

from hairfolio.schemas.designer import DesignerStats, TrialResult
from hairfolio.services.analytics import (
    AnalyticsAggregator,
    conversion_rate,
    rank_styles,
    top_style,
)
from hairfolio.services.session_tracker import SessionVisitTracker

STYLE_A = "https://styles.example/a.jpg"
STYLE_B = "https://styles.example/b.jpg"
STYLE_C = "https://styles.example/c.jpg"


class TestRanking:

    def test_rank_by_count_descending(self):
        assert rank_styles({STYLE_A: 1, STYLE_B: 3, STYLE_C: 2}) == [STYLE_B, STYLE_C, STYLE_A]

    def test_ties_keep_insertion_order(self):
        assert rank_styles({STYLE_C: 2, STYLE_A: 2, STYLE_B: 2}) == [STYLE_C, STYLE_A, STYLE_B]

    def test_limited_to_five(self):
        counts = {f"style-{i}": i for i in range(8)}
        assert rank_styles(counts) == ["style-7", "style-6", "style-5", "style-4", "style-3"]

    def test_top_style_empty(self):
        assert top_style({}) is None

    def test_conversion_rate_without_views(self):
        assert conversion_rate(DesignerStats(bookings={STYLE_A: 2})) == 0.0

    def test_conversion_rate_not_clamped(self):
        stats = DesignerStats(style_views={STYLE_A: 1}, bookings={STYLE_A: 3})
        assert conversion_rate(stats) == pytest.approx(300.0)


class TestVisits:

    @pytest.mark.asyncio
    async def test_counted_once_per_session(self, analytics, gateway, designer):
        tracker = SessionVisitTracker()
        assert await analytics.track_visit(designer, tracker) is True
        assert await analytics.track_visit(designer, tracker) is False
        assert (await gateway.read(designer)).stats.visits == 1

    @pytest.mark.asyncio
    async def test_new_session_counts_again(self, analytics, gateway, designer):
        await analytics.track_visit(designer, SessionVisitTracker())
        await analytics.track_visit(designer, SessionVisitTracker())
        assert (await gateway.read(designer)).stats.visits == 2

    @pytest.mark.asyncio
    async def test_unknown_designer_not_marked(self, analytics, remote_store):
        tracker = SessionVisitTracker()
        assert await analytics.track_visit("nobody", tracker) is False
        assert tracker.is_tracked("nobody") is False
        assert remote_store.writes == 0


class TestStyleViews:

    @pytest.mark.asyncio
    async def test_views_accumulate(self, analytics, gateway, designer):
        for _ in range(3):
            await analytics.track_style_view(designer, STYLE_A)

        stats = (await gateway.read(designer)).stats
        assert stats.style_views == {STYLE_A: 3}
        assert stats.total_try_ons == 3
        assert stats.popular_styles == [STYLE_A]

    @pytest.mark.asyncio
    async def test_popular_styles_recomputed(self, analytics, gateway, designer):
        await analytics.track_style_view(designer, STYLE_A)
        await analytics.track_style_view(designer, STYLE_B)
        await analytics.track_style_view(designer, STYLE_B)
        await analytics.track_style_view(designer, STYLE_C)

        stats = (await gateway.read(designer)).stats
        assert stats.popular_styles == [STYLE_B, STYLE_A, STYLE_C]

    @pytest.mark.asyncio
    async def test_popular_styles_capped(self, analytics, gateway, designer):
        for i in range(7):
            await analytics.track_style_view(designer, f"https://styles.example/{i}.jpg")

        stats = (await gateway.read(designer)).stats
        assert len(stats.style_views) == 7
        assert len(stats.popular_styles) == 5
        assert stats.popular_styles[0] == "https://styles.example/0.jpg"

    @pytest.mark.asyncio
    async def test_remote_failure_does_not_raise(self, analytics, remote_store, local_store, designer):
        remote_store.available = False
        await analytics.track_style_view(designer, STYLE_A)
        assert local_store.get(designer)["stats"]["styleViews"] == {STYLE_A: 1}


class TestBookings:

    @pytest.mark.asyncio
    async def test_conversion_rate(self, analytics, gateway, designer):
        for _ in range(3):
            await analytics.track_style_view(designer, STYLE_A)
        await analytics.track_booking(designer, STYLE_A)

        stats = (await gateway.read(designer)).stats
        assert stats.bookings == {STYLE_A: 1}
        assert stats.conversion_rate == pytest.approx(33.333, rel=1e-3)

    @pytest.mark.asyncio
    async def test_booking_without_views(self, analytics, gateway, designer):
        await analytics.track_booking(designer, STYLE_A)
        assert (await gateway.read(designer)).stats.conversion_rate == 0.0


class TestTrialResults:

    @pytest.mark.asyncio
    async def test_newest_first(self, analytics, gateway, designer):
        await analytics.record_trial_result(designer, TrialResult(style_url=STYLE_A, result_url="r1"))
        await analytics.record_trial_result(designer, TrialResult(style_url=STYLE_B, result_url="r2"))

        results = (await gateway.read(designer)).stats.trial_results
        assert [r.result_url for r in results] == ["r2", "r1"]

    @pytest.mark.asyncio
    async def test_capped_at_twenty(self, analytics, gateway, designer):
        for i in range(25):
            await analytics.record_trial_result(
                designer, TrialResult(style_url=STYLE_A, result_url=f"r{i}")
            )

        results = (await gateway.read(designer)).stats.trial_results
        assert len(results) == 20
        assert results[0].result_url == "r24"
        assert results[-1].result_url == "r5"


class TestResetAndSummary:

    @pytest.mark.asyncio
    async def test_reset_zeroes_stats(self, analytics, gateway, designer):
        tracker = SessionVisitTracker()
        await analytics.track_visit(designer, tracker)
        await analytics.track_style_view(designer, STYLE_A)
        await analytics.track_booking(designer, STYLE_A)

        assert await analytics.reset_analytics(designer) is True

        stats = (await gateway.read(designer)).stats
        assert stats.visits == 0
        assert stats.style_views == {}
        assert stats.bookings == {}
        assert stats.popular_styles == []
        assert stats.trial_results == []
        assert stats.conversion_rate == 0.0

    @pytest.mark.asyncio
    async def test_reset_remote_failure(self, analytics, remote_store, designer):
        remote_store.available = False
        assert await analytics.reset_analytics(designer) is False

    @pytest.mark.asyncio
    async def test_reset_unknown_designer(self, analytics):
        assert await analytics.reset_analytics("nobody") is False

    @pytest.mark.asyncio
    async def test_summary(self, analytics, designer):
        await analytics.track_style_view(designer, STYLE_A)
        await analytics.track_style_view(designer, STYLE_B)
        await analytics.track_style_view(designer, STYLE_B)
        await analytics.track_booking(designer, STYLE_A)

        summary = await analytics.summarize(designer)
        assert summary.total_views == 3
        assert summary.total_bookings == 1
        assert summary.top_viewed_style.url == STYLE_B
        assert summary.top_viewed_style.count == 2
        assert summary.top_booked_style.url == STYLE_A
        assert summary.conversion_rate == pytest.approx(33.333, rel=1e-3)

    @pytest.mark.asyncio
    async def test_summary_of_empty_record(self, analytics, designer):
        summary = await analytics.summarize(designer)
        assert summary.visits == 0
        assert summary.top_viewed_style is None
        assert summary.popular_styles == []


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_read_modify_write_can_lose_increments(self, gateway, designer):
        plain = AnalyticsAggregator(gateway, atomic_counters=False)
        await asyncio.gather(
            plain.track_style_view(designer, STYLE_A),
            plain.track_style_view(designer, STYLE_A),
        )
        # Both writers read the same snapshot; the last write wins.
        assert (await gateway.read(designer)).stats.style_views[STYLE_A] == 1

    @pytest.mark.asyncio
    async def test_atomic_counters_keep_every_increment(self, gateway, designer):
        atomic = AnalyticsAggregator(gateway, atomic_counters=True)
        await asyncio.gather(*(atomic.track_style_view(designer, STYLE_A) for _ in range(4)))

        stats = (await gateway.read(designer)).stats
        assert stats.style_views[STYLE_A] == 4
        assert stats.total_try_ons == 4
