"""
Hairfolio Backend: Try-On Controller Tests
===========================================

What:  The try-on state machine with fake collaborators.
How:   FakeDescriber / FakeComposer (conftest) record their calls and can
       be held on an asyncio.Event to reproduce resets mid-flight.

What we test:
    ✅ Happy path: idle → analyzing → generating → done, analytics recorded
    ✅ Validation failures call nothing and leave the state unchanged
    ✅ Describe failure never reaches compose
    ✅ Reset and newer requests discard stale results
    ✅ Booking returns the reservation link
"""

import asyncio

import pytest

from hairfolio.exceptions import ExternalServiceError, NoImageProducedError, ValidationError
from hairfolio.services.tryon import ERROR_PREFIX, TryOnController, TryOnState

FACE = "/api/files/faces/2026/10/19/face.jpg"
STYLE = "https://styles.example/wolf-cut.jpg"


@pytest.fixture
def controller(designer, analytics, portfolio, describer, composer):
    return TryOnController(
        designer_id=designer,
        analytics=analytics,
        describer=describer,
        composer=composer,
        reservation_lookup=portfolio.get_reservation_url,
    )


async def _wait_for_state(controller, state):
    for _ in range(100):
        if controller.state == state:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"controller never reached {state}")


class TestHappyPath:

    @pytest.mark.asyncio
    async def test_done_with_result(self, controller, describer, composer):
        snapshot = await controller.start_try_on(STYLE, FACE, style_name="Wolf cut")

        assert snapshot.state == "done"
        assert snapshot.result_url == composer.result_url
        assert snapshot.keywords == describer.keywords
        assert snapshot.style_name == "Wolf cut"
        assert snapshot.error is None
        assert describer.calls == [STYLE]
        assert composer.calls == [(FACE, STYLE, describer.keywords)]

    @pytest.mark.asyncio
    async def test_analytics_recorded(self, controller, gateway, designer, composer):
        await controller.start_try_on(STYLE, FACE, style_name="Wolf cut")

        stats = (await gateway.read(designer)).stats
        assert stats.style_views == {STYLE: 1}
        assert stats.total_try_ons == 1
        assert len(stats.trial_results) == 1
        assert stats.trial_results[0].result_url == composer.result_url
        assert stats.trial_results[0].style_name == "Wolf cut"

    @pytest.mark.asyncio
    async def test_passes_through_generating(self, controller, composer):
        composer.gate = asyncio.Event()
        task = asyncio.create_task(controller.start_try_on(STYLE, FACE))

        await _wait_for_state(controller, TryOnState.GENERATING)
        assert controller.snapshot().keywords is not None

        composer.gate.set()
        assert (await task).state == "done"


class TestValidation:

    @pytest.mark.asyncio
    async def test_missing_face_photo(self, controller, describer, composer, gateway, designer):
        with pytest.raises(ValidationError, match="face photo"):
            await controller.start_try_on(STYLE, None)

        assert controller.state is TryOnState.IDLE
        assert describer.calls == []
        assert composer.calls == []
        assert (await gateway.read(designer)).stats.style_views == {}

    @pytest.mark.asyncio
    async def test_blank_style(self, controller, describer):
        with pytest.raises(ValidationError):
            await controller.start_try_on("  ", FACE)
        assert describer.calls == []

    @pytest.mark.asyncio
    async def test_validation_keeps_previous_result(self, controller):
        first = await controller.start_try_on(STYLE, FACE)
        with pytest.raises(ValidationError):
            await controller.start_try_on(STYLE, "")
        assert controller.snapshot().result_url == first.result_url
        assert controller.state is TryOnState.DONE


class TestFailures:

    @pytest.mark.asyncio
    async def test_describe_failure_skips_compose(self, controller, describer, composer):
        describer.error = RuntimeError("model overloaded\nstack dump line")

        snapshot = await controller.start_try_on(STYLE, FACE)
        assert snapshot.state == "error"
        assert snapshot.error == f"{ERROR_PREFIX}: model overloaded"
        assert composer.calls == []
        assert controller.last_error.stage == "describe"

    @pytest.mark.asyncio
    async def test_compose_without_image(self, controller, composer, gateway, designer):
        composer.error = NoImageProducedError()

        snapshot = await controller.start_try_on(STYLE, FACE)
        assert snapshot.state == "error"
        assert "did not return an image" in snapshot.error
        assert controller.last_error.stage == "compose"
        # The view was counted, no trial was recorded.
        stats = (await gateway.read(designer)).stats
        assert stats.style_views == {STYLE: 1}
        assert stats.trial_results == []

    @pytest.mark.asyncio
    async def test_external_error_kept_as_is(self, controller, composer):
        error = ExternalServiceError(stage="compose", reason="quota exhausted")
        composer.error = error
        await controller.start_try_on(STYLE, FACE)
        assert controller.last_error is error

    @pytest.mark.asyncio
    async def test_retry_after_error(self, controller, describer):
        describer.error = RuntimeError("timeout")
        await controller.start_try_on(STYLE, FACE)

        describer.error = None
        snapshot = await controller.start_try_on(STYLE, FACE)
        assert snapshot.state == "done"
        assert snapshot.error is None

    @pytest.mark.asyncio
    async def test_tracking_failure_does_not_block(self, controller, analytics):
        async def broken(*args):
            raise RuntimeError("analytics down")

        analytics.track_style_view = broken
        snapshot = await controller.start_try_on(STYLE, FACE)
        assert snapshot.state == "done"


class TestStaleResults:

    @pytest.mark.asyncio
    async def test_reset_during_analyzing(self, controller, describer, composer, gateway, designer):
        describer.gate = asyncio.Event()
        task = asyncio.create_task(controller.start_try_on(STYLE, FACE))

        await describer.started.wait()
        assert controller.state is TryOnState.ANALYZING

        snapshot = controller.reset()
        assert snapshot.state == "idle"

        describer.gate.set()
        await task

        assert controller.state is TryOnState.IDLE
        assert controller.snapshot().keywords is None
        assert composer.calls == []
        assert (await gateway.read(designer)).stats.trial_results == []

    @pytest.mark.asyncio
    async def test_reset_during_generating(self, controller, composer):
        composer.gate = asyncio.Event()
        task = asyncio.create_task(controller.start_try_on(STYLE, FACE))
        await _wait_for_state(controller, TryOnState.GENERATING)

        controller.reset()
        composer.gate.set()
        await task

        assert controller.state is TryOnState.IDLE
        assert controller.snapshot().result_url is None

    @pytest.mark.asyncio
    async def test_failure_after_reset_is_ignored(self, controller, describer):
        describer.gate = asyncio.Event()
        describer.error = RuntimeError("late failure")
        task = asyncio.create_task(controller.start_try_on(STYLE, FACE))
        await describer.started.wait()

        controller.reset()
        describer.gate.set()
        await task

        assert controller.state is TryOnState.IDLE
        assert controller.last_error is None

    @pytest.mark.asyncio
    async def test_newer_request_wins(self, controller, describer, composer):
        other_style = "https://styles.example/pixie.jpg"
        gate = asyncio.Event()
        describer.gate = gate
        first = asyncio.create_task(controller.start_try_on(STYLE, FACE))
        await describer.started.wait()

        describer.gate = None
        second = await controller.start_try_on(other_style, FACE)
        assert second.state == "done"
        assert second.style_url == other_style

        # Release the first request; its result must not overwrite the second.
        gate.set()
        await first

        assert controller.snapshot().style_url == other_style
        assert [call[1] for call in composer.calls] == [other_style]

    @pytest.mark.asyncio
    async def test_tokens_increase(self, controller):
        assert controller.request_token == 0
        await controller.start_try_on(STYLE, FACE)
        controller.reset()
        assert controller.request_token == 2


class TestBooking:

    @pytest.mark.asyncio
    async def test_returns_reservation_url(self, controller, portfolio, gateway, designer):
        await portfolio.save_reservation_url(designer, "https://book.example/kim")

        url = await controller.book_now(STYLE)
        assert url == "https://book.example/kim"
        assert (await gateway.read(designer)).stats.bookings == {STYLE: 1}

    @pytest.mark.asyncio
    async def test_without_reservation_url(self, controller, gateway, designer):
        assert await controller.book_now(STYLE) is None
        assert (await gateway.read(designer)).stats.bookings == {STYLE: 1}

    @pytest.mark.asyncio
    async def test_blank_style_rejected(self, controller):
        with pytest.raises(ValidationError):
            await controller.book_now("")
