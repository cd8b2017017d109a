"""
Hairfolio Backend: Session Registry Tests
==========================================
"""

import pytest

from hairfolio.services.color_tryon import ColorTryOnController
from hairfolio.services.session_registry import SessionRegistry
from hairfolio.services.tryon import TryOnController


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(analytics, portfolio, describer, composer, color_analyzer, color_transformer, clock):
    def factory(designer_id):
        return TryOnController(designer_id, analytics, describer, composer, portfolio.get_reservation_url)

    def color_factory(designer_id):
        return ColorTryOnController(designer_id, analytics, color_analyzer, color_transformer)

    return SessionRegistry(factory, ttl_seconds=60, clock=clock, color_controller_factory=color_factory)


class TestSessionRegistry:

    def test_get_creates_once(self, registry):
        first = registry.get("session-a")
        assert registry.get("session-a") is first
        assert len(registry) == 1

    def test_controller_per_designer(self, registry):
        kim = registry.controller("session-a", "kim")
        assert registry.controller("session-a", "kim") is kim
        assert registry.controller("session-a", "lee") is not kim
        assert registry.controller("session-b", "kim") is not kim

    def test_idle_sessions_expire(self, registry, clock):
        session = registry.get("session-a")
        session.tracker.should_track("kim")

        clock.now += 61
        assert registry.peek("session-a") is None
        assert len(session.tracker) == 0
        assert registry.get("session-a") is not session

    def test_activity_keeps_session_alive(self, registry, clock):
        session = registry.get("session-a")
        clock.now += 50
        registry.get("session-a")
        clock.now += 50
        assert registry.peek("session-a") is session

    def test_close_ends_session(self, registry):
        session = registry.get("session-a")
        session.tracker.should_track("kim")
        controller = registry.controller("session-a", "kim")
        token = controller.request_token

        assert registry.close("session-a") is True
        assert registry.close("session-a") is False
        assert len(session.tracker) == 0
        assert controller.request_token == token + 1

    def test_close_all(self, registry):
        registry.get("session-a")
        registry.get("session-b")
        registry.close_all()
        assert len(registry) == 0

    def test_color_controller_per_designer(self, registry):
        kim = registry.color_controller("session-a", "kim")
        assert registry.color_controller("session-a", "kim") is kim
        assert registry.color_controller("session-b", "kim") is not kim
        assert registry.controller("session-a", "kim") is not kim

    def test_close_resets_color_controllers(self, registry):
        controller = registry.color_controller("session-a", "kim")
        token = controller.request_token

        registry.close("session-a")
        assert controller.request_token == token + 1
        assert registry.color_controller("session-a", "kim") is not controller

    def test_color_pipeline_required(self, analytics, describer, composer, portfolio):
        registry = SessionRegistry(
            lambda designer_id: TryOnController(
                designer_id, analytics, describer, composer, portfolio.get_reservation_url
            )
        )
        with pytest.raises(RuntimeError):
            registry.color_controller("session-a", "kim")
