"""
Hairfolio Backend: Client Session Registry
===========================================

What:  In-process registry of client browsing sessions, keyed by the
       X-Session-ID header.
How:   Each ClientSession owns a SessionVisitTracker, and one TryOnController
       and one ColorTryOnController per designer the client has opened.
       Sessions idle for longer than the TTL are pruned on access; close()
       ends one explicitly. Ending a session clears its visit markers and
       resets its controllers.
Who:   Designer and try-on routes, via the service container.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from hairfolio.services.color_tryon import ColorTryOnController
from hairfolio.services.session_tracker import SessionVisitTracker
from hairfolio.services.tryon import TryOnController

logger = logging.getLogger(__name__)

ControllerFactory = Callable[[str], TryOnController]
ColorControllerFactory = Callable[[str], ColorTryOnController]


@dataclass
class ClientSession:
    session_id: str
    tracker: SessionVisitTracker = field(default_factory=SessionVisitTracker)
    controllers: Dict[str, TryOnController] = field(default_factory=dict)
    color_controllers: Dict[str, ColorTryOnController] = field(default_factory=dict)
    last_seen: float = field(default_factory=time.monotonic)

    def end(self) -> None:
        self.tracker.clear()
        for controller in self.controllers.values():
            controller.reset()
        self.controllers.clear()
        for color_controller in self.color_controllers.values():
            color_controller.reset()
        self.color_controllers.clear()


class SessionRegistry:
    """Creates, looks up and expires client sessions."""

    def __init__(
        self,
        controller_factory: ControllerFactory,
        ttl_seconds: int = 1800,
        clock: Callable[[], float] = time.monotonic,
        color_controller_factory: Optional[ColorControllerFactory] = None,
    ):
        self._factory = controller_factory
        self._color_factory = color_controller_factory
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, ClientSession] = {}

    def _prune(self) -> None:
        now = self._clock()
        expired = [
            sid for sid, s in self._sessions.items() if now - s.last_seen > self.ttl_seconds
        ]
        for sid in expired:
            self._sessions.pop(sid).end()
        if expired:
            logger.info("Expired %d idle client session(s)", len(expired))

    def get(self, session_id: str) -> ClientSession:
        """Return the live session for `session_id`, creating it when needed."""
        self._prune()
        session = self._sessions.get(session_id)
        if session is None:
            session = ClientSession(session_id=session_id, last_seen=self._clock())
            self._sessions[session_id] = session
            logger.debug("Started client session %s", session_id)
        session.last_seen = self._clock()
        return session

    def peek(self, session_id: str) -> Optional[ClientSession]:
        self._prune()
        return self._sessions.get(session_id)

    def controller(self, session_id: str, designer_id: str) -> TryOnController:
        session = self.get(session_id)
        controller = session.controllers.get(designer_id)
        if controller is None:
            controller = self._factory(designer_id)
            session.controllers[designer_id] = controller
        return controller

    def color_controller(self, session_id: str, designer_id: str) -> ColorTryOnController:
        if self._color_factory is None:
            raise RuntimeError("No colour try-on pipeline is configured")
        session = self.get(session_id)
        controller = session.color_controllers.get(designer_id)
        if controller is None:
            controller = self._color_factory(designer_id)
            session.color_controllers[designer_id] = controller
        return controller

    def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.end()
        logger.debug("Closed client session %s", session_id)
        return True

    def close_all(self) -> None:
        for session in self._sessions.values():
            session.end()
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)
