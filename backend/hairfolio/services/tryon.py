"""
Hairfolio Backend: Try-On Controller
=====================================

What:  The client try-on pipeline for one designer's portfolio, as a small
       state machine.
How:   start_try_on runs describe → compose in sequence. Every invocation
       takes a new request token; after each await the stage checks that its
       token is still current and otherwise does nothing, so a reset or a
       newer try-on silently wins. No network call is cancelled.
Who:   One controller per (client session, designer), held by the
       SessionRegistry and driven by the try-on routes.

States:
    idle ──start──▶ analyzing ──keywords──▶ generating ──image──▶ done
                        │                        │
                        └────── failure ─────────┴──▶ error
    reset(): any state ──▶ idle

Analytics:
    track_style_view   when a try-on starts, before any result is known
    record_trial_result after a successful composite
    track_booking      on book_now
"""

import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from hairfolio.exceptions import ExternalServiceError, ValidationError, describe_reason
from hairfolio.schemas.api import TryOnSnapshot
from hairfolio.schemas.designer import TrialResult
from hairfolio.services.analytics import AnalyticsAggregator
from hairfolio.services.tryon_base import CompositeGenerationService, StyleDescriptionService

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Hairstyle apply failed"

ReservationLookup = Callable[[str], Awaitable[Optional[str]]]


class TryOnState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    GENERATING = "generating"
    DONE = "done"
    ERROR = "error"


class TryOnController:
    """
    Pipeline state machine for a single client looking at a single designer.

    Usage:
        controller = TryOnController("kim", analytics, describer, composer, lookup)
        snapshot = await controller.start_try_on(style_url, face_url)
        if snapshot.state == "done":
            show(snapshot.result_url)
    """

    def __init__(
        self,
        designer_id: str,
        analytics: AnalyticsAggregator,
        describer: StyleDescriptionService,
        composer: CompositeGenerationService,
        reservation_lookup: ReservationLookup,
    ):
        self.designer_id = designer_id
        self.analytics = analytics
        self.describer = describer
        self.composer = composer
        self.reservation_lookup = reservation_lookup

        self._token = 0
        self._state = TryOnState.IDLE
        self._style_url: Optional[str] = None
        self._style_name: Optional[str] = None
        self._keywords: Optional[str] = None
        self._result_url: Optional[str] = None
        self.last_error: Optional[ExternalServiceError] = None

    # ── State ─────────────────────────────────────────────────────────────

    @property
    def state(self) -> TryOnState:
        return self._state

    @property
    def request_token(self) -> int:
        return self._token

    def _is_current(self, token: int) -> bool:
        return token == self._token

    def _clear(self) -> None:
        self._style_url = None
        self._style_name = None
        self._keywords = None
        self._result_url = None
        self.last_error = None

    def snapshot(self) -> TryOnSnapshot:
        return TryOnSnapshot(
            state=self._state.value,
            style_url=self._style_url,
            style_name=self._style_name,
            keywords=self._keywords,
            result_url=self._result_url,
            error=(
                f"{ERROR_PREFIX}: {self.last_error.reason}" if self.last_error else None
            ),
            request_token=self._token,
        )

    def _fail(self, stage: str, error: Exception) -> None:
        if isinstance(error, ExternalServiceError):
            self.last_error = error
        else:
            self.last_error = ExternalServiceError(stage=stage, reason=describe_reason(error))
        self._state = TryOnState.ERROR
        logger.warning(
            "Try-on for '%s' failed at %s: %s",
            self.designer_id,
            stage,
            self.last_error.reason,
        )

    # ══════════════════════════════════════════════════════════════════════
    # Operations
    # ══════════════════════════════════════════════════════════════════════

    async def start_try_on(
        self,
        style_ref: str,
        face_photo: Optional[str],
        style_name: Optional[str] = None,
    ) -> TryOnSnapshot:
        """
        Run the pipeline for one hairstyle.

        Stage failures end in the `error` state and are reported in the
        returned snapshot, not raised.

        Raises:
            ValidationError: no face photo or blank style reference. Nothing
                is called and the state is unchanged.
        """
        if not face_photo:
            raise ValidationError(
                message="Please upload a face photo first.",
                field="face_photo",
            )
        if not style_ref or not style_ref.strip():
            raise ValidationError(message="A hairstyle must be selected.", field="style_url")

        self._token += 1
        token = self._token
        self._clear()
        self._style_url = style_ref
        self._style_name = style_name
        self._state = TryOnState.ANALYZING

        try:
            await self.analytics.track_style_view(self.designer_id, style_ref)
        except Exception as e:
            # Tracking never blocks a try-on.
            logger.error("Style view tracking failed for '%s': %s", self.designer_id, str(e))
        if not self._is_current(token):
            return self.snapshot()

        # ── Stage 1: describe ──
        try:
            keywords = await self.describer.describe(style_ref)
        except Exception as e:
            if self._is_current(token):
                self._fail("describe", e)
            return self.snapshot()
        if not self._is_current(token):
            logger.debug("Discarding stale describe result (token %d)", token)
            return self.snapshot()

        self._keywords = keywords
        self._state = TryOnState.GENERATING

        # ── Stage 2: compose ──
        try:
            result_url = await self.composer.compose(face_photo, style_ref, keywords)
        except Exception as e:
            if self._is_current(token):
                self._fail("compose", e)
            return self.snapshot()
        if not self._is_current(token):
            logger.debug("Discarding stale composite (token %d)", token)
            return self.snapshot()

        self._result_url = result_url
        self._state = TryOnState.DONE
        logger.info("Try-on done for '%s' (style=%s)", self.designer_id, style_ref)

        await self.analytics.record_trial_result(
            self.designer_id,
            TrialResult(style_url=style_ref, result_url=result_url, style_name=style_name),
        )
        return self.snapshot()

    def reset(self) -> TryOnSnapshot:
        """Back to idle. Results of any in-flight request are discarded."""
        self._token += 1
        self._clear()
        self._state = TryOnState.IDLE
        return self.snapshot()

    async def book_now(self, style_ref: str) -> Optional[str]:
        """
        Count a booking for `style_ref` and return the designer's reservation
        URL (None when the designer has not configured one).
        """
        if not style_ref or not style_ref.strip():
            raise ValidationError(message="A hairstyle must be selected.", field="style_url")

        try:
            await self.analytics.track_booking(self.designer_id, style_ref)
        except Exception as e:
            logger.error("Booking tracking failed for '%s': %s", self.designer_id, str(e))

        return await self.reservation_lookup(self.designer_id)
