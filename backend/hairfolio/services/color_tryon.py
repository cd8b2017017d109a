"""
Hairfolio Backend: Hair Colour Try-On Controller
=================================================

What:  The colour try-on pipeline for one designer's portfolio: the client's
       own hair is recoloured after a reference style, keeping cut, length
       and texture.
How:   Same state machine and request-token rule as TryOnController.
       analyzing:  colour style of the reference image, then the client's
                   hair and skin tone (a failed photo analysis falls back to
                   the neutral profile and the pipeline continues)
       generating: the recolouring itself
       A finished run carries a confidence score, a skin-tone match grade
       and aftercare recommendations.
Who:   One controller per (client session, designer), held by the
       SessionRegistry and driven by the colour try-on routes.

States:
    idle ──start──▶ analyzing ──analysis──▶ generating ──image──▶ done
                        │                        │
                        └────── failure ─────────┴──▶ error
    reset(): any state ──▶ idle

Analytics:
    track_style_view    when a colour try-on starts
    record_trial_result after a successful recolouring
"""

import logging
from typing import List, Optional

from hairfolio.exceptions import ExternalServiceError, ValidationError, describe_reason
from hairfolio.schemas.color import (
    ColorAnalysis,
    ColorAnalysisSummary,
    ColorTryOnOptions,
    ColorTryOnSnapshot,
    HairAnalysis,
    SkinToneAnalysis,
    SkinToneMatch,
    UserPhotoAnalysis,
)
from hairfolio.schemas.designer import TrialResult
from hairfolio.services.analytics import AnalyticsAggregator
from hairfolio.services.tryon import TryOnState
from hairfolio.services.tryon_base import HairColorAnalysisService, HairColorTransformService

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Hair colour apply failed"

CARE_TIPS = (
    "Use a colour-protecting shampoo to keep the shade longer.",
    "Wait two to three days before the first wash after colouring.",
    "Protect coloured hair from UV with a hat or a heat and UV protectant.",
    "Keep the hair healthy with a regular treatment.",
)


# ══════════════════════════════════════════════════════════════════════════
# Scoring
# ══════════════════════════════════════════════════════════════════════════


def calculate_confidence(hair: HairAnalysis, color: ColorAnalysis) -> float:
    """0.7 base, raised by clearly visible hair and a compatible reference colour."""
    confidence = 0.7
    if hair.clarity > 0.8:
        confidence += 0.15
    elif hair.clarity > 0.6:
        confidence += 0.1

    if color.compatibility > 0.8:
        confidence += 0.1
    elif color.compatibility > 0.6:
        confidence += 0.05

    return round(min(confidence, 1.0), 2)


def evaluate_skin_tone_match(skin: SkinToneAnalysis, color: ColorAnalysis) -> SkinToneMatch:
    suitable = [tone.lower() for tone in color.suitable_skin_tones]
    if skin.type.lower() in suitable:
        return "excellent"
    if "all" in suitable or "neutral" in suitable:
        return "good"
    if color.compatibility > 0.6:
        return "fair"
    return "poor"


def build_recommendations(skin: SkinToneAnalysis, match: SkinToneMatch) -> List[str]:
    tips = list(CARE_TIPS)
    if match in ("fair", "poor") and skin.suitable_colors:
        tips.insert(
            0,
            f"Shades that flatter {skin.type} skin tones: {', '.join(skin.suitable_colors)}.",
        )
    return tips


# ══════════════════════════════════════════════════════════════════════════
# Controller
# ══════════════════════════════════════════════════════════════════════════


class ColorTryOnController:
    """
    Colour pipeline state machine for a single client looking at a single designer.

    Usage:
        controller = ColorTryOnController("kim", analytics, analyzer, transformer)
        snapshot = await controller.start_color_try_on(
            style_url, face_url, ColorTryOnOptions(color_type="balayage")
        )
    """

    def __init__(
        self,
        designer_id: str,
        analytics: AnalyticsAggregator,
        analyzer: HairColorAnalysisService,
        transformer: HairColorTransformService,
    ):
        self.designer_id = designer_id
        self.analytics = analytics
        self.analyzer = analyzer
        self.transformer = transformer

        self._token = 0
        self._state = TryOnState.IDLE
        self._style_url: Optional[str] = None
        self._style_name: Optional[str] = None
        self._options: Optional[ColorTryOnOptions] = None
        self._result_url: Optional[str] = None
        self._confidence: Optional[float] = None
        self._summary: Optional[ColorAnalysisSummary] = None
        self.last_error: Optional[ExternalServiceError] = None

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
        self._options = None
        self._result_url = None
        self._confidence = None
        self._summary = None
        self.last_error = None

    def snapshot(self) -> ColorTryOnSnapshot:
        return ColorTryOnSnapshot(
            state=self._state.value,
            style_url=self._style_url,
            style_name=self._style_name,
            color_type=self._options.color_type if self._options else None,
            intensity=self._options.intensity if self._options else None,
            result_url=self._result_url,
            confidence=self._confidence,
            color_analysis=self._summary,
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
            "Colour try-on for '%s' failed at %s: %s",
            self.designer_id,
            stage,
            self.last_error.reason,
        )

    # ══════════════════════════════════════════════════════════════════════
    # Operations
    # ══════════════════════════════════════════════════════════════════════

    async def start_color_try_on(
        self,
        style_ref: str,
        face_photo: Optional[str],
        options: Optional[ColorTryOnOptions] = None,
        style_name: Optional[str] = None,
    ) -> ColorTryOnSnapshot:
        """
        Recolour the client's hair after one reference style.

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
            raise ValidationError(message="A colour style must be selected.", field="style_url")

        self._token += 1
        token = self._token
        self._clear()
        self._style_url = style_ref
        self._style_name = style_name
        self._options = options or ColorTryOnOptions()
        self._state = TryOnState.ANALYZING

        try:
            await self.analytics.track_style_view(self.designer_id, style_ref)
        except Exception as e:
            # Tracking never blocks a try-on.
            logger.error("Style view tracking failed for '%s': %s", self.designer_id, str(e))
        if not self._is_current(token):
            return self.snapshot()

        # ── Stage 1: analysis ──
        try:
            color = await self.analyzer.analyze_color_style(style_ref)
        except Exception as e:
            if self._is_current(token):
                self._fail("color_analysis", e)
            return self.snapshot()
        if not self._is_current(token):
            logger.debug("Discarding stale colour analysis (token %d)", token)
            return self.snapshot()

        try:
            user = await self.analyzer.analyze_user_photo(face_photo)
        except Exception as e:
            logger.warning(
                "Face photo analysis failed for '%s', using the neutral profile: %s",
                self.designer_id,
                describe_reason(e),
            )
            user = UserPhotoAnalysis()
        if not self._is_current(token):
            logger.debug("Discarding stale photo analysis (token %d)", token)
            return self.snapshot()

        self._state = TryOnState.GENERATING

        # ── Stage 2: recolour ──
        try:
            result_url = await self.transformer.apply_color(face_photo, user, color, self._options)
        except Exception as e:
            if self._is_current(token):
                self._fail("color_transform", e)
            return self.snapshot()
        if not self._is_current(token):
            logger.debug("Discarding stale recolouring (token %d)", token)
            return self.snapshot()

        match = evaluate_skin_tone_match(user.skin_tone_analysis, color)
        self._result_url = result_url
        self._confidence = calculate_confidence(user.hair_analysis, color)
        self._summary = ColorAnalysisSummary(
            dominant_colors=color.dominant_colors,
            skin_tone_match=match,
            recommendations=build_recommendations(user.skin_tone_analysis, match),
        )
        self._state = TryOnState.DONE
        logger.info(
            "Colour try-on done for '%s' (style=%s, type=%s, match=%s)",
            self.designer_id,
            style_ref,
            self._options.color_type,
            match,
        )

        await self.analytics.record_trial_result(
            self.designer_id,
            TrialResult(style_url=style_ref, result_url=result_url, style_name=style_name),
        )
        return self.snapshot()

    def reset(self) -> ColorTryOnSnapshot:
        """Back to idle. Results of any in-flight request are discarded."""
        self._token += 1
        self._clear()
        self._state = TryOnState.IDLE
        return self.snapshot()
