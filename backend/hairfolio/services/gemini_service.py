"""
Hairfolio Backend: Google Gemini Try-On Services
=================================================

What:  Gemini implementations of the try-on collaborators:
       GeminiStyleDescriptionService (keywords from a reference image),
       GeminiCompositeService (face photo + reference image → new image),
       GeminiHairColorAnalysisService (JSON colour and skin tone analysis)
       and GeminiHairColorTransformService (recoloured face photo).
How:   Images are resolved by ImageLoader and sent inline. Each service is
       wrapped in its own circuit breaker. There are no retries and no
       request timeout: a failed call is reported to the caller, and a
       stalled call waits until the client resets.
Who:   Built once by the service container; called by TryOnController and
       ColorTryOnController.

Resilience Strategy:
    1. Circuit breaker per service to fail fast while Gemini is down
    2. Every failure wrapped in ExternalServiceError with a short reason
    3. Detailed logging with a per-call id and latency
"""

import hashlib
import json
import logging
import re
import time
import uuid
from collections import OrderedDict
from typing import Any, Dict, Optional

import google.generativeai as genai

from hairfolio.exceptions import (
    CircuitBreakerOpenError,
    ExternalServiceError,
    NoImageProducedError,
    ValidationError,
    describe_reason,
)
from hairfolio.schemas.color import ColorAnalysis, ColorTryOnOptions, UserPhotoAnalysis
from hairfolio.services.file_service import FileService
from hairfolio.services.image_loader import ImageLoader
from hairfolio.services.tryon_base import (
    CompositeGenerationService,
    HairColorAnalysisService,
    HairColorTransformService,
    StyleDescriptionService,
)

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Implements the circuit breaker pattern to prevent cascade failures.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow ONE request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Thread Safety:
        Not thread-safe (plain counters). Fine for a single asyncio worker.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60, stage: str = "describe"):
        """
        Args:
            failure_threshold: Consecutive failures before opening circuit
            recovery_timeout: Seconds to wait before testing recovery
            stage: Pipeline stage reported when the circuit rejects a call
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.stage = stage
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through the circuit breaker.

        Raises:
            CircuitBreakerOpenError if circuit is OPEN and recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker (%s) transitioning to HALF_OPEN after %.1fs",
                    self.stage,
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(stage=self.stage, recovery_time=remaining)

        # HALF_OPEN: allow the test request through
        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker (%s) transitioning to CLOSED (service recovered)", self.stage)
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker (%s) returning to OPEN (test request failed)", self.stage)
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker (%s) OPENING after %d consecutive failures",
                self.stage,
                self.failure_count,
            )
            self.state = self.OPEN


def configure_gemini(api_key: str) -> bool:
    """Configures the SDK's module-level credentials. False when no key is set."""
    if api_key and api_key != "your_gemini_api_key_here":
        genai.configure(api_key=api_key)
        return True
    logger.warning("GEMINI_API_KEY is not set; try-on calls will fail until it is configured")
    return False


class _GeminiStage:
    """Shared call wrapper: breaker check, latency logging, error translation."""

    stage = "describe"

    def __init__(self, model_name: str, image_loader: ImageLoader, circuit_breaker: CircuitBreaker):
        self.model_name = model_name
        self.model = genai.GenerativeModel(model_name)
        self.image_loader = image_loader
        self.circuit_breaker = circuit_breaker

    async def _guarded(self, call, *args):
        call_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()
        start_time = time.time()
        logger.info("[%s] Gemini %s started (model=%s)", call_id, self.stage, self.model_name)

        try:
            result = await call(*args)
        except ValidationError:
            # Unusable input reference; says nothing about Gemini's health.
            raise
        except NoImageProducedError:
            self.circuit_breaker.record_success()
            logger.warning("[%s] Gemini %s returned no image", call_id, self.stage)
            raise
        except Exception as e:
            self.circuit_breaker.record_failure()
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "[%s] Gemini %s failed after %.0fms: %s",
                call_id,
                self.stage,
                duration_ms,
                str(e),
            )
            if isinstance(e, ExternalServiceError):
                raise
            raise ExternalServiceError(
                stage=self.stage,
                reason=describe_reason(e),
                context={"call_id": call_id, "error_type": type(e).__name__},
            ) from e

        self.circuit_breaker.record_success()
        logger.info(
            "[%s] Gemini %s completed in %.0fms",
            call_id,
            self.stage,
            (time.time() - start_time) * 1000,
        )
        return result

    async def health_check(self) -> bool:
        """Healthy unless the breaker is currently rejecting calls."""
        return self.circuit_breaker.state != CircuitBreaker.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Stage 1: Style Description
# ══════════════════════════════════════════════════════════════════════════

class GeminiStyleDescriptionService(_GeminiStage, StyleDescriptionService):
    """Keywords for a reference hairstyle from a Gemini text model."""

    stage = "describe"

    DESCRIBE_PROMPT = """You are a hairstyle analysis expert. Your task is to analyze the provided image and extract the most important defining features of the hairstyle.
Provide your output as a concise, comma-separated list of keywords.
Focus on:
- **Style:** (e.g., layered bob, wolf cut, pixie, slicked back)
- **Texture:** (e.g., straight, wavy, curly, coily, fine, thick)
- **Color:** (e.g., platinum blonde, jet black, auburn, balayage)
- **Length:** (e.g., short, medium-length, long)
- **Key Features:** (e.g., side-swept bangs, center part, undercut, highlights)

Example output: medium-length, wavy, dark brown, center part, textured layers, curtain bangs

Do not use full sentences. Only provide the comma-separated keywords."""

    async def describe(self, image_ref: str) -> str:
        return await self._guarded(self._describe, image_ref)

    async def _describe(self, image_ref: str) -> str:
        style_image = await self.image_loader.load(image_ref)
        response = await self.model.generate_content_async(
            [style_image.as_part(), self.DESCRIBE_PROMPT]
        )
        keywords = response.text.strip() if response.text else ""
        logger.debug("Style keywords: %s", keywords)
        return keywords


# ══════════════════════════════════════════════════════════════════════════
# Stage 2: Composite Generation
# ══════════════════════════════════════════════════════════════════════════

class GeminiCompositeService(_GeminiStage, CompositeGenerationService):
    """Hair replacement with a Gemini image model; results stored via FileService."""

    stage = "compose"

    COMPOSE_PROMPT = """You are an expert digital artist specializing in hyper-realistic hair replacement. Your mission is to edit the person's photo ([PERSON_IMAGE]) to give them the **exact hairstyle** from the reference photo ([HAIRSTYLE_REFERENCE_IMAGE]).

**Your primary source of truth is the visual information in [HAIRSTYLE_REFERENCE_IMAGE]. The keywords provided are to guide your focus.**

**Core Directives:**
1.  **Visual Replication is Paramount:** Replicate the cut, shape and flow, the texture and volume, and the color and parting of the reference hairstyle.
2.  **Complete Replacement:** Entirely remove and replace the original hair from the [PERSON_IMAGE]. Do not blend or merge it with the new style.
3.  **Preserve the Subject:** Do NOT change the person's face, features, skin tone, expression, glasses, clothing, or the image background. The hair is the ONLY element to be changed.
4.  **Use Keywords as a Guide:** Use the [Guiding Keywords] to capture the most critical aspects of the hairstyle shown in the reference image.
5.  **Realistic Integration:** Match the lighting, shadows, and perspective of the [PERSON_IMAGE] so the result looks like a natural photograph.

**Inputs:**
-   **Image to Edit:** [PERSON_IMAGE] (first image)
-   **Hairstyle to Replicate:** [HAIRSTYLE_REFERENCE_IMAGE] (second image)
-   **Guiding Keywords:** {keywords}"""

    def __init__(
        self,
        model_name: str,
        image_loader: ImageLoader,
        circuit_breaker: CircuitBreaker,
        file_service: FileService,
    ):
        super().__init__(model_name, image_loader, circuit_breaker)
        self.file_service = file_service

    async def compose(self, face_ref: str, style_ref: str, keywords: str) -> str:
        return await self._guarded(self._compose, face_ref, style_ref, keywords)

    async def _compose(self, face_ref: str, style_ref: str, keywords: str) -> str:
        face_image = await self.image_loader.load(face_ref)
        style_image = await self.image_loader.load(style_ref)
        prompt = self.COMPOSE_PROMPT.format(keywords=keywords or "none")

        response = await self.model.generate_content_async(
            [face_image.as_part(), style_image.as_part(), prompt]
        )

        for candidate in response.candidates[:1]:
            for part in candidate.content.parts:
                inline = getattr(part, "inline_data", None)
                if inline and inline.data and (inline.mime_type or "").startswith("image/"):
                    return await self.file_service.store_generated(inline.data, inline.mime_type)

        raise NoImageProducedError(context={"model": self.model_name})


# ══════════════════════════════════════════════════════════════════════════
# Colour Pipeline: Analysis
# ══════════════════════════════════════════════════════════════════════════

_JSON_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


def extract_json_object(text: Optional[str]) -> Dict[str, Any]:
    """
    Parse the JSON object in a model answer.

    Accepts bare JSON, a fenced ```json block, or an object surrounded by
    prose.

    Raises:
        ValueError when no JSON object can be parsed.
    """
    text = (text or "").strip()
    try:
        parsed = json.loads(text)
    except ValueError:
        fenced = _JSON_FENCE.search(text)
        if fenced:
            text = fenced.group(1).strip()
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("Model answer contains no JSON object")
        parsed = json.loads(text[start:end + 1])

    if not isinstance(parsed, dict):
        raise ValueError("Model answer is not a JSON object")
    return parsed


class GeminiHairColorAnalysisService(_GeminiStage, HairColorAnalysisService):
    """
    Structured colour analysis with a Gemini text model.

    Reference analyses are cached per image reference (LRU), since the same
    portfolio images are analysed again and again.
    """

    stage = "color_analysis"

    ANALYSIS_CONFIG = {"temperature": 0.1, "top_k": 1, "top_p": 1.0, "max_output_tokens": 1000}

    COLOR_STYLE_PROMPT = """Analyze the hair color style in this image. Focus ONLY on the hair, not the background or skin.

Provide a JSON object with the following details:
{
  "dominantColors": ["#HEX1", "#HEX2", "#HEX3"],
  "technique": "full-color" | "highlight" | "ombre" | "balayage" | "unknown",
  "gradientPattern": "uniform" | "root-to-tip" | "natural-swept" | "defined-sections" | "subtle-blend" | "unknown",
  "difficulty": "easy" | "medium" | "hard",
  "suitableSkinTones": ["warm", "cool", "neutral", "all"],
  "compatibility": 0.0-1.0
}

IMPORTANT:
- Extract up to 3 dominant HAIR colors only (exclude background, skin, clothing)
- Identify the coloring technique used
- Provide HEX color codes (e.g., #8B4513 for brown)

Strictly output only the JSON object. Do not add any conversational text."""

    USER_PHOTO_PROMPT = """Analyze the person's hair and skin tone in this image. Provide a JSON object with the following details:
{
  "hairAnalysis": {
    "currentColor": "brown" | "black" | "blonde" | "red" | "gray" | "other",
    "texture": "straight" | "wavy" | "curly" | "coily",
    "length": "short" | "medium" | "long" | "very-long",
    "clarity": 0.0-1.0
  },
  "skinToneAnalysis": {
    "type": "warm" | "cool" | "neutral",
    "undertone": "peach" | "pink" | "olive" | "yellow" | "neutral",
    "rgbValue": "rgb(R, G, B)",
    "suitableColors": ["color1", "color2"],
    "avoidColors": ["color1", "color2"]
  }
}

IMPORTANT:
- Analyze the current natural hair color
- Identify hair texture and length
- Determine skin tone and undertone for color matching
- Provide clarity score (how clear/distinct the hair is)

Strictly output only the JSON object. Do not add any conversational text."""

    def __init__(
        self,
        model_name: str,
        image_loader: ImageLoader,
        circuit_breaker: CircuitBreaker,
        cache_size: int = 128,
    ):
        super().__init__(model_name, image_loader, circuit_breaker)
        self.cache_size = cache_size
        self._cache: "OrderedDict[str, ColorAnalysis]" = OrderedDict()

    async def analyze_color_style(self, image_ref: str) -> ColorAnalysis:
        key = hashlib.sha256(image_ref.encode("utf-8")).hexdigest()
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            logger.debug("Colour analysis cache hit for %s", image_ref[:80])
            return cached.model_copy(deep=True)

        analysis = await self._guarded(self._analyze_color_style, image_ref)
        self._cache[key] = analysis
        if len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        return analysis.model_copy(deep=True)

    async def _analyze_color_style(self, image_ref: str) -> ColorAnalysis:
        style_image = await self.image_loader.load(image_ref)
        response = await self.model.generate_content_async(
            [self.COLOR_STYLE_PROMPT, style_image.as_part()],
            generation_config=self.ANALYSIS_CONFIG,
        )
        analysis = ColorAnalysis.model_validate(extract_json_object(response.text))
        logger.debug("Reference colours: %s (%s)", analysis.dominant_colors, analysis.technique)
        return analysis

    async def analyze_user_photo(self, image_ref: str) -> UserPhotoAnalysis:
        return await self._guarded(self._analyze_user_photo, image_ref)

    async def _analyze_user_photo(self, image_ref: str) -> UserPhotoAnalysis:
        face_image = await self.image_loader.load(image_ref)
        response = await self.model.generate_content_async(
            [self.USER_PHOTO_PROMPT, face_image.as_part()],
            generation_config=self.ANALYSIS_CONFIG,
        )
        return UserPhotoAnalysis.model_validate(extract_json_object(response.text))


# ══════════════════════════════════════════════════════════════════════════
# Colour Pipeline: Transformation
# ══════════════════════════════════════════════════════════════════════════

class GeminiHairColorTransformService(_GeminiStage, HairColorTransformService):
    """Recolours the existing hair with a Gemini image model; results stored via FileService."""

    stage = "color_transform"

    TRANSFORM_CONFIG = {"temperature": 0.15, "top_k": 10, "top_p": 0.7}

    TRANSFORM_PROMPT = """HAIR COLOR TRANSFORMATION - STRICT ADHERENCE REQUIRED

GOAL: ONLY change hair color. Preserve ALL other aspects of the original image.

USER'S CURRENT HAIR:
- Current Color: {current_color}
- Texture: {texture}
- Length: {length}

TARGET COLORS: {color_description}
Primary Technique: {color_type}
{nuance}Intensity: {intensity}

CRITICAL INSTRUCTIONS - ABSOLUTE PRIORITY:

1. **HAIR SHAPE & STRUCTURE:** Maintain the original hair's EXACT SHAPE, CUT, LENGTH, LAYERS, and SILHOUETTE.
2. **HAIR TEXTURE:** Preserve the original hair's EXACT TEXTURE ({texture}), VOLUME, and NATURAL FLOW.
3. **FEATURES:** DO NOT alter the face, facial features, skin tone, body shape, clothing, background, or any non-hair elements.
4. **REALISM:** The result must be photorealistic. Seamlessly blend the new color into the existing hair strands, respecting natural highlights, shadows, and hair growth patterns.

WHAT TO DO:
- Apply the TARGET COLORS ({target_colors}) to the EXISTING hair area ONLY
- Implement the PRIMARY coloring TECHNIQUE: {color_type}
- Match the requested INTENSITY: {intensity}
- Ensure the new color follows the original hair's natural light and shadow contours
- Transform from current {current_color} hair to target colors naturally

WHAT NOT TO DO:
- DO NOT change the haircut or hair length in any way
- DO NOT add, remove, or modify hair strands, layers, or volume
- DO NOT introduce new styles or textures
- DO NOT deform or alter any part of the face or body
- DO NOT modify the background
- DO NOT copy hairstyle from any reference image
- DO NOT change the hair texture from {texture}

The transformed image should be indistinguishable from the original, except for the hair color.
Focus on meticulous color application within the existing hair boundaries.

This is a portrait photo. Maintain all details with photorealistic quality."""

    def __init__(
        self,
        model_name: str,
        image_loader: ImageLoader,
        circuit_breaker: CircuitBreaker,
        file_service: FileService,
    ):
        super().__init__(model_name, image_loader, circuit_breaker)
        self.file_service = file_service

    @classmethod
    def build_prompt(
        cls,
        user: UserPhotoAnalysis,
        color: ColorAnalysis,
        options: ColorTryOnOptions,
    ) -> str:
        """
        Fill the transformation prompt.

        An explicit `color_hex` leads the target colours, followed by the
        reference's dominant colours (three at most).
        """
        target_colors = list(color.dominant_colors)
        if options.color_hex:
            target_colors = [options.color_hex, *target_colors][:3]
        target_text = ", ".join(target_colors) or "the hair color of the reference style"
        color_description = (
            f"{options.color_name} ({target_text})" if options.color_name else target_text
        )
        nuance = ""
        if color.technique not in (options.color_type, "unknown"):
            nuance = (
                f"Reference Style Nuance: {color.technique} "
                "(use subtle elements if they complement the primary technique)\n"
            )

        hair = user.hair_analysis
        return cls.TRANSFORM_PROMPT.format(
            current_color=hair.current_color,
            texture=hair.texture,
            length=hair.length,
            color_description=color_description,
            target_colors=target_text,
            color_type=options.color_type,
            nuance=nuance,
            intensity=options.intensity,
        )

    async def apply_color(
        self,
        face_ref: str,
        user: UserPhotoAnalysis,
        color: ColorAnalysis,
        options: ColorTryOnOptions,
    ) -> str:
        return await self._guarded(self._apply_color, face_ref, user, color, options)

    async def _apply_color(
        self,
        face_ref: str,
        user: UserPhotoAnalysis,
        color: ColorAnalysis,
        options: ColorTryOnOptions,
    ) -> str:
        face_image = await self.image_loader.load(face_ref)
        response = await self.model.generate_content_async(
            [self.build_prompt(user, color, options), face_image.as_part()],
            generation_config=self.TRANSFORM_CONFIG,
        )

        for candidate in response.candidates[:1]:
            finish_reason = getattr(candidate, "finish_reason", None)
            if getattr(finish_reason, "name", finish_reason) == "SAFETY":
                raise NoImageProducedError(
                    stage=self.stage,
                    reason="The photo was blocked by the AI safety filter. Please try a different photo.",
                    context={"model": self.model_name},
                )
            for part in candidate.content.parts:
                inline = getattr(part, "inline_data", None)
                if inline and inline.data and (inline.mime_type or "").startswith("image/"):
                    return await self.file_service.store_generated(inline.data, inline.mime_type)

        raise NoImageProducedError(stage=self.stage, context={"model": self.model_name})
