"""
Hairfolio Backend: Hair Colour Try-On Schemas
==============================================

What:  Options, analysis results and snapshots of the colour try-on
       pipeline.
How:   Analysis models use camelCase aliases so Gemini's JSON answers
       validate directly. Scores from the model are clamped to [0, 1].
Who:   ColorTryOnController, Gemini colour services, colour try-on routes.
"""

from typing import List, Literal, Optional

from pydantic import Field, field_validator

from hairfolio.schemas.designer import CamelModel

ColorType = Literal["highlight", "full-color", "ombre", "balayage"]
Intensity = Literal["light", "medium", "bold"]
SkinToneMatch = Literal["excellent", "good", "fair", "poor"]


def _unit_interval(v: float) -> float:
    return min(max(float(v), 0.0), 1.0)


class ColorTryOnOptions(CamelModel):
    """How the client wants the colour applied."""

    color_type: ColorType = "full-color"
    intensity: Intensity = "medium"
    color_hex: Optional[str] = Field(
        default=None,
        pattern=r"^#[0-9A-Fa-f]{6}$",
        description="Explicit target colour; takes precedence over the reference colours",
    )
    color_name: Optional[str] = Field(default=None, max_length=100)


# ══════════════════════════════════════════════════════════════════════════
# Analysis results
# ══════════════════════════════════════════════════════════════════════════


class HairAnalysis(CamelModel):
    """The client's current hair, as seen on the face photo."""

    current_color: str = "brown"
    texture: str = "straight"
    length: str = "medium"
    clarity: float = 0.7

    @field_validator("clarity")
    @classmethod
    def clamp_clarity(cls, v: float) -> float:
        return _unit_interval(v)


class SkinToneAnalysis(CamelModel):
    type: str = "neutral"
    undertone: str = "neutral"
    rgb_value: str = "rgb(200, 170, 145)"
    suitable_colors: List[str] = Field(default_factory=lambda: ["browns", "natural tones"])
    avoid_colors: List[str] = Field(default_factory=lambda: ["extreme colors"])


class UserPhotoAnalysis(CamelModel):
    """
    Hair and skin tone of the client.

    The defaults are the neutral profile used when the photo cannot be
    analysed.
    """

    hair_analysis: HairAnalysis = Field(default_factory=HairAnalysis)
    skin_tone_analysis: SkinToneAnalysis = Field(default_factory=SkinToneAnalysis)


class ColorAnalysis(CamelModel):
    """Colour style of a reference portfolio image."""

    dominant_colors: List[str] = Field(default_factory=list, max_length=3)
    technique: str = "unknown"
    gradient_pattern: str = "unknown"
    difficulty: str = "medium"
    suitable_skin_tones: List[str] = Field(default_factory=list)
    compatibility: float = 0.7

    @field_validator("compatibility")
    @classmethod
    def clamp_compatibility(cls, v: float) -> float:
        return _unit_interval(v)

    @field_validator("dominant_colors", mode="before")
    @classmethod
    def keep_three(cls, v):
        return list(v)[:3] if v is not None else []


class ColorAnalysisSummary(CamelModel):
    dominant_colors: List[str]
    skin_tone_match: SkinToneMatch
    recommendations: List[str]


class ColorTryOnSnapshot(CamelModel):
    """
    Point-in-time view of one colour try-on controller.

    state is one of: idle, analyzing, generating, done, error.
    """

    state: str
    style_url: Optional[str] = None
    style_name: Optional[str] = None
    color_type: Optional[ColorType] = None
    intensity: Optional[Intensity] = None
    result_url: Optional[str] = None
    confidence: Optional[float] = None
    color_analysis: Optional[ColorAnalysisSummary] = None
    error: Optional[str] = None
    request_token: int = 0
