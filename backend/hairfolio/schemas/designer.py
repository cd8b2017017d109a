"""
Hairfolio Backend: Designer Record Schemas
===========================================

What:  Pydantic models for the designer aggregate and its parts, plus the
       typed patches used to modify it.
How:   Python attributes are snake_case; the stored/wire form is camelCase
       through an alias generator. `to_document()` produces the exact JSON
       shape persisted in both stores.
Who:   PersistenceGateway (load/save), AnalyticsAggregator (stats mutation),
       PortfolioService (entries, profile, settings), route handlers.

Persisted shape:
    { portfolio: [{id, name, url, gender, majorCategory, minorCategory,
                   description, tags, createdAt, updatedAt}],
      reservationUrl?,
      stats: {visits, styleViews: {url: count}, bookings: {url: count},
              totalTryOns, conversionRate, popularStyles: [url],
              trialResults: [{styleUrl, resultUrl, timestamp, styleName?}],
              lastUpdated},
      profile?, settings?, createdAt, updatedAt }
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Bounded history of try-on outcomes kept per designer.
MAX_TRIAL_RESULTS = 20
# Number of styles listed in popularStyles.
POPULAR_STYLES_LIMIT = 5
EXPORT_FORMAT_VERSION = "1.0"


def now_iso() -> str:
    """Current UTC time as an ISO 8601 string (stored timestamp format)."""
    return datetime.now(timezone.utc).isoformat()


def generate_style_id() -> str:
    return uuid.uuid4().hex


class CamelModel(BaseModel):
    """Base for every stored model: camelCase aliases, snake_case attributes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ══════════════════════════════════════════════════════════════════════════
# Portfolio
# ══════════════════════════════════════════════════════════════════════════


Gender = Literal["Female", "Male"]


class PortfolioEntry(CamelModel):
    """
    One published hairstyle.

    `url` is the reference style image and never changes after creation;
    StylePatch has no url field.
    """

    id: str = Field(default_factory=generate_style_id)
    name: str = Field(min_length=1, max_length=200)
    url: str = Field(min_length=1)
    gender: Optional[Gender] = None
    major_category: Optional[str] = None
    minor_category: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)


class StyleCreate(CamelModel):
    """Request body for adding a style to a portfolio."""

    name: str = Field(min_length=1, max_length=200)
    url: str = Field(min_length=1, description="Reference style image (URL or /api/files path)")
    gender: Optional[Gender] = None
    major_category: Optional[str] = None
    minor_category: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None

    @field_validator("url")
    @classmethod
    def url_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("url must not be blank")
        return v.strip()


class StylePatch(CamelModel):
    """
    Partial update of a portfolio entry.

    Only fields explicitly sent are applied (exclude_unset). Unknown fields,
    including `url`, are rejected.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    gender: Optional[Gender] = None
    major_category: Optional[str] = None
    minor_category: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None

    @field_validator("name")
    @classmethod
    def name_not_null(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("name cannot be cleared")
        return v


# ══════════════════════════════════════════════════════════════════════════
# Analytics
# ══════════════════════════════════════════════════════════════════════════


class TrialResult(CamelModel):
    """One recorded try-on outcome."""

    style_url: str
    result_url: str
    timestamp: str = Field(default_factory=now_iso)
    style_name: Optional[str] = None


class DesignerStats(CamelModel):
    """
    Engagement counters for one designer.

    conversion_rate is nominally a percentage in [0, 100] but is not clamped:
    a map edited out of band can push it past 100.
    """

    visits: int = Field(default=0, ge=0)
    style_views: Dict[str, int] = Field(default_factory=dict)
    bookings: Dict[str, int] = Field(default_factory=dict)
    total_try_ons: int = Field(default=0, ge=0)
    conversion_rate: float = 0.0
    popular_styles: List[str] = Field(default_factory=list)
    trial_results: List[TrialResult] = Field(default_factory=list)
    last_updated: str = Field(default_factory=now_iso)

    @field_validator("style_views", "bookings")
    @classmethod
    def counts_non_negative(cls, v: Dict[str, int]) -> Dict[str, int]:
        for key, count in v.items():
            if count < 0:
                raise ValueError(f"count for '{key}' must be non-negative")
        return v


class TopStyle(BaseModel):
    url: str
    count: int


class AnalyticsSummary(CamelModel):
    """Read model returned by AnalyticsAggregator.summarize."""

    visits: int
    total_views: int
    total_bookings: int
    conversion_rate: float
    top_viewed_style: Optional[TopStyle] = None
    top_booked_style: Optional[TopStyle] = None
    popular_styles: List[str]
    trial_results: List[TrialResult]
    last_updated: str


# ══════════════════════════════════════════════════════════════════════════
# Profile & Settings
# ══════════════════════════════════════════════════════════════════════════


class SocialLinks(CamelModel):
    instagram: Optional[str] = None
    facebook: Optional[str] = None
    website: Optional[str] = None


class DesignerProfile(CamelModel):
    name: Optional[str] = Field(default=None, max_length=200)
    bio: Optional[str] = Field(default=None, max_length=2000)
    phone: Optional[str] = Field(default=None, max_length=50)
    location: Optional[str] = None
    address: Optional[str] = None
    social_links: Optional[SocialLinks] = None


class DesignerSettings(CamelModel):
    allow_direct_booking: bool = True
    show_stats: bool = True
    theme: Literal["light", "dark"] = "light"


# ══════════════════════════════════════════════════════════════════════════
# Aggregate Root
# ══════════════════════════════════════════════════════════════════════════


class DesignerRecord(CamelModel):
    """
    Everything stored for one designer.

    Created empty at signup; every mutation rewrites updated_at.
    """

    portfolio: List[PortfolioEntry] = Field(default_factory=list)
    reservation_url: Optional[str] = None
    stats: DesignerStats = Field(default_factory=DesignerStats)
    profile: Optional[DesignerProfile] = None
    settings: Optional[DesignerSettings] = None
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "DesignerRecord":
        return cls.model_validate(document)

    def to_document(self) -> Dict[str, Any]:
        """Stored JSON form: camelCase keys, absent optionals kept as None."""
        return self.model_dump(mode="json", by_alias=True)

    def touch(self) -> None:
        self.updated_at = now_iso()

    def find_style(self, style_id: str) -> Optional[PortfolioEntry]:
        for entry in self.portfolio:
            if entry.id == style_id:
                return entry
        return None

    def find_style_by_url(self, url: str) -> Optional[PortfolioEntry]:
        for entry in self.portfolio:
            if entry.url == url:
                return entry
        return None


class DesignerExport(CamelModel):
    """Portable backup of one designer record."""

    designer_name: str = Field(min_length=1, max_length=255)
    data: DesignerRecord
    export_date: str = Field(default_factory=now_iso)
    version: str = EXPORT_FORMAT_VERSION
