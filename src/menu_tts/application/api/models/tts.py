"""
Audio API Models

Request and response shapes for the ``/tts`` endpoints. Audio itself is
returned as ``audio/mpeg`` bytes, not through these models.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class PrewarmRequest(BaseModel):
    """
    Body of ``POST /tts/prewarm``.

    Omitting ``phrases`` prewarms the built-in menu phrases plus the most
    popular tracked texts.
    """

    phrases: list[str] | None = Field(
        default=None,
        description="Texts to prewarm; defaults are used when omitted, an empty list prewarms nothing",
    )
    force: bool = Field(default=False, description="Synthesize even if a tier already has the audio")

    @field_validator("phrases")
    @classmethod
    def drop_blank_phrases(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return None
        cleaned = [p.strip() for p in v if p and p.strip()]
        return cleaned


class PrewarmStatusResponse(BaseModel):
    total: int = Field(..., ge=0, description="Phrases in the current or last run")
    completed: int = Field(..., ge=0, description="Phrases synthesized or already cached")
    failed: int = Field(..., ge=0, description="Phrases that could not be prewarmed")
    skipped: int = Field(default=0, ge=0, description="Completed phrases that were already cached")
    in_progress: bool = Field(..., description="Whether a run is active")
    last_run_at: str | None = Field(default=None, description="ISO start time of the last run")


class PrewarmStartResponse(BaseModel):
    message: str
    status: PrewarmStatusResponse


class InvalidateResponse(BaseModel):
    text: str
    key: str = Field(..., description="SHA-256 cache key")
    deleted: dict[str, bool] = Field(..., description="Deletion result per tier")


class DebugCacheResponse(BaseModel):
    text: str
    key: str
    tiers: list[str] = Field(..., description="Configured tiers in lookup order")
    availability: dict[str, bool] = Field(..., description="Whether each tier holds the audio")
    placement: str = Field(..., description="Placement strategy for this key")
    hit_count: int = Field(..., ge=0)
    object_store_configured: bool
    object_store_public_url: bool


class StoredObject(BaseModel):
    key: str
    size: int = Field(..., ge=0)
    last_modified: str


class ObjectListResponse(BaseModel):
    prefix: str
    count: int = Field(..., ge=0)
    objects: list[StoredObject]


class CacheMetricsResponse(BaseModel):
    usage: dict[str, Any] = Field(..., description="Per-key usage analysis")
    lookups: dict[str, Any] = Field(..., description="Tier hit counters since startup")
    background_failures: list[dict[str, str]] = Field(
        default_factory=list, description="Most recent failed background writes"
    )
