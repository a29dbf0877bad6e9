"""Read cache statistics schemas."""

from pydantic import BaseModel, Field


class CacheSummary(BaseModel):
    """Aggregate counters for the whole read cache."""

    total_bytes: int = 0
    total_files: int = 0
    total_comics: int = 0
    updated_at: int = Field(0, description="Unix milliseconds of the last scan")
    elapsed_ms: int = 0


class ComicCacheStat(BaseModel):
    aid: str
    files: int
    bytes: int
    updated_at: int = Field(..., description="Newest file mtime in unix milliseconds")


class CacheSnapshot(BaseModel):
    """Persisted projection; never the source of truth."""

    summary: CacheSummary = Field(default_factory=CacheSummary)
    comics: list[ComicCacheStat] = Field(default_factory=list)


class CleanupRequest(BaseModel):
    max_bytes: int = Field(..., ge=0, description="Target size of the read cache")
