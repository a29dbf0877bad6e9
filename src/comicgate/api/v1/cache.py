"""Read cache statistics and eviction endpoints."""

from fastapi import APIRouter

from comicgate.dependencies import CacheStatsDep
from comicgate.schemas.cache import CacheSnapshot, CacheSummary, CleanupRequest

router = APIRouter()


@router.get(
    "/stats",
    response_model=CacheSnapshot,
    summary="Cache statistics",
    description="Last persisted snapshot; does not rescan the disk.",
)
async def cache_stats(stats: CacheStatsDep) -> CacheSnapshot:
    return stats.load_snapshot()


@router.post("/stats/refresh", response_model=CacheSummary, summary="Rescan the read cache")
async def refresh_cache_stats(stats: CacheStatsDep) -> CacheSummary:
    return await stats.refresh()


@router.post(
    "/cleanup",
    response_model=CacheSummary,
    summary="Evict old comics",
    description="Remove whole comic directories, oldest first, until under `max_bytes`.",
)
async def cleanup_cache(request: CleanupRequest, stats: CacheStatsDep) -> CacheSummary:
    return await stats.cleanup(request.max_bytes)
