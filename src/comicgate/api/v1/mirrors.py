"""Mirror pool endpoints: inspect, measure and refresh the base list."""

from fastapi import APIRouter, status

from comicgate.core.logging import get_logger
from comicgate.dependencies import DiscoveryDep, MirrorPoolDep, RouterDep
from comicgate.schemas.common import ErrorResponse
from comicgate.schemas.mirrors import MirrorLatency, MirrorListResponse
from comicgate.services.mirrors import MirrorPool

logger = get_logger(__name__)

router = APIRouter()


def _describe(pool: MirrorPool) -> MirrorListResponse:
    return MirrorListResponse(bases=pool.bases(), current=pool.current(), index=pool.index)


@router.get(
    "",
    response_model=MirrorListResponse,
    summary="List mirrors",
    description="Mirror bases in pool order with the rotation cursor.",
)
async def list_mirrors(pool: MirrorPoolDep) -> MirrorListResponse:
    return _describe(pool)


@router.get(
    "/current",
    response_model=MirrorListResponse,
    summary="Current mirror",
    description="Same as the list; kept for clients that only need `current`.",
)
async def current_mirror(pool: MirrorPoolDep) -> MirrorListResponse:
    return _describe(pool)


@router.get(
    "/latency",
    response_model=list[MirrorLatency],
    summary="Probe mirrors",
    description="Issue one plain GET per mirror and report elapsed milliseconds.",
)
async def mirror_latency(router_: RouterDep) -> list[MirrorLatency]:
    return await router_.latency()


@router.post(
    "/refresh",
    response_model=MirrorListResponse,
    status_code=status.HTTP_200_OK,
    summary="Rediscover mirrors",
    description="Fetch the encrypted domain list and replace the pool on success.",
    responses={
        502: {"model": ErrorResponse, "description": "Every discovery URL failed"},
    },
)
async def refresh_mirrors(
    discovery: DiscoveryDep, pool: MirrorPoolDep
) -> MirrorListResponse:
    """Refresh the pool; the previous list stays in place when discovery fails."""
    bases = await discovery.refresh()
    logger.info("mirrors_refreshed", count=len(bases))
    return _describe(pool)
