"""Reading endpoints: page planning, materialization and cancellation."""

from fastapi import APIRouter, status

from comicgate.core.logging import log_context
from comicgate.dependencies import CancelRegistryDep, CoverCacheDep, ReadCacheDep
from comicgate.schemas.common import ErrorResponse, MessageResponse
from comicgate.schemas.reading import (
    CancelRequest,
    CoverRequest,
    DescrambleRequest,
    ImagePayload,
    MaterializeRequest,
    MaterializeResponse,
    SegmentationRequest,
)
from comicgate.services.comics import segmentation_nums

router = APIRouter()

IMAGE_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    499: {"model": ErrorResponse, "description": "Read session cancelled"},
    502: {"model": ErrorResponse, "description": "Image download or decode failed"},
}


@router.post(
    "/segmentation",
    response_model=list[int],
    summary="Band counts",
    description="Band count per picture name, in input order.",
)
async def segmentation(request: SegmentationRequest) -> list[int]:
    return segmentation_nums(request.eps_id, request.scramble_id, request.picture_names)


@router.post(
    "/materialize",
    response_model=MaterializeResponse,
    summary="Materialize a page",
    description="Download, descramble and cache one page; returns its local path.",
    responses=IMAGE_ERRORS,
)
async def materialize(request: MaterializeRequest, cache: ReadCacheDep) -> MaterializeResponse:
    with log_context(read_key=request.read_key, aid=request.aid):
        path = await cache.materialize(
            request.url, request.segments, aid=request.aid, read_key=request.read_key
        )
    return MaterializeResponse(path=str(path))


@router.post(
    "/descramble",
    response_model=ImagePayload,
    summary="Descramble a page in memory",
    responses=IMAGE_ERRORS,
)
async def descramble_payload(request: DescrambleRequest, cache: ReadCacheDep) -> ImagePayload:
    return await cache.fetch_payload(request.url, request.segments)


@router.post(
    "/cancel",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Cancel a read session",
    description="Work under this key stops at its next checkpoint.",
)
async def cancel(request: CancelRequest, registry: CancelRegistryDep) -> MessageResponse:
    registry.cancel(request.key)
    return MessageResponse(message="cancelled")


@router.post(
    "/cover",
    response_model=MaterializeResponse,
    summary="Cache a cover",
    responses=IMAGE_ERRORS,
)
async def cover(request: CoverRequest, covers: CoverCacheDep) -> MaterializeResponse:
    path = await covers.fetch(request.url)
    return MaterializeResponse(path=str(path))
