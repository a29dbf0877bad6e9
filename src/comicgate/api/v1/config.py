"""Runtime configuration endpoints (outbound proxy)."""

from fastapi import APIRouter

from comicgate.core.logging import get_logger
from comicgate.dependencies import RouterDep, RuntimeConfigDep
from comicgate.schemas.common import ErrorResponse, MessageResponse
from comicgate.schemas.mirrors import ProxyState, ProxyUpdate

logger = get_logger(__name__)

router = APIRouter()


@router.get("/proxy", response_model=ProxyState, summary="Current proxy")
async def get_proxy(runtime: RuntimeConfigDep) -> ProxyState:
    return ProxyState(proxy=runtime.socks_proxy)


@router.put(
    "/proxy",
    response_model=ProxyState,
    summary="Set or clear the proxy",
    description="The shared HTTP client is rebuilt on the next request.",
    responses={400: {"model": ErrorResponse, "description": "Malformed proxy URL"}},
)
async def set_proxy(update: ProxyUpdate, runtime: RuntimeConfigDep) -> ProxyState:
    proxy = runtime.set_socks_proxy(update.proxy)
    logger.info("proxy_updated", enabled=proxy is not None)
    return ProxyState(proxy=proxy)


@router.post(
    "/proxy/check",
    response_model=MessageResponse,
    summary="Check a proxy",
    description="Reach the default API base through the given (or stored) proxy.",
    responses={
        400: {"model": ErrorResponse, "description": "No proxy configured"},
        502: {"model": ErrorResponse, "description": "Proxy check failed"},
    },
)
async def check_proxy(update: ProxyUpdate, router_: RouterDep) -> MessageResponse:
    return MessageResponse(message=await router_.check_proxy(update.proxy))
