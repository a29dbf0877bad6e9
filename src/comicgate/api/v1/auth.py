"""Login and session cookie endpoints."""

from fastapi import APIRouter, status

from comicgate.core.logging import get_logger
from comicgate.dependencies import RouterDep, RuntimeConfigDep
from comicgate.schemas.auth import LoginRequest, LoginResult
from comicgate.schemas.common import CookieBody, ErrorResponse

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/login",
    response_model=LoginResult,
    status_code=status.HTTP_200_OK,
    summary="Log in",
    description=(
        "Authenticate against the comic API. Session cookies returned by the "
        "mirror are stored and reused by later requests."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Rejected by the API"},
        502: {"model": ErrorResponse, "description": "No mirror answered"},
    },
)
async def login(request: LoginRequest, router_: RouterDep) -> LoginResult:
    logger.info("login_request", username=request.username)
    return await router_.login(request.username, request.password)


@router.get(
    "/session",
    response_model=CookieBody,
    summary="Stored session cookies",
)
async def get_session(runtime: RuntimeConfigDep) -> CookieBody:
    return CookieBody(cookies=runtime.session_cookies)


@router.put(
    "/session",
    response_model=CookieBody,
    summary="Replace stored session cookies",
)
async def put_session(body: CookieBody, runtime: RuntimeConfigDep) -> CookieBody:
    runtime.save_session_cookies(body.cookies)
    return CookieBody(cookies=runtime.session_cookies)
