"""Comic API facade endpoints.

Every endpoint accepts an optional JSON body with the caller's cookies.
Without one, the session stored by the last login is used.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Body, Query

from comicgate.dependencies import ComicServiceDep, RuntimeConfigDep
from comicgate.schemas.common import CookieBody, ErrorResponse
from comicgate.schemas.reading import ChapterPages
from comicgate.storage.runtime_config import RuntimeConfigStore

router = APIRouter()

OptionalCookies = Annotated[CookieBody | None, Body()]

UPSTREAM_ERRORS: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Rejected by the API"},
    502: {"model": ErrorResponse, "description": "No mirror answered"},
}


def _cookies(body: CookieBody | None, runtime: RuntimeConfigStore) -> dict[str, str]:
    if body is not None and body.cookies:
        return body.cookies
    return runtime.session_cookies


# =============================================================================
# Listings
# =============================================================================


@router.post("/latest", summary="Latest comics", responses=UPSTREAM_ERRORS)
async def latest(
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    page: Annotated[int, Query(ge=0)] = 0,
    body: OptionalCookies = None,
) -> Any:
    return await comics.latest(page, _cookies(body, runtime))


@router.post("/promote", summary="Promoted comics", responses=UPSTREAM_ERRORS)
async def promote(
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    page: Annotated[int, Query(ge=0)] = 0,
    body: OptionalCookies = None,
) -> Any:
    return await comics.promote(page, _cookies(body, runtime))


@router.post("/history", summary="Reading history", responses=UPSTREAM_ERRORS)
async def history(
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    page: Annotated[int, Query(ge=0)] = 0,
    body: OptionalCookies = None,
) -> Any:
    return await comics.history(page, _cookies(body, runtime))


@router.post("/categories", summary="Category list", responses=UPSTREAM_ERRORS)
async def categories(
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    body: OptionalCookies = None,
) -> Any:
    return await comics.categories(_cookies(body, runtime))


@router.post("/categories/filter", summary="Filter a category", responses=UPSTREAM_ERRORS)
async def category_filter(
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    category: str = "",
    page: Annotated[int, Query(ge=1)] = 1,
    sort: str = "",
    body: OptionalCookies = None,
) -> Any:
    return await comics.category_filter(category, page, sort, _cookies(body, runtime))


@router.post("/search", summary="Search comics", responses=UPSTREAM_ERRORS)
async def search(
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    q: Annotated[str, Query(min_length=1, description="Search text")],
    sort: str = "",
    page: Annotated[int, Query(ge=1)] = 1,
    body: OptionalCookies = None,
) -> Any:
    return await comics.search(q, sort, page, _cookies(body, runtime))


# =============================================================================
# Comic details
# =============================================================================


@router.post("/album/{album_id}", summary="Album detail", responses=UPSTREAM_ERRORS)
async def album(
    album_id: str,
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    body: OptionalCookies = None,
) -> Any:
    return await comics.album(album_id, _cookies(body, runtime))


@router.post("/chapter/{chapter_id}", summary="Chapter detail", responses=UPSTREAM_ERRORS)
async def chapter(
    chapter_id: str,
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    body: OptionalCookies = None,
) -> Any:
    return await comics.chapter(chapter_id, _cookies(body, runtime))


@router.post(
    "/chapter/{chapter_id}/pages",
    response_model=ChapterPages,
    summary="Chapter page plan",
    description="Ordered image URLs with the band count of each page.",
    responses=UPSTREAM_ERRORS,
)
async def chapter_pages(
    chapter_id: str,
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    body: OptionalCookies = None,
) -> ChapterPages:
    return await comics.chapter_pages(chapter_id, _cookies(body, runtime))


@router.post("/album/{album_id}/page-count", summary="Chapter image count", responses=UPSTREAM_ERRORS)
async def page_count(
    album_id: str,
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    chapter_id: str | None = None,
    body: OptionalCookies = None,
) -> dict[str, int]:
    count = await comics.page_count(album_id, chapter_id, _cookies(body, runtime))
    return {"count": count}


# =============================================================================
# Favorites
# =============================================================================


@router.post("/favorites", summary="Favorite list", responses=UPSTREAM_ERRORS)
async def favorites(
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    page: Annotated[int, Query(ge=1)] = 1,
    sort: str = "mr",
    folder_id: str = "0",
    body: OptionalCookies = None,
) -> Any:
    return await comics.favorites(page, sort, folder_id, _cookies(body, runtime))


@router.post("/favorites/{aid}/toggle", summary="Toggle favorite", responses=UPSTREAM_ERRORS)
async def favorite_toggle(
    aid: str,
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    body: OptionalCookies = None,
) -> Any:
    return await comics.favorite_toggle(aid, _cookies(body, runtime))


@router.post("/favorite-folders", summary="Create favorite folder", responses=UPSTREAM_ERRORS)
async def favorite_folder_add(
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    name: Annotated[str, Query(min_length=1)],
    body: OptionalCookies = None,
) -> Any:
    return await comics.favorite_folder_add(name, _cookies(body, runtime))


@router.post(
    "/favorite-folders/{folder_id}/delete",
    summary="Delete favorite folder",
    responses=UPSTREAM_ERRORS,
)
async def favorite_folder_del(
    folder_id: str,
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    body: OptionalCookies = None,
) -> Any:
    return await comics.favorite_folder_del(folder_id, _cookies(body, runtime))


@router.post(
    "/favorite-folders/{folder_id}/move",
    summary="Move a comic into a folder",
    responses=UPSTREAM_ERRORS,
)
async def favorite_folder_move(
    folder_id: str,
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    aid: Annotated[str, Query(min_length=1)],
    body: OptionalCookies = None,
) -> Any:
    return await comics.favorite_folder_move(aid, folder_id, _cookies(body, runtime))


# =============================================================================
# Daily check-in
# =============================================================================


@router.post("/daily/{user_id}", summary="Daily check-in state", responses=UPSTREAM_ERRORS)
async def daily(
    user_id: str,
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    body: OptionalCookies = None,
) -> Any:
    return await comics.daily(user_id, _cookies(body, runtime))


@router.post("/daily/{user_id}/check", summary="Daily check-in", responses=UPSTREAM_ERRORS)
async def daily_check(
    user_id: str,
    comics: ComicServiceDep,
    runtime: RuntimeConfigDep,
    daily_id: Annotated[str, Query(min_length=1)],
    body: OptionalCookies = None,
) -> Any:
    return await comics.daily_check(user_id, daily_id, _cookies(body, runtime))
