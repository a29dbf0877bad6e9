"""Comic API facade over the retrieval router.

Each method maps one upstream endpoint to a router variant; the router
handles mirrors, tokens and decryption. Results are the decoded JSON as
returned by the API.
"""

import asyncio
import re
from collections.abc import Mapping
from typing import Any

import structlog

from comicgate.config import Settings
from comicgate.core.exceptions import ValidationError
from comicgate.schemas.reading import ChapterPages, PagePlan
from comicgate.services.descramble import segmentation_num
from comicgate.services.router import RetrievalRouter

logger = structlog.get_logger(__name__)

Cookies = Mapping[str, str] | None

_FIRST_NUMBER = re.compile(r"\d+")


def _number_key(name: str) -> tuple[int, int, str]:
    """Sort key: names with a number by that number, the rest after, by name."""
    match = _FIRST_NUMBER.search(name)
    if match is None:
        return (1, 0, name)
    return (0, int(match.group()), name)


def picture_name(path: str) -> str:
    """File name up to its first dot: ``.../00012.webp`` -> ``00012``."""
    return path.rsplit("/", 1)[-1].split(".", 1)[0]


def resolve_image_url(path: str, chapter_id: str, img_base: str) -> str:
    if path.startswith(("http://", "https://")):
        return path
    base = img_base.rstrip("/")
    if path.startswith("/"):
        return f"{base}{path}"
    return f"{base}/media/photos/{chapter_id}/{path}"


def segmentation_nums(eps_id: int, scramble_id: int, picture_names: list[str]) -> list[int]:
    return [segmentation_num(eps_id, scramble_id, name) for name in picture_names]


class ComicService:
    """Typed entry points for the comic API endpoints."""

    def __init__(self, settings: Settings, router: RetrievalRouter) -> None:
        self._settings = settings
        self._router = router

    # ========================================
    # Listings
    # ========================================
    async def latest(self, page: str | int, cookies: Cookies = None) -> Any:
        return await self._router.get("latest", page, cookies)

    async def promote(self, page: str | int, cookies: Cookies = None) -> Any:
        return await self._router.get("promote", page, cookies)

    async def history(self, page: str | int, cookies: Cookies = None) -> Any:
        return await self._router.get("watch_list", page, cookies)

    async def categories(self, cookies: Cookies = None) -> Any:
        return await self._router.get_query("categories", None, cookies)

    async def category_filter(
        self,
        category: str = "",
        page: str | int = 1,
        sort: str = "",
        cookies: Cookies = None,
    ) -> Any:
        """Filter a category; ``page`` is only sent past the first page."""
        params: dict[str, Any] = {}
        try:
            page_num = int(page)
        except (TypeError, ValueError):
            page_num = 1
        if page_num > 1:
            params["page"] = page_num
        if sort.strip():
            params["o"] = sort
        if category.strip():
            params["c"] = category
        return await self._router.get_query("categories/filter", params or None, cookies)

    async def search(
        self,
        query: str,
        sort: str = "",
        page: str | int = "1",
        cookies: Cookies = None,
    ) -> Any:
        params: dict[str, Any] = {"search_query": query, "o": sort}
        page_str = str(page).strip()
        if page_str and page_str != "1":
            params["page"] = page_str
        return await self._router.get_query("search", params, cookies)

    # ========================================
    # Comic details
    # ========================================
    async def album(self, album_id: str, cookies: Cookies = None) -> Any:
        return await self._router.get_query(
            "album", {"comicName": "", "id": album_id}, cookies
        )

    async def chapter(self, chapter_id: str, cookies: Cookies = None) -> Any:
        return await self._router.get_query(
            "chapter", {"comicName": "", "skip": "", "id": chapter_id}, cookies
        )

    async def page_count(
        self,
        album_id: str,
        chapter_id: str | None = None,
        cookies: Cookies = None,
    ) -> int:
        """Number of images in a chapter (the album itself for one-shots)."""
        data = await self.chapter(chapter_id or album_id, cookies)
        images = data.get("images") if isinstance(data, dict) else None
        return len(images) if isinstance(images, list) else 0

    async def chapter_pages(self, chapter_id: str, cookies: Cookies = None) -> ChapterPages:
        """Ordered page plan for a chapter: image URL plus band count.

        The chapter document and its scramble threshold are fetched
        concurrently.
        """
        try:
            eps_id = int(chapter_id)
        except ValueError as e:
            raise ValidationError(message="invalid chapter id", field="chapter_id") from e

        chapter, scramble_id = await asyncio.gather(
            self.chapter(chapter_id, cookies),
            self._router.chapter_scramble_id(chapter_id),
        )
        raw = chapter.get("images") if isinstance(chapter, dict) else None
        paths = sorted(
            (p for p in raw or [] if isinstance(p, str) and p), key=_number_key
        )
        pages = [
            PagePlan(
                url=resolve_image_url(p, chapter_id, self._settings.img_base),
                picture_name=picture_name(p),
                segments=segmentation_num(eps_id, scramble_id, picture_name(p)),
            )
            for p in paths
        ]
        logger.debug(
            "chapter_pages_planned", chapter_id=chapter_id, scramble_id=scramble_id,
            pages=len(pages),
        )
        return ChapterPages(chapter_id=chapter_id, scramble_id=scramble_id, pages=pages)

    # ========================================
    # Favorites
    # ========================================
    async def favorites(
        self,
        page: str | int = 1,
        sort: str = "mr",
        folder_id: str = "0",
        cookies: Cookies = None,
    ) -> Any:
        return await self._router.get_query(
            "favorite", {"page": page, "folder_id": folder_id, "o": sort}, cookies
        )

    async def favorite_toggle(self, aid: str, cookies: Cookies = None) -> Any:
        return await self._router.post("favorite", {"aid": aid}, cookies)

    async def favorite_folder_add(self, name: str, cookies: Cookies = None) -> Any:
        return await self._router.post(
            "favorite_folder", {"folder_name": name, "type": "add"}, cookies
        )

    async def favorite_folder_del(self, folder_id: str, cookies: Cookies = None) -> Any:
        return await self._router.post(
            "favorite_folder", {"folder_id": folder_id, "type": "del"}, cookies
        )

    async def favorite_folder_move(
        self, aid: str, folder_id: str, cookies: Cookies = None
    ) -> Any:
        return await self._router.post(
            "favorite_folder", {"folder_id": folder_id, "type": "move", "aid": aid}, cookies
        )

    # ========================================
    # Daily check-in
    # ========================================
    async def daily(self, user_id: str, cookies: Cookies = None) -> Any:
        return await self._router.get_query("daily", {"user_id": user_id}, cookies)

    async def daily_check(self, user_id: str, daily_id: str, cookies: Cookies = None) -> Any:
        return await self._router.post(
            "daily_chk", {"user_id": user_id, "daily_id": daily_id}, cookies
        )
