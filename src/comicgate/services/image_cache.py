"""Disk-backed image caches.

``ReadCache`` materializes chapter pages under ``read/<comic>/<hash>.<ext>``,
where the hash covers both the URL and the segmentation count. The file's
existence is the only record that a page was materialized: a second call
for the same pair returns the path without network I/O. Two concurrent
first-time calls may both download; the atomic rename keeps a single,
complete file.

``CoverCache`` stores thumbnails under ``cover/<md5(url)>.<ext>`` with a
bounded retry and an admission semaphore instead of cancellation.
"""

import asyncio
import base64
import re
import time
from pathlib import Path, PurePosixPath

import httpx
import structlog

from comicgate.config import Settings
from comicgate.core.exceptions import ImageError, TransportError, ValidationError
from comicgate.schemas.reading import ImagePayload
from comicgate.services.cancellation import CancelRegistry, CancelToken
from comicgate.services.descramble import ImageFormat, descramble
from comicgate.services.envelope import md5_hex
from comicgate.services.http import HttpClientProvider
from comicgate.storage.documents import write_bytes_atomic

logger = structlog.get_logger(__name__)

_UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9_.\-]")
_IMAGE_HEADERS = {"accept-encoding": "identity"}


def sanitize_path_component(value: str) -> str:
    """Keep ASCII letters, digits and ``-_.``; empty results become ``unknown``."""
    cleaned = _UNSAFE_PATH_CHARS.sub("", value.strip())
    if cleaned in ("", ".", ".."):
        return "unknown"
    return cleaned


def page_cache_key(url: str, segments: int) -> str:
    return md5_hex(f"{url}|{segments}")


def _checkpoint(token: CancelToken | None, stage: str) -> None:
    if token is not None:
        token.raise_if_cancelled(stage)


class ReadCache:
    """Downloads, descrambles and persists chapter pages exactly once."""

    def __init__(
        self,
        settings: Settings,
        http: HttpClientProvider,
        registry: CancelRegistry,
    ) -> None:
        self._settings = settings
        self._http = http
        self._registry = registry

    @property
    def root(self) -> Path:
        return self._settings.read_cache_dir

    def comic_dir(self, aid: str | None) -> Path:
        return self.root / sanitize_path_component(aid or "")

    def find_cached(self, directory: Path, key: str) -> Path | None:
        for fmt in (ImageFormat.PNG, ImageFormat.JPEG, ImageFormat.WEBP):
            candidate = directory / f"{key}.{fmt.extension}"
            if candidate.exists():
                return candidate
        return None

    async def _download(self, url: str, token: CancelToken | None) -> bytes:
        client = await self._http.get_client()
        try:
            async with client.stream(
                "GET", url, headers=_IMAGE_HEADERS, timeout=self._settings.image_timeout
            ) as response:
                _checkpoint(token, "after_headers")
                if not response.is_success:
                    raise ImageError(
                        message=f"image http error: {response.status_code}",
                        url=url,
                        http_status=response.status_code,
                    )
                body = await response.aread()
        except httpx.HTTPError as e:
            raise TransportError(message=f"request failed: {e}", retryable=False) from e
        _checkpoint(token, "after_body")
        return body

    async def materialize(
        self,
        url: str,
        segments: int,
        aid: str | None = None,
        read_key: str | None = None,
    ) -> Path:
        """Return a local file holding the descrambled page.

        Args:
            url: Page image URL
            segments: Segmentation count; <= 1 stores the image unchanged
            aid: Comic id used as the cache namespace
            read_key: Cancellation key of the read session, if any

        Raises:
            ReadCancelledError: If the session is cancelled at a checkpoint;
                no file is written in that case
            ImageError: On a non-2xx image response or an undecodable image
            TransportError: If the download fails
        """
        url = url.strip()
        if not url:
            raise ValidationError(message="empty url", field="url")

        started = time.perf_counter()
        token = self._registry.token(read_key) if read_key else None
        key = page_cache_key(url, segments)
        directory = self.comic_dir(aid)

        cached = self.find_cached(directory, key)
        if cached is not None:
            logger.debug("read_cache_hit", path=str(cached), segments=segments)
            return cached

        _checkpoint(token, "before_request")
        body = await self._download(url, token)

        out, fmt = await asyncio.to_thread(descramble, body, segments, token)
        _checkpoint(token, "before_write")

        path = directory / f"{key}.{fmt.extension}"
        written = await asyncio.to_thread(write_bytes_atomic, path, out, overwrite=False)
        logger.info(
            "read_cache_stored",
            path=str(path),
            segments=segments,
            out_bytes=len(out),
            written=written,
            cost_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return path

    async def fetch_payload(self, url: str, segments: int) -> ImagePayload:
        """Descramble a page in memory and return it base64-encoded."""
        url = url.strip()
        if not url:
            raise ValidationError(message="empty url", field="url")
        body = await self._download(url, None)
        out, fmt = await asyncio.to_thread(descramble, body, segments, None)
        return ImagePayload(mime=fmt.mime, data_b64=base64.b64encode(out).decode("ascii"))


class CoverCache:
    """Thumbnail cache with bounded concurrency and fixed-delay retries."""

    def __init__(self, settings: Settings, http: HttpClientProvider) -> None:
        self._settings = settings
        self._http = http
        self._semaphore = asyncio.Semaphore(settings.cover_max_concurrent)

    @property
    def root(self) -> Path:
        return self._settings.cover_cache_dir

    def cover_path(self, url: str) -> Path:
        clean = url.split("#", 1)[0].split("?", 1)[0]
        suffix = PurePosixPath(clean).suffix.lstrip(".")
        ext = _UNSAFE_PATH_CHARS.sub("", suffix) or "jpg"
        return self.root / f"{md5_hex(url)}.{ext}"

    async def fetch(self, url: str) -> Path:
        """Return the cached cover for ``url``, downloading it if needed.

        Raises:
            ImageError: If every attempt failed
        """
        url = url.strip()
        if not url:
            raise ValidationError(message="empty url", field="url")

        async with self._semaphore:
            path = self.cover_path(url)
            if path.exists():
                return path

            client = await self._http.get_client()
            attempts = self._settings.cover_retry_attempts
            last_error = "request failed"
            last_status: int | None = None
            for attempt in range(attempts):
                try:
                    response = await client.get(url, timeout=self._settings.cover_timeout)
                except httpx.HTTPError as e:
                    last_error = f"request failed: {e}"
                else:
                    if response.is_success:
                        await asyncio.to_thread(write_bytes_atomic, path, response.content)
                        logger.debug("cover_cached", path=str(path), attempt=attempt + 1)
                        return path
                    last_status = response.status_code
                    last_error = f"http status {response.status_code}"

                logger.debug("cover_attempt_failed", url=url, attempt=attempt + 1, error=last_error)
                if attempt + 1 < attempts:
                    await asyncio.sleep(self._settings.cover_retry_delay_ms / 1000)

        raise ImageError(message=last_error, url=url, http_status=last_status)
