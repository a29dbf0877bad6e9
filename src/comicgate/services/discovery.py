"""Domain discovery: refresh the mirror pool from a remote encrypted list.

The discovery documents live on object storage outside the blocked API
domains. Each one is a base64 AES payload, sometimes preceded by a few
bytes of non-ASCII noise, whose plaintext is either JSON with a
``Server`` field or a bare list of hostnames.
"""

import json

import httpx
import structlog

from comicgate.config import Settings
from comicgate.core.exceptions import DecodeError, DiscoveryError
from comicgate.services.envelope import decode_discovery_payload
from comicgate.services.http import HttpClientProvider
from comicgate.services.mirrors import MirrorListStore, MirrorPool, dedupe_bases, split_base_list

logger = structlog.get_logger(__name__)


def strip_leading_non_ascii(text: str) -> str:
    for pos, ch in enumerate(text):
        if ch.isascii():
            return text[pos:]
    return text


def parse_server_field(plaintext: str) -> list[str]:
    """Extract bases from the ``Server`` field of a JSON plaintext.

    ``Server`` may be an array of strings or one delimited string.
    Anything else yields an empty list.
    """
    try:
        value = json.loads(plaintext)
    except json.JSONDecodeError:
        return []
    if not isinstance(value, dict):
        return []
    server = value.get("Server")
    if isinstance(server, list):
        return dedupe_bases(s for s in server if isinstance(s, str))
    if isinstance(server, str):
        return split_base_list(server)
    return []


def extract_bases(body: str, secret: str) -> list[str]:
    """Turn one discovery response body into normalized bases.

    Decoding failures are tolerated: the cleaned body is then read as a
    plain host list.
    """
    cleaned = strip_leading_non_ascii(body)
    bases: list[str] = []
    try:
        plaintext = decode_discovery_payload(cleaned, secret)
    except DecodeError as e:
        logger.debug("discovery_decode_failed", error=str(e), preview=cleaned[:200])
    else:
        bases = parse_server_field(plaintext)
        if not bases:
            logger.debug("discovery_payload_empty", preview=plaintext[:200])
    if not bases:
        bases = split_base_list(cleaned)
    return bases


class DomainDiscoveryService:
    """Fetches discovery URLs in order and commits the first usable list."""

    def __init__(
        self,
        settings: Settings,
        http: HttpClientProvider,
        pool: MirrorPool,
        store: MirrorListStore,
    ) -> None:
        self._settings = settings
        self._http = http
        self._pool = pool
        self._store = store

    @property
    def _secret(self) -> str:
        return self._settings.domain_server_secret.get_secret_value()

    async def fetch(self) -> list[str]:
        """Return the first non-empty mirror list, without committing it.

        Raises:
            DiscoveryError: If every discovery URL failed or was empty
        """
        client = await self._http.get_client()
        last_error = "api domain list unavailable"

        for url in self._settings.discovery_urls:
            try:
                response = await client.get(url)
            except httpx.HTTPError as e:
                last_error = f"fetch failed: {e}"
                logger.warning("discovery_fetch_error", url=url, error=str(e))
                continue

            if not response.is_success:
                last_error = f"http status {response.status_code} from {url}"
                logger.warning(
                    "discovery_fetch_status", url=url, status_code=response.status_code
                )
                continue

            bases = extract_bases(response.text, self._secret)
            if bases:
                logger.info("discovery_fetch_success", url=url, count=len(bases))
                return bases

            last_error = f"empty domain list from {url}"
            logger.warning("discovery_fetch_empty", url=url)

        raise DiscoveryError(message=last_error)

    async def refresh(self) -> list[str]:
        """Fetch, persist and commit a new mirror list."""
        bases = await self.fetch()
        self._store.save(bases)
        self._pool.commit(bases)
        return bases

    async def refresh_quietly(self) -> list[str] | None:
        """Background variant: failures are logged and the pool is kept."""
        try:
            return await self.refresh()
        except DiscoveryError as e:
            logger.warning("discovery_refresh_failed", error=e.message)
        except OSError as e:
            logger.warning("discovery_persist_failed", error=str(e))
        return None
