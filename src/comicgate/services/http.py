"""Shared httpx client with the user-settable proxy applied to all traffic."""

import asyncio
from http.cookiejar import CookieJar, DefaultCookiePolicy

import httpx
import structlog

from comicgate.config import Settings
from comicgate.storage.runtime_config import RuntimeConfigStore

logger = structlog.get_logger(__name__)


class HttpClientProvider:
    """Lazily builds one AsyncClient per effective proxy setting.

    When the proxy changes, the next ``get_client()`` call builds a fresh
    client. The previous one is closed after one request timeout so requests
    already in flight on it can finish.

    Clients never store cookies: the Cookie header of every API call is built
    from the caller's cookie map alone.

    Args:
        settings: Application settings (timeouts, default proxy)
        runtime: Runtime config holding the user-set proxy
        transport: Optional transport override, used by tests to plug in
            ``httpx.MockTransport``
    """

    def __init__(
        self,
        settings: Settings,
        runtime: RuntimeConfigStore,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._runtime = runtime
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_proxy: str | None = None
        self._retiring: dict[asyncio.Task[None], httpx.AsyncClient] = {}
        self._lock = asyncio.Lock()

    def effective_proxy(self) -> str | None:
        return self._runtime.socks_proxy or self._settings.socks_proxy or None

    def build_client(
        self,
        *,
        proxy: str | None = None,
        timeout: float | None = None,
    ) -> httpx.AsyncClient:
        """Create a standalone client; the caller owns and closes it."""
        return httpx.AsyncClient(
            proxy=proxy,
            transport=self._transport,
            timeout=timeout or self._settings.request_timeout,
            follow_redirects=True,
            cookies=_no_cookie_jar(),
        )

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create the shared client for the current proxy."""
        proxy = self.effective_proxy()
        async with self._lock:
            if (
                self._client is None
                or self._client.is_closed
                or self._client_proxy != proxy
            ):
                if self._client is not None and not self._client.is_closed:
                    self._retire(self._client)
                self._client = self.build_client(proxy=proxy)
                self._client_proxy = proxy
                logger.debug("http_client_created", proxy_enabled=proxy is not None)
            return self._client

    def _retire(self, client: httpx.AsyncClient) -> None:
        task = asyncio.create_task(self._close_after_grace(client))
        self._retiring[task] = client
        task.add_done_callback(lambda t: self._retiring.pop(t, None))

    async def _close_after_grace(self, client: httpx.AsyncClient) -> None:
        await asyncio.sleep(self._settings.request_timeout)
        await client.aclose()
        logger.debug("http_client_retired")

    async def close(self) -> None:
        """Close the shared client and any still waiting to retire."""
        async with self._lock:
            retiring = dict(self._retiring)
            clients = [*retiring.values(), self._client]
            self._client = None
        for task in retiring:
            task.cancel()
        await asyncio.gather(*retiring, return_exceptions=True)
        for client in clients:
            if client is not None and not client.is_closed:
                await client.aclose()


def _no_cookie_jar() -> CookieJar:
    """A jar whose policy rejects every cookie for every domain."""
    return CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))
