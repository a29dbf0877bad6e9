"""Retrieval router: one logical API call with mirror failover.

Every API variant (GET by page, GET by query, POST form, login, chapter
template) goes through :meth:`RetrievalRouter.execute`, which owns the
retry and classification rules. Variants differ only in how a request is
built for a given base and how a final response is handled.

Classification per candidate:

- timeout / connect failure: try the next mirror, else raise
- retryable HTTP status (403, 5xx, 520, 524): try the next mirror
- wrong-domain body (stock 404 page, default web server page, edge proxy
  challenge) within the first 300 characters: try the next mirror
- otherwise the response is handled; application and decode errors stop
  the loop, success pins the pool cursor to this mirror
"""

import json
import re
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar
from urllib.parse import quote, urlencode

import httpx
import structlog

from comicgate.config import DEFAULT_API_BASE, Settings
from comicgate.core.exceptions import (
    ApplicationError,
    DecodeError,
    RetrievalError,
    TransientServerError,
    TransportError,
    ValidationError,
)
from comicgate.schemas.auth import LoginResult, UserInfo
from comicgate.schemas.mirrors import MirrorLatency
from comicgate.services.envelope import Envelope, RequestToken, build_headers, decode_payload
from comicgate.services.http import HttpClientProvider
from comicgate.services.mirrors import MirrorPool
from comicgate.storage.runtime_config import RuntimeConfigStore, normalize_proxy

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RETRYABLE_STATUSES = frozenset({403, 500, 502, 503, 504, 520, 524})
WRONG_DOMAIN_MARKERS = ("404 not found", "apache server", "cloudflare")
BODY_SAMPLE_CHARS = 300
DEFAULT_SCRAMBLE_ID = 220980

_SCRAMBLE_ID_RE = re.compile(r"var scramble_id = (\d+)")


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUSES or 500 <= status_code < 600


def is_retryable_transport_error(exc: httpx.HTTPError) -> bool:
    return isinstance(exc, (httpx.TimeoutException, httpx.ConnectError))


def looks_like_wrong_domain(body: str) -> bool:
    sample = body[:BODY_SAMPLE_CHARS].lower()
    return any(marker in sample for marker in WRONG_DOMAIN_MARKERS)


def parse_scramble_id(html: str) -> int | None:
    match = _SCRAMBLE_ID_RE.search(html)
    return int(match.group(1)) if match else None


def join_url(base: str, path: str, query: str | None = None) -> str:
    """``base/path``, with ``/?query`` appended when a query is given."""
    url = f"{base.rstrip('/')}/{path.lstrip('/')}"
    if query:
        if not url.endswith("/"):
            url += "/"
        url = f"{url}?{query}"
    return url


@dataclass
class PreparedRequest:
    """A request bound to one mirror base."""

    method: str
    url: str
    token: RequestToken
    headers: dict[str, str]
    data: dict[str, str] | None = None
    timeout: float | None = None


RequestBuilder = Callable[[str], PreparedRequest]
ResponseHandler = Callable[[httpx.Response, PreparedRequest], T]


class RetrievalRouter:
    """Executes API calls against the mirror pool with failover.

    Usage:
        ```python
        router = RetrievalRouter(settings, http, pool, runtime)
        data = await router.get("latest", page="0")
        ```
    """

    def __init__(
        self,
        settings: Settings,
        http: HttpClientProvider,
        pool: MirrorPool,
        runtime: RuntimeConfigStore,
    ) -> None:
        self._settings = settings
        self._http = http
        self._pool = pool
        self._runtime = runtime

    # -------------------------------------------------------------------------
    # Request construction
    # -------------------------------------------------------------------------

    def _secret(self, name: str) -> str:
        return getattr(self._settings, name).get_secret_value()

    def _prepare(
        self,
        method: str,
        url: str,
        *,
        cookies: Mapping[str, str] | None = None,
        data: dict[str, str] | None = None,
        content: bool = False,
        timeout: float | None = None,
    ) -> PreparedRequest:
        """Issue a fresh token and build headers for one attempt.

        ``content`` selects the chapter template credentials: the content
        token secret, the mobile user agent, no version header.
        """
        secret = "app_content_token_secret" if content else "app_token_secret"
        token = RequestToken.issue(self._secret(secret), self._settings.header_version)
        headers = build_headers(
            token,
            user_agent=(
                self._settings.content_user_agent if content else self._settings.user_agent
            ),
            app_version=None if content else self._settings.app_version,
            cookies=dict(cookies) if cookies else None,
        )
        return PreparedRequest(
            method=method, url=url, token=token, headers=headers, data=data, timeout=timeout
        )

    # -------------------------------------------------------------------------
    # Failover loop
    # -------------------------------------------------------------------------

    async def execute(
        self,
        build: RequestBuilder,
        handle: ResponseHandler[T],
        *,
        operation: str,
        check_body: bool = True,
    ) -> T:
        """Run one logical request across the mirror candidates.

        Args:
            build: Creates the request for a given base
            handle: Turns a final response into a result; may raise
                ApplicationError or DecodeError
            operation: Name used in log events
            check_body: Apply the wrong-domain body fingerprints; off for
                endpoints that return HTML

        Returns:
            Whatever ``handle`` returns for the first accepted response

        Raises:
            RetrievalError: The terminal error, or the last retryable one
                once every candidate is exhausted
        """
        candidates = self._pool.candidates()
        client = await self._http.get_client()
        last_error: RetrievalError | None = None

        for pos, (index, base) in enumerate(candidates):
            has_next = pos + 1 < len(candidates)
            prepared = build(base)

            try:
                response = await client.request(
                    prepared.method,
                    prepared.url,
                    headers=prepared.headers,
                    data=prepared.data,
                    timeout=prepared.timeout or httpx.USE_CLIENT_DEFAULT,
                )
            except httpx.HTTPError as e:
                retryable = is_retryable_transport_error(e)
                last_error = TransportError(
                    message=f"request failed: {e}", base=base, retryable=retryable
                )
                if retryable and has_next:
                    logger.warning(
                        "mirror_retry", operation=operation, base=base, reason="transport",
                        error=str(e),
                    )
                    continue
                raise last_error from e

            transient: TransientServerError | None = None
            if not response.is_success and is_retryable_status(response.status_code):
                transient = TransientServerError(
                    message=f"http status {response.status_code}",
                    http_status=response.status_code,
                    base=base,
                )
            elif check_body and looks_like_wrong_domain(response.text):
                transient = TransientServerError(
                    message="body indicates invalid domain",
                    http_status=response.status_code,
                    base=base,
                )

            if transient is not None and has_next:
                last_error = transient
                logger.warning(
                    "mirror_retry", operation=operation, base=base,
                    reason=transient.message, status_code=response.status_code,
                )
                continue

            try:
                result = handle(response, prepared)
            except DecodeError as e:
                if transient is not None:
                    raise transient from e
                raise
            except ApplicationError as e:
                logger.warning(
                    "api_error", operation=operation, base=base,
                    http_status=e.http_status, api_code=e.api_code, error=e.message,
                )
                raise

            self._pool.pin(index, base)
            logger.debug("mirror_ok", operation=operation, base=base, index=index)
            return result

        raise last_error or TransportError(message="no mirror available")

    # -------------------------------------------------------------------------
    # Response handlers
    # -------------------------------------------------------------------------

    def _open_envelope(self, response: httpx.Response, prepared: PreparedRequest) -> str:
        """Validate the envelope and return the decrypted JSON text."""
        try:
            envelope = Envelope.model_validate(response.json())
        except ValueError as e:
            raise DecodeError(
                f"invalid json response: status={response.status_code}, err={e}",
                details={"body_preview": response.text[:BODY_SAMPLE_CHARS]},
            ) from e

        if not envelope.ok:
            raise ApplicationError(
                message=envelope.failure_message(response.status_code),
                http_status=response.status_code,
                api_code=envelope.code,
            )
        if not isinstance(envelope.data, str):
            raise DecodeError(f"unexpected data type: {type(envelope.data).__name__}")

        return decode_payload(
            envelope.data, prepared.token.ts, self._secret("app_data_secret")
        )

    def _decode_json(self, response: httpx.Response, prepared: PreparedRequest) -> Any:
        text = self._open_envelope(response, prepared)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise DecodeError(f"parse decrypted json failed: {e}") from e

    # -------------------------------------------------------------------------
    # Variants
    # -------------------------------------------------------------------------

    async def get(
        self,
        path: str,
        page: str | int,
        cookies: Mapping[str, str] | None = None,
    ) -> Any:
        """GET ``base/path/?page=N`` and decode the payload."""
        return await self.execute(
            lambda base: self._prepare(
                "GET", join_url(base, path, f"page={page}"), cookies=cookies
            ),
            self._decode_json,
            operation=path,
        )

    async def get_query(
        self,
        path: str,
        query: str | Mapping[str, Any] | None = None,
        cookies: Mapping[str, str] | None = None,
    ) -> Any:
        """GET ``base/path/?query``; a mapping is url-encoded in order."""
        if isinstance(query, Mapping):
            query = urlencode(query, quote_via=quote)
        return await self.execute(
            lambda base: self._prepare("GET", join_url(base, path, query), cookies=cookies),
            self._decode_json,
            operation=path,
        )

    async def post(
        self,
        path: str,
        form: Mapping[str, str],
        cookies: Mapping[str, str] | None = None,
    ) -> Any:
        """POST a form body to ``base/path`` and decode the payload."""
        return await self.execute(
            lambda base: self._prepare(
                "POST", f"{base.rstrip('/')}/{path.strip('/')}", cookies=cookies,
                data=dict(form),
            ),
            self._decode_json,
            operation=path,
        )

    async def login(self, username: str, password: str) -> LoginResult:
        """Authenticate and persist the returned session cookies."""

        def handle(response: httpx.Response, prepared: PreparedRequest) -> LoginResult:
            text = self._open_envelope(response, prepared)
            try:
                user = UserInfo.model_validate_json(text)
            except ValueError as e:
                raise DecodeError(f"parse user data failed: {e}") from e
            cookies = {name: value for name, value in response.cookies.items()}
            return LoginResult(user=user, cookies=cookies)

        result = await self.execute(
            lambda base: self._prepare(
                "POST", f"{base.rstrip('/')}/login",
                data={"username": username, "password": password},
            ),
            handle,
            operation="login",
        )
        try:
            self._runtime.save_session_cookies(result.cookies)
        except OSError as e:
            logger.warning("session_cookies_save_failed", error=str(e))
        logger.info("login_succeeded", username=result.user.username)
        return result

    async def chapter_scramble_id(self, chapter_id: str) -> int:
        """Read ``scramble_id`` from the chapter view template.

        A page without the marker yields the default threshold.
        """

        def handle(response: httpx.Response, prepared: PreparedRequest) -> int:
            if not response.is_success:
                raise TransientServerError(
                    message=f"http error: {response.status_code}",
                    http_status=response.status_code,
                )
            value = parse_scramble_id(response.text)
            if value is None:
                logger.warning(
                    "scramble_id_missing", chapter_id=chapter_id,
                    preview=response.text[:BODY_SAMPLE_CHARS],
                )
                return DEFAULT_SCRAMBLE_ID
            return value

        query = urlencode(
            {"id": chapter_id, "mode": "vertical", "page": 0, "app_img_shunt": "NaN"},
            quote_via=quote,
        )
        return await self.execute(
            lambda base: self._prepare(
                "GET", join_url(base, "chapter_view_template", query), content=True
            ),
            handle,
            operation="chapter_view_template",
            check_body=False,
        )

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    async def latency(self) -> list[MirrorLatency]:
        """Probe every mirror once with ``latest/?page=0``, in pool order."""
        client = await self._http.get_client()
        report: list[MirrorLatency] = []
        for base in self._pool.bases():
            prepared = self._prepare(
                "GET", join_url(base, "latest", "page=0"),
                timeout=self._settings.latency_timeout,
            )
            started = time.perf_counter()
            status: int | None = None
            ok = False
            try:
                response = await client.get(
                    prepared.url, headers=prepared.headers, timeout=prepared.timeout
                )
                status = response.status_code
                ok = response.is_success
            except httpx.HTTPError as e:
                logger.debug("latency_probe_failed", base=base, error=str(e))
            report.append(
                MirrorLatency(
                    base=base,
                    ms=int((time.perf_counter() - started) * 1000),
                    ok=ok,
                    status=status,
                )
            )
        return report

    async def check_proxy(self, proxy: str | None = None) -> str:
        """Reach the default API base through ``proxy`` (or the active one).

        Raises:
            ValidationError: If no proxy is configured or the URL is invalid
            TransportError: If the request fails
            TransientServerError: If the answer is neither 2xx nor 3xx
        """
        value = normalize_proxy(proxy) or self._http.effective_proxy()
        if value is None:
            raise ValidationError(message="no proxy configured", field="proxy")
        normalize_proxy(value)

        client = self._http.build_client(
            proxy=value, timeout=self._settings.proxy_check_timeout
        )
        try:
            async with client:
                response = await client.get(DEFAULT_API_BASE)
        except httpx.HTTPError as e:
            raise TransportError(message=f"proxy request failed: {e}", retryable=False) from e

        if response.is_success or response.is_redirect:
            return f"proxy ok (HTTP {response.status_code})"
        raise TransientServerError(
            message=f"proxy check failed (HTTP {response.status_code})",
            http_status=response.status_code,
        )
