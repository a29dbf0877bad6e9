"""Tests for the retrieval router.

Drives RetrievalRouter through fake mirrors to check failover order,
cursor pinning, error classification and the request variants.
"""

import asyncio
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from comicgate.config import MOBILE_USER_AGENT, Settings
from comicgate.core.exceptions import (
    ApplicationError,
    DecodeError,
    TransientServerError,
    TransportError,
    ValidationError,
)
from comicgate.services.container import ComicGateContainer
from comicgate.services.http import HttpClientProvider
from comicgate.services.router import (
    DEFAULT_SCRAMBLE_ID,
    join_url,
    looks_like_wrong_domain,
    parse_scramble_id,
)
from comicgate.storage.runtime_config import RuntimeConfigStore
from tests.mocks.comic_api import (
    CLOUDFLARE_PAGE,
    NGINX_404_PAGE,
    FakeMirrors,
    envelope_response,
    error_envelope,
)

# =============================================================================
# Mock Response Data
# =============================================================================

LATEST = [{"id": "1001", "name": "Comic A"}, {"id": "1002", "name": "Comic B"}]

USER_DATA = {
    "uid": "123",
    "username": "reader",
    "level_name": "Lv1",
    "level": 1,
    "coin": "20",
    "gender": None,
    "album_favorites": 3,
    "album_favorites_max": 400,
    "exp": "",
    "nextLevelExp": "100",
}


# =============================================================================
# Helpers
# =============================================================================


class TestHelpers:
    """Tests for URL joining and body classification."""

    def test_join_url_with_query(self) -> None:
        assert join_url("https://m.x/", "latest", "page=0") == "https://m.x/latest/?page=0"

    def test_join_url_without_query(self) -> None:
        assert join_url("https://m.x", "categories") == "https://m.x/categories"

    def test_wrong_domain_markers(self) -> None:
        assert looks_like_wrong_domain(CLOUDFLARE_PAGE)
        assert looks_like_wrong_domain(NGINX_404_PAGE)
        assert looks_like_wrong_domain("<h1>Apache Server at host</h1>")
        assert not looks_like_wrong_domain('{"code": 200}')

    def test_marker_past_sample_window_ignored(self) -> None:
        assert not looks_like_wrong_domain("x" * 400 + "cloudflare")

    def test_parse_scramble_id(self) -> None:
        assert parse_scramble_id("<script>var scramble_id = 220980;</script>") == 220980
        assert parse_scramble_id("<html></html>") is None


# =============================================================================
# Failover
# =============================================================================


class TestFailover:
    """Tests for RetrievalRouter.execute across the mirror pool."""

    @pytest.mark.asyncio
    async def test_bad_gateway_then_fingerprint_then_success(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        """Two bad mirrors are skipped and the cursor sticks to the third."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "m1.test":
                return httpx.Response(502, text="bad gateway")
            if request.url.host == "m2.test":
                return httpx.Response(200, text=CLOUDFLARE_PAGE)
            return envelope_response(request, LATEST)

        fake_mirrors.handler = handler

        result = await container.router.get("latest", 0)

        assert result == LATEST
        assert fake_mirrors.hosts == ["m1.test", "m2.test", "m3.test"]
        assert container.pool.index == 2
        assert container.pool.current() == "https://m3.test"

        fake_mirrors.requests.clear()
        await container.router.get("latest", 1)
        assert fake_mirrors.hosts == ["m3.test"]

    @pytest.mark.asyncio
    async def test_request_shape(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        fake_mirrors.handler = lambda request: envelope_response(request, LATEST)

        await container.router.get("latest", 3, cookies={"AVS": "abc"})

        request = fake_mirrors.requests[0]
        assert str(request.url) == "https://m1.test/latest/?page=3"
        assert request.headers["version"] == "2.0.6"
        assert request.headers["cookie"] == "AVS=abc"
        assert request.headers["tokenparam"].endswith(",1.7.5")

    @pytest.mark.asyncio
    async def test_connect_error_moves_on(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "m1.test":
                raise httpx.ConnectError("refused", request=request)
            return envelope_response(request, {"ok": True})

        fake_mirrors.handler = handler

        assert await container.router.get_query("categories") == {"ok": True}
        assert container.pool.index == 1

    @pytest.mark.asyncio
    async def test_non_retryable_transport_error_stops(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.RemoteProtocolError("broken", request=request)

        fake_mirrors.handler = handler

        with pytest.raises(TransportError) as exc_info:
            await container.router.get("latest", 0)

        assert not exc_info.value.retryable
        assert fake_mirrors.hosts == ["m1.test"]

    @pytest.mark.asyncio
    async def test_all_timeouts_raise_last_transport_error(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        fake_mirrors.handler = handler

        with pytest.raises(TransportError) as exc_info:
            await container.router.get("latest", 0)

        assert exc_info.value.retryable
        assert exc_info.value.details["base"] == "https://m3.test"
        assert len(fake_mirrors.requests) == 3
        assert container.pool.index == 0

    @pytest.mark.asyncio
    async def test_application_error_not_retried(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        """A non-200 envelope code is a legitimate answer, not a mirror fault."""
        fake_mirrors.handler = lambda request: error_envelope(401, "Login required", 401)

        with pytest.raises(ApplicationError) as exc_info:
            await container.router.get("favorite", 1)

        assert exc_info.value.message == "Login required"
        assert exc_info.value.http_status == 401
        assert exc_info.value.is_auth_expired
        assert fake_mirrors.hosts == ["m1.test"]

    @pytest.mark.asyncio
    async def test_last_candidate_envelope_error_surfaces(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        """The final mirror's body is still parsed despite a 5xx status."""
        fake_mirrors.handler = lambda request: error_envelope(500, "comic removed", 503)

        with pytest.raises(ApplicationError, match="comic removed"):
            await container.router.get_query("album", {"comicName": "", "id": "9"})

        assert len(fake_mirrors.requests) == 3

    @pytest.mark.asyncio
    async def test_last_candidate_unparsable_raises_transient(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        fake_mirrors.handler = lambda request: httpx.Response(502, text="bad gateway")

        with pytest.raises(TransientServerError) as exc_info:
            await container.router.get("latest", 0)

        assert exc_info.value.http_status == 502
        assert len(fake_mirrors.requests) == 3

    @pytest.mark.asyncio
    async def test_decode_error_on_success_status(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        fake_mirrors.handler = lambda request: httpx.Response(
            200, json={"code": 200, "errorMsg": "", "data": "AAAA"}
        )

        with pytest.raises(DecodeError):
            await container.router.get("latest", 0)

        assert fake_mirrors.hosts == ["m1.test"]

    @pytest.mark.asyncio
    async def test_empty_pool(self, container: ComicGateContainer) -> None:
        container.pool._bases = []

        with pytest.raises(TransportError, match="no mirror available"):
            await container.router.get("latest", 0)


# =============================================================================
# Variants
# =============================================================================


class TestVariants:
    """Tests for query, form, login and chapter template variants."""

    @pytest.mark.asyncio
    async def test_get_query_encodes_mapping(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        fake_mirrors.handler = lambda request: envelope_response(request, {"content": []})

        await container.router.get_query("search", {"search_query": "a b", "o": "mv"})

        assert str(fake_mirrors.requests[0].url) == (
            "https://m1.test/search/?search_query=a%20b&o=mv"
        )

    @pytest.mark.asyncio
    async def test_post_sends_form(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        fake_mirrors.handler = lambda request: envelope_response(request, {"status": "ok"})

        result = await container.router.post("favorite", {"aid": "1001"})

        request = fake_mirrors.requests[0]
        assert result == {"status": "ok"}
        assert request.method == "POST"
        assert str(request.url) == "https://m1.test/favorite"
        assert request.content == b"aid=1001"

    @pytest.mark.asyncio
    async def test_login_captures_cookies(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        fake_mirrors.handler = lambda request: envelope_response(
            request,
            USER_DATA,
            headers=[("set-cookie", "AVS=session-token; Path=/")],
        )

        result = await container.router.login("reader", "secret")

        request = fake_mirrors.requests[0]
        assert str(request.url) == "https://m1.test/login"
        assert b"username=reader" in request.content
        assert result.user.username == "reader"
        assert result.user.coin == 20
        assert result.user.exp == 0
        assert result.user.gender == ""
        assert result.user.favorites == 3
        assert result.user.next_level_exp == 100
        assert result.cookies == {"AVS": "session-token"}
        assert container.runtime.session_cookies == {"AVS": "session-token"}

    @pytest.mark.asyncio
    async def test_response_cookies_not_replayed(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        """Only the caller's cookie map reaches the Cookie header."""

        def handler(request: httpx.Request) -> httpx.Response:
            payload = USER_DATA if request.url.path == "/login" else LATEST
            return envelope_response(
                request,
                payload,
                headers=[
                    ("set-cookie", "AVS=session-token; Path=/"),
                    ("set-cookie", "__cf_bm=edge; Path=/"),
                ],
            )

        fake_mirrors.handler = handler

        await container.router.login("reader", "secret")
        await container.router.get("latest", 0, cookies=None)
        await container.router.get("latest", 0, cookies={"ipm5": "x"})

        assert fake_mirrors.requests[1].headers.get("cookie") is None
        assert fake_mirrors.requests[2].headers["cookie"] == "ipm5=x"

    @pytest.mark.asyncio
    async def test_chapter_scramble_id(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        fake_mirrors.handler = lambda request: httpx.Response(
            200, text="<html>cloudflare cdn<script>var scramble_id = 220981;</script></html>"
        )

        assert await container.router.chapter_scramble_id("350000") == 220981

        request = fake_mirrors.requests[0]
        assert request.url.path == "/chapter_view_template/"
        assert request.url.params["app_img_shunt"] == "NaN"
        assert request.url.params["mode"] == "vertical"
        assert "version" not in request.headers
        assert request.headers["user-agent"] == MOBILE_USER_AGENT

    @pytest.mark.asyncio
    async def test_chapter_scramble_id_default(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        fake_mirrors.handler = lambda request: httpx.Response(200, text="<html></html>")

        assert await container.router.chapter_scramble_id("350000") == DEFAULT_SCRAMBLE_ID

    @pytest.mark.asyncio
    async def test_chapter_scramble_id_not_found(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        fake_mirrors.handler = lambda request: httpx.Response(404, text="missing")

        with pytest.raises(TransientServerError):
            await container.router.chapter_scramble_id("350000")


# =============================================================================
# Diagnostics
# =============================================================================


class TestDiagnostics:
    """Tests for latency probing and the proxy check."""

    @pytest.mark.asyncio
    async def test_latency_reports_every_mirror(
        self, container: ComicGateContainer, fake_mirrors: FakeMirrors
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "m2.test":
                raise httpx.ConnectTimeout("slow", request=request)
            return httpx.Response(200, text="{}")

        fake_mirrors.handler = handler

        report = await container.router.latency()

        assert [r.base for r in report] == [
            "https://m1.test",
            "https://m2.test",
            "https://m3.test",
        ]
        assert [r.ok for r in report] == [True, False, True]
        assert report[1].status is None
        assert all(r.ms >= 0 for r in report)

    @pytest.mark.asyncio
    async def test_check_proxy_requires_proxy(self, container: ComicGateContainer) -> None:
        with pytest.raises(ValidationError):
            await container.router.check_proxy(None)

    @pytest.mark.asyncio
    async def test_check_proxy_reports_status(
        self,
        container: ComicGateContainer,
        mock_transport: httpx.MockTransport,
        fake_mirrors: FakeMirrors,
    ) -> None:
        fake_mirrors.handler = lambda request: httpx.Response(200)

        with patch.object(
            container.http,
            "build_client",
            side_effect=lambda **kwargs: httpx.AsyncClient(transport=mock_transport),
        ) as build_client:
            message = await container.router.check_proxy("socks5://127.0.0.1:1080")

        assert message == "proxy ok (HTTP 200)"
        assert build_client.call_args.kwargs["proxy"] == "socks5://127.0.0.1:1080"

    @pytest.mark.asyncio
    async def test_check_proxy_failure_status(
        self,
        container: ComicGateContainer,
        mock_transport: httpx.MockTransport,
        fake_mirrors: FakeMirrors,
    ) -> None:
        fake_mirrors.handler = lambda request: httpx.Response(403)

        with patch.object(
            container.http,
            "build_client",
            side_effect=lambda **kwargs: httpx.AsyncClient(transport=mock_transport),
        ):
            with pytest.raises(TransientServerError, match="HTTP 403"):
                await container.router.check_proxy("socks5://127.0.0.1:1080")


# =============================================================================
# Client Provider
# =============================================================================


class TestHttpClientProvider:
    """Tests for client reuse across proxy changes."""

    @pytest.mark.asyncio
    async def test_replaced_client_closed_after_grace(
        self, test_settings: Settings, tmp_path: Path, mock_transport: httpx.MockTransport
    ) -> None:
        settings = test_settings.model_copy(update={"request_timeout": 0.01})
        runtime = RuntimeConfigStore(tmp_path / "config.json")
        provider = HttpClientProvider(settings, runtime, transport=mock_transport)

        first = await provider.get_client()
        assert await provider.get_client() is first

        runtime.set_socks_proxy("socks5://127.0.0.1:1080")
        second = await provider.get_client()

        assert second is not first
        assert not first.is_closed
        await asyncio.sleep(0.1)
        assert first.is_closed
        assert not second.is_closed

        await provider.close()
        assert second.is_closed

    @pytest.mark.asyncio
    async def test_close_releases_retiring_clients(
        self, test_settings: Settings, tmp_path: Path, mock_transport: httpx.MockTransport
    ) -> None:
        runtime = RuntimeConfigStore(tmp_path / "config.json")
        provider = HttpClientProvider(test_settings, runtime, transport=mock_transport)

        first = await provider.get_client()
        runtime.set_socks_proxy("socks5://127.0.0.1:1080")
        await provider.get_client()
        await provider.close()

        assert first.is_closed
