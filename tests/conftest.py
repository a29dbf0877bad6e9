"""Pytest configuration and fixtures for ComicGate tests.

This module provides reusable fixtures for:
- Settings pointed at a temporary data directory
- A programmable fake mirror transport
- The service container and the test FastAPI app
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from comicgate.config import Settings
from comicgate.main import create_app
from comicgate.services.container import ComicGateContainer
from tests.mocks.comic_api import MIRRORS, FakeMirrors


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test-specific settings.

    Three fake mirrors, no background loops, no retry delay, and every
    persisted file under ``tmp_path``.
    """
    return Settings(
        app_env="development",  # type: ignore[arg-type]
        log_level="DEBUG",  # type: ignore[arg-type]
        log_format="console",  # type: ignore[arg-type]
        data_dir=tmp_path / "data",
        cache_dir=tmp_path / "cache",
        api_base_list=",".join(MIRRORS),
        img_base="https://img.test",
        domain_server_urls="https://discovery-a.test/list.txt,https://discovery-b.test/list.txt",
        cover_retry_delay_ms=0,
        maintenance_enabled=False,
        discovery_on_startup=False,
    )


# =============================================================================
# Transport Fixtures
# =============================================================================


@pytest.fixture
def fake_mirrors() -> FakeMirrors:
    """A programmable upstream; set ``fake_mirrors.handler`` in the test."""
    return FakeMirrors()


@pytest.fixture
def mock_transport(fake_mirrors: FakeMirrors) -> httpx.MockTransport:
    return httpx.MockTransport(fake_mirrors)


@pytest.fixture
async def container(
    test_settings: Settings, mock_transport: httpx.MockTransport
) -> AsyncGenerator[ComicGateContainer, None]:
    """Service container wired to the fake mirrors."""
    container = ComicGateContainer.create(test_settings, transport=mock_transport)
    yield container
    await container.close()


# =============================================================================
# Application Fixtures
# =============================================================================


@pytest.fixture
def app(test_settings: Settings, mock_transport: httpx.MockTransport) -> FastAPI:
    """Create a test FastAPI application with test settings."""
    return create_app(settings=test_settings, transport=mock_transport)


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing.

    The lifespan is entered explicitly because ``ASGITransport`` does not
    send lifespan events.
    """
    async with app.router.lifespan_context(app):
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as client:
            yield client
