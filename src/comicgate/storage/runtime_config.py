"""User-settable runtime configuration persisted as ``config.json``.

Unlike :class:`comicgate.config.Settings`, which is read once from the
environment, this document is changed while the service runs (proxy,
extra mirrors, login cookies) and must survive restarts.
"""

import threading
from pathlib import Path

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from comicgate.core.exceptions import ValidationError
from comicgate.storage.documents import read_json, write_json_atomic

logger = structlog.get_logger(__name__)


class RuntimeConfig(BaseModel):
    """On-disk shape of ``config.json`` (camelCase keys)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    socks_proxy: str | None = None
    api_base_list: list[str] = Field(default_factory=list)
    session_cookies: dict[str, str] = Field(default_factory=dict)


def normalize_proxy(proxy: str | None) -> str | None:
    """Trim a proxy URL and validate it, mapping blank input to None.

    Raises:
        ValidationError: If httpx cannot use the URL as a proxy
    """
    if proxy is None:
        return None
    proxy = proxy.strip()
    if not proxy:
        return None
    try:
        httpx.Proxy(proxy)
    except (ValueError, httpx.InvalidURL) as e:
        raise ValidationError(
            message=f"invalid proxy url: {e}", field="socks_proxy"
        ) from e
    return proxy


class RuntimeConfigStore:
    """Thread-safe holder of the runtime config, backed by a JSON document."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._config = self._load()

    def _load(self) -> RuntimeConfig:
        data = read_json(self._path)
        if not isinstance(data, dict):
            return RuntimeConfig()
        try:
            return RuntimeConfig.model_validate(data)
        except ValueError as e:
            logger.warning("runtime_config_invalid", path=str(self._path), error=str(e))
            return RuntimeConfig()

    def _save(self) -> None:
        write_json_atomic(self._path, self._config.model_dump(by_alias=True))

    def snapshot(self) -> RuntimeConfig:
        with self._lock:
            return self._config.model_copy(deep=True)

    @property
    def socks_proxy(self) -> str | None:
        with self._lock:
            return self._config.socks_proxy

    @property
    def session_cookies(self) -> dict[str, str]:
        with self._lock:
            return dict(self._config.session_cookies)

    def set_socks_proxy(self, proxy: str | None) -> str | None:
        """Validate and persist the proxy; blank clears it."""
        value = normalize_proxy(proxy)
        with self._lock:
            self._config.socks_proxy = value
            self._save()
        logger.info("socks_proxy_updated", enabled=value is not None)
        return value

    def save_session_cookies(self, cookies: dict[str, str]) -> None:
        with self._lock:
            self._config.session_cookies = dict(cookies)
            self._save()
        logger.info("session_cookies_saved", count=len(cookies))
