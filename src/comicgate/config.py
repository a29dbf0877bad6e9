"""Application configuration using Pydantic Settings.

This module provides centralized configuration management with environment
variable validation, type coercion, and default values. Every setting can be
overridden with a ``COMICGATE_``-prefixed environment variable or a ``.env``
file entry.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_BASE = "https://www.cdnhth.club"
DEFAULT_API_BASE_LIST = ("www.cdngwc.cc",)
FALLBACK_API_BASE = "https://www.cdnhth.club"

DEFAULT_DOMAIN_SERVER_URLS = (
    "https://rup4a04-c01.tos-ap-southeast-1.bytepluses.com/newsvr-2025.txt",
    "https://rup4a04-c02.tos-cn-hongkong.bytepluses.com/newsvr-2025.txt",
)

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/114.0.0.0 Safari/537.36 Edg/114.0.1823.43"
)
MOBILE_USER_AGENT = (
    "Mozilla/5.0 (Linux; Android 7.1.2; DT1901A Build/N2G47O; wv) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Version/4.0 "
    "Chrome/86.0.4240.198 Mobile Safari/537.36"
)


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Log level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log format options."""

    JSON = "json"
    CONSOLE = "console"


class Settings(BaseSettings):
    """Application settings with environment variable validation.

    All settings can be overridden via environment variables.
    Protocol secrets should be provided via environment variables or .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="COMICGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Application
    # ========================================
    app_env: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    app_name: str = Field(
        default="ComicGate",
        description="Application name",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Version of this service (not the upstream protocol version)",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    log_format: LogFormat = Field(
        default=LogFormat.CONSOLE,
        description="Log output format (json for production, console for dev)",
    )

    # ========================================
    # Server
    # ========================================
    host: str = Field(
        default="127.0.0.1",
        description="Server host",
    )
    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Server port",
    )

    # ========================================
    # Filesystem
    # ========================================
    data_dir: Path = Field(
        default=Path("./data"),
        description="Directory holding config.json, the mirror list and cache stats",
    )
    cache_dir: Path = Field(
        default=Path("./data/cache"),
        description="Root of the read/ and cover/ image caches",
    )

    # ========================================
    # Network
    # ========================================
    socks_proxy: str | None = Field(
        default=None,
        description="Default proxy URL (socks5://, http://) when none is set at runtime",
    )
    request_timeout: float = Field(
        default=20.0,
        gt=0,
        description="Timeout in seconds for API requests",
    )
    latency_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Timeout in seconds for the per-mirror latency probe",
    )
    proxy_check_timeout: float = Field(
        default=8.0,
        gt=0,
        description="Timeout in seconds for the proxy connectivity check",
    )
    image_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for page image downloads",
    )
    cover_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Timeout in seconds for a single cover download attempt",
    )

    # ========================================
    # Mirrors
    # ========================================
    api_base: str | None = Field(
        default=None,
        description="Single API base override",
    )
    api_base_list: str | None = Field(
        default=None,
        description="Comma or whitespace separated list of API bases",
    )
    img_base: str = Field(
        default="https://cdn-msp.jmapinodeudzn.net",
        description="Origin serving page images",
    )
    domain_server_urls: str = Field(
        default=",".join(DEFAULT_DOMAIN_SERVER_URLS),
        description="Comma separated discovery documents listing the current API mirrors",
    )

    # ========================================
    # Protocol
    # ========================================
    header_version: str = Field(
        default="1.7.5",
        description="Version sent in the tokenparam header",
    )
    app_version: str = Field(
        default="2.0.6",
        description="Client version sent in the version header",
    )
    user_agent: str = Field(
        default=DESKTOP_USER_AGENT,
        description="User agent for API requests",
    )
    content_user_agent: str = Field(
        default=MOBILE_USER_AGENT,
        description="User agent for the chapter template endpoint",
    )

    # ========================================
    # Secrets
    # ========================================
    app_data_secret: SecretStr = Field(
        default=SecretStr("185Hcomic3PAPP7R"),
        description="Secret used to derive the response decryption key",
    )
    app_token_secret: SecretStr = Field(
        default=SecretStr("18comicAPP"),
        description="Secret used to derive the request token",
    )
    app_content_token_secret: SecretStr = Field(
        default=SecretStr("18comicAPPContent"),
        description="Token secret for the chapter template endpoint",
    )
    domain_server_secret: SecretStr = Field(
        default=SecretStr("diosfjckwpqpdfjkvnqQjsik"),
        description="Secret used to decrypt the mirror discovery document",
    )

    # ========================================
    # Cache
    # ========================================
    cover_max_concurrent: int = Field(
        default=4,
        ge=1,
        description="Maximum concurrent cover downloads",
    )
    cover_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per cover download",
    )
    cover_retry_delay_ms: int = Field(
        default=300,
        ge=0,
        description="Fixed delay between cover download attempts",
    )

    # ========================================
    # Cancellation
    # ========================================
    cancel_ttl_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Idle time after which a cancellation token is dropped",
    )
    cancel_max_keys: int = Field(
        default=512,
        ge=1,
        description="Hard cap on live cancellation tokens",
    )

    # ========================================
    # Maintenance
    # ========================================
    maintenance_enabled: bool = Field(
        default=True,
        description="Run the periodic discovery and cache-stat loops",
    )
    maintenance_interval_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Sleep between background maintenance runs",
    )
    discovery_on_startup: bool = Field(
        default=True,
        description="Refresh the mirror list once at startup",
    )

    # ========================================
    # Derived Properties
    # ========================================
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == Environment.PRODUCTION

    @property
    def use_json_logs(self) -> bool:
        """Check if JSON logging should be used."""
        return self.log_format == LogFormat.JSON or self.is_production

    @property
    def read_cache_dir(self) -> Path:
        return self.cache_dir / "read"

    @property
    def cover_cache_dir(self) -> Path:
        return self.cache_dir / "cover"

    @property
    def runtime_config_path(self) -> Path:
        return self.data_dir / "config.json"

    @property
    def mirror_list_path(self) -> Path:
        return self.data_dir / "api-domain-list.json"

    @property
    def cache_stats_path(self) -> Path:
        return self.data_dir / "cache-stats.json"

    @property
    def discovery_urls(self) -> list[str]:
        """Discovery URLs in the order they are tried."""
        return [u.strip() for u in self.domain_server_urls.split(",") if u.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    This function is cached to avoid re-reading environment variables
    on every access. Use dependency injection in FastAPI routes.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
