"""Wiring of the shared service instances for one application lifetime."""

from dataclasses import dataclass

import httpx
import structlog

from comicgate.config import Settings
from comicgate.core.background import BackgroundRunner
from comicgate.services.cache_stats import CacheStatsService
from comicgate.services.cancellation import CancelRegistry
from comicgate.services.comics import ComicService
from comicgate.services.discovery import DomainDiscoveryService
from comicgate.services.http import HttpClientProvider
from comicgate.services.image_cache import CoverCache, ReadCache
from comicgate.services.mirrors import MirrorListStore, MirrorPool, seed_bases
from comicgate.services.router import RetrievalRouter
from comicgate.storage.runtime_config import RuntimeConfigStore

logger = structlog.get_logger(__name__)


@dataclass
class ComicGateContainer:
    """Every service shares the same pool, client provider and registry."""

    settings: Settings
    runtime: RuntimeConfigStore
    http: HttpClientProvider
    pool: MirrorPool
    mirror_store: MirrorListStore
    router: RetrievalRouter
    discovery: DomainDiscoveryService
    cancel_registry: CancelRegistry
    read_cache: ReadCache
    cover_cache: CoverCache
    cache_stats: CacheStatsService
    comics: ComicService
    background: BackgroundRunner

    @classmethod
    def create(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "ComicGateContainer":
        """Build the object graph, seeding the pool from disk and settings.

        Args:
            settings: Application settings
            transport: Optional httpx transport override (tests)
        """
        runtime = RuntimeConfigStore(settings.runtime_config_path)
        http = HttpClientProvider(settings, runtime, transport=transport)
        mirror_store = MirrorListStore(settings.mirror_list_path)
        pool = MirrorPool(seed_bases(settings, runtime.snapshot(), mirror_store.load()))
        router = RetrievalRouter(settings, http, pool, runtime)
        registry = CancelRegistry(settings.cancel_ttl_seconds, settings.cancel_max_keys)

        logger.info("mirror_pool_seeded", bases=pool.bases())

        return cls(
            settings=settings,
            runtime=runtime,
            http=http,
            pool=pool,
            mirror_store=mirror_store,
            router=router,
            discovery=DomainDiscoveryService(settings, http, pool, mirror_store),
            cancel_registry=registry,
            read_cache=ReadCache(settings, http, registry),
            cover_cache=CoverCache(settings, http),
            cache_stats=CacheStatsService(settings),
            comics=ComicService(settings, router),
            background=BackgroundRunner(),
        )

    def start_maintenance(self) -> None:
        """Startup discovery plus the periodic discovery and stats loops."""
        interval = self.settings.maintenance_interval_seconds
        if self.settings.discovery_on_startup:
            self.background.spawn_once("discovery_startup", self.discovery.refresh_quietly)
        if self.settings.maintenance_enabled:
            self.background.start("discovery", interval, self.discovery.refresh_quietly)
            self.background.start(
                "cache_stats", interval, self.cache_stats.refresh_quietly, run_first=True
            )

    async def close(self) -> None:
        await self.background.stop()
        await self.http.close()
