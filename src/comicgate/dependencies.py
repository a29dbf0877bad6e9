"""FastAPI dependency injection.

Services live on one :class:`ComicGateContainer` created in the application
lifespan. These functions hand its members to route handlers and can be
overridden in tests through ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends, Request

from comicgate.services.cache_stats import CacheStatsService
from comicgate.services.cancellation import CancelRegistry
from comicgate.services.comics import ComicService
from comicgate.services.container import ComicGateContainer
from comicgate.services.discovery import DomainDiscoveryService
from comicgate.services.image_cache import CoverCache, ReadCache
from comicgate.services.mirrors import MirrorPool
from comicgate.services.router import RetrievalRouter
from comicgate.storage.runtime_config import RuntimeConfigStore


# ========================================
# Container
# ========================================
def get_container(request: Request) -> ComicGateContainer:
    """Get the service container stored on the app during lifespan."""
    return request.app.state.container


ContainerDep = Annotated[ComicGateContainer, Depends(get_container)]


# ========================================
# Service Dependencies
# ========================================
def get_mirror_pool(container: ContainerDep) -> MirrorPool:
    return container.pool


def get_router(container: ContainerDep) -> RetrievalRouter:
    return container.router


def get_discovery(container: ContainerDep) -> DomainDiscoveryService:
    return container.discovery


def get_comic_service(container: ContainerDep) -> ComicService:
    return container.comics


def get_read_cache(container: ContainerDep) -> ReadCache:
    return container.read_cache


def get_cover_cache(container: ContainerDep) -> CoverCache:
    return container.cover_cache


def get_cancel_registry(container: ContainerDep) -> CancelRegistry:
    return container.cancel_registry


def get_cache_stats(container: ContainerDep) -> CacheStatsService:
    return container.cache_stats


def get_runtime_config(container: ContainerDep) -> RuntimeConfigStore:
    return container.runtime


MirrorPoolDep = Annotated[MirrorPool, Depends(get_mirror_pool)]
RouterDep = Annotated[RetrievalRouter, Depends(get_router)]
DiscoveryDep = Annotated[DomainDiscoveryService, Depends(get_discovery)]
ComicServiceDep = Annotated[ComicService, Depends(get_comic_service)]
ReadCacheDep = Annotated[ReadCache, Depends(get_read_cache)]
CoverCacheDep = Annotated[CoverCache, Depends(get_cover_cache)]
CancelRegistryDep = Annotated[CancelRegistry, Depends(get_cancel_registry)]
CacheStatsDep = Annotated[CacheStatsService, Depends(get_cache_stats)]
RuntimeConfigDep = Annotated[RuntimeConfigStore, Depends(get_runtime_config)]
