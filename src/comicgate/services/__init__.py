"""Services package for ComicGate.

This module exports the service classes that make up the retrieval layer.
"""

from comicgate.services.cache_stats import CacheStatsService
from comicgate.services.cancellation import CancelRegistry, CancelToken
from comicgate.services.comics import ComicService
from comicgate.services.container import ComicGateContainer
from comicgate.services.descramble import ImageFormat, descramble, segmentation_num
from comicgate.services.discovery import DomainDiscoveryService
from comicgate.services.http import HttpClientProvider
from comicgate.services.image_cache import CoverCache, ReadCache
from comicgate.services.mirrors import MirrorListStore, MirrorPool, normalize_base
from comicgate.services.router import RetrievalRouter

__all__ = [
    # Wiring
    "ComicGateContainer",
    "HttpClientProvider",
    # Mirrors
    "DomainDiscoveryService",
    "MirrorListStore",
    "MirrorPool",
    "RetrievalRouter",
    "normalize_base",
    # Comics
    "ComicService",
    # Images
    "CacheStatsService",
    "CancelRegistry",
    "CancelToken",
    "CoverCache",
    "ImageFormat",
    "ReadCache",
    "descramble",
    "segmentation_num",
]
