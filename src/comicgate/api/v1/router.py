"""API v1 main router.

Aggregates all v1 API routers into a single router for inclusion in the app.
"""

from fastapi import APIRouter

from comicgate.api.v1.auth import router as auth_router
from comicgate.api.v1.cache import router as cache_router
from comicgate.api.v1.comics import router as comics_router
from comicgate.api.v1.config import router as config_router
from comicgate.api.v1.mirrors import router as mirrors_router
from comicgate.api.v1.reading import router as reading_router

router = APIRouter()

router.include_router(mirrors_router, prefix="/mirrors", tags=["Mirrors"])
router.include_router(comics_router, prefix="/comics", tags=["Comics"])
router.include_router(auth_router, prefix="/auth", tags=["Auth"])
router.include_router(reading_router, prefix="/reading", tags=["Reading"])
router.include_router(cache_router, prefix="/cache", tags=["Cache"])
router.include_router(config_router, prefix="/config", tags=["Config"])
