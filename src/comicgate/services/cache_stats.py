"""Read cache statistics and size-based eviction.

The statistics are a projection of the ``read/`` directory tree, refreshed
on a timer and on demand, and persisted so they can be reported without a
scan. Eviction removes whole comic directories, least recently written
first.
"""

import asyncio
import os
import shutil
import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from comicgate.config import Settings
from comicgate.schemas.cache import CacheSnapshot, CacheSummary, ComicCacheStat
from comicgate.storage.documents import read_json, write_json_atomic

logger = structlog.get_logger(__name__)


@dataclass
class ComicDirScan:
    aid: str
    path: Path
    files: int
    bytes: int
    newest_ms: int


def scan_comic_dir(path: Path) -> ComicDirScan:
    """Walk one comic directory, counting regular files and their sizes."""
    files = 0
    total = 0
    newest_ms = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for name in filenames:
            try:
                st = os.stat(os.path.join(dirpath, name))
            except OSError:
                continue
            files += 1
            total += st.st_size
            newest_ms = max(newest_ms, int(st.st_mtime * 1000))
    return ComicDirScan(aid=path.name, path=path, files=files, bytes=total, newest_ms=newest_ms)


def scan_read_cache(root: Path) -> list[ComicDirScan]:
    if not root.is_dir():
        return []
    return [scan_comic_dir(entry) for entry in sorted(root.iterdir()) if entry.is_dir()]


class CacheStatsService:
    """Scans, persists and trims the read cache."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def _root(self) -> Path:
        return self._settings.read_cache_dir

    @property
    def _snapshot_path(self) -> Path:
        return self._settings.cache_stats_path

    def refresh_sync(self) -> CacheSummary:
        started = time.perf_counter()
        scans = [s for s in scan_read_cache(self._root) if s.files > 0]
        summary = CacheSummary(
            total_bytes=sum(s.bytes for s in scans),
            total_files=sum(s.files for s in scans),
            total_comics=len(scans),
            updated_at=int(time.time() * 1000),
            elapsed_ms=int((time.perf_counter() - started) * 1000),
        )
        snapshot = CacheSnapshot(
            summary=summary,
            comics=[
                ComicCacheStat(aid=s.aid, files=s.files, bytes=s.bytes, updated_at=s.newest_ms)
                for s in scans
            ],
        )
        write_json_atomic(self._snapshot_path, snapshot.model_dump())
        logger.info(
            "cache_stats_refreshed",
            total_bytes=summary.total_bytes,
            total_files=summary.total_files,
            total_comics=summary.total_comics,
            elapsed_ms=summary.elapsed_ms,
        )
        return summary

    async def refresh(self) -> CacheSummary:
        """Rescan the read cache and persist the snapshot."""
        return await asyncio.to_thread(self.refresh_sync)

    async def refresh_quietly(self) -> CacheSummary | None:
        """Background variant: failures are logged only."""
        try:
            return await self.refresh()
        except OSError as e:
            logger.warning("cache_stats_refresh_failed", error=str(e))
            return None

    def load_snapshot(self) -> CacheSnapshot:
        data = read_json(self._snapshot_path)
        if not isinstance(data, dict):
            return CacheSnapshot()
        try:
            return CacheSnapshot.model_validate(data)
        except ValueError as e:
            logger.warning("cache_stats_snapshot_invalid", error=str(e))
            return CacheSnapshot()

    def load(self) -> CacheSummary:
        """Last persisted summary, zeros when none exists."""
        return self.load_snapshot().summary

    def cleanup_sync(self, max_bytes: int) -> CacheSummary:
        if not self._root.exists():
            return CacheSummary()

        scans = scan_read_cache(self._root)
        total = sum(s.bytes for s in scans)
        removed = 0
        if total > max_bytes:
            for scan in sorted(scans, key=lambda s: s.newest_ms):
                if total <= max_bytes:
                    break
                try:
                    shutil.rmtree(scan.path)
                except OSError as e:
                    logger.warning("cache_evict_failed", aid=scan.aid, error=str(e))
                    continue
                total -= scan.bytes
                removed += 1
        logger.info("cache_cleanup_done", max_bytes=max_bytes, removed_comics=removed)
        return self.refresh_sync()

    async def cleanup(self, max_bytes: int) -> CacheSummary:
        """Evict whole comic directories until the cache fits ``max_bytes``."""
        return await asyncio.to_thread(self.cleanup_sync, max_bytes)
