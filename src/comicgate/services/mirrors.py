"""Mirror pool: the ordered set of API origins and the sticky cursor.

The pool is one explicitly constructed instance shared by the router, the
discovery service and the HTTP surface. All state sits behind a single
lock that is never held across network I/O.
"""

import re
import threading
from collections.abc import Iterable
from pathlib import Path

import structlog

from comicgate.config import (
    DEFAULT_API_BASE_LIST,
    FALLBACK_API_BASE,
    Settings,
)
from comicgate.storage.documents import read_json, write_json_atomic
from comicgate.storage.runtime_config import RuntimeConfig

logger = structlog.get_logger(__name__)

_LIST_SEPARATORS = re.compile(r"[,\s]+")


def normalize_base(value: str) -> str | None:
    """Reduce any host/URL string to ``scheme://host[:port]``.

    Adds ``https://`` when no scheme is present and drops path, query,
    fragment and trailing slashes. Blank input yields None.
    """
    raw = value.strip()
    if not raw:
        return None
    if not raw.startswith(("http://", "https://")):
        raw = f"https://{raw}"
    scheme, _, rest = raw.partition("://")
    host = re.split(r"[/?#]", rest, maxsplit=1)[0]
    if not host:
        return None
    return f"{scheme}://{host}"


def split_base_list(text: str) -> list[str]:
    """Parse a comma/whitespace separated list of bases, normalized and deduped."""
    return dedupe_bases(_LIST_SEPARATORS.split(text))


def dedupe_bases(items: Iterable[str]) -> list[str]:
    out: list[str] = []
    for item in items:
        if not isinstance(item, str):
            continue
        base = normalize_base(item)
        if base and base not in out:
            out.append(base)
    return out


class MirrorPool:
    """Ordered mirror bases plus a rotation cursor.

    ``candidates()`` yields every base exactly once, starting at the cursor
    and wrapping. ``pin()`` moves the cursor to the mirror that last
    answered successfully.
    """

    def __init__(self, bases: Iterable[str]) -> None:
        self._lock = threading.Lock()
        self._bases = dedupe_bases(bases)
        self._index = 0

    def bases(self) -> list[str]:
        with self._lock:
            return list(self._bases)

    @property
    def index(self) -> int:
        with self._lock:
            return self._index

    def candidates(self) -> list[tuple[int, str]]:
        with self._lock:
            n = len(self._bases)
            if n == 0:
                return []
            start = self._index % n
            return [((start + i) % n, self._bases[(start + i) % n]) for i in range(n)]

    def current(self) -> str | None:
        with self._lock:
            if not self._bases:
                return None
            return self._bases[self._index % len(self._bases)]

    def commit(self, bases: Iterable[str]) -> bool:
        """Replace the pool and reset the cursor; empty input is ignored."""
        new_bases = dedupe_bases(bases)
        if not new_bases:
            return False
        with self._lock:
            self._bases = new_bases
            self._index = 0
        logger.info("mirror_pool_committed", count=len(new_bases))
        return True

    def pin(self, index: int, base: str | None = None) -> None:
        """Move the cursor to ``index``.

        When ``base`` is given and the pool was replaced since the candidate
        list was taken, the base is looked up again; a base that is no
        longer present leaves the cursor alone.
        """
        with self._lock:
            if not self._bases:
                return
            if base is not None:
                if index < len(self._bases) and self._bases[index] == base:
                    self._index = index
                elif base in self._bases:
                    self._index = self._bases.index(base)
                return
            self._index = index % len(self._bases)


class MirrorListStore:
    """Persisted list of mirrors found by discovery (``api-domain-list.json``)."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def load(self) -> list[str]:
        data = read_json(self._path)
        if not isinstance(data, list):
            return []
        return dedupe_bases(data)

    def save(self, bases: list[str]) -> None:
        write_json_atomic(self._path, list(bases))


def seed_bases(
    settings: Settings,
    runtime: RuntimeConfig,
    cached: list[str],
) -> list[str]:
    """Initial pool contents in precedence order.

    Cached discovery results, configured lists and the env list are merged.
    Only when all of them are empty does the single-base override apply,
    then the built-in defaults, then the hard fallback.
    """
    out = dedupe_bases([*cached, *runtime.api_base_list])
    if settings.api_base_list:
        out = dedupe_bases([*out, *split_base_list(settings.api_base_list)])
    if not out and settings.api_base:
        out = dedupe_bases([settings.api_base])
    if not out:
        out = dedupe_bases(DEFAULT_API_BASE_LIST)
    if not out:
        out = [FALLBACK_API_BASE]
    return out
