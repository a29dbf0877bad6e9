"""JSON document persistence with temp-file-then-rename writes.

Every persisted artifact (runtime config, discovered mirror list, cache
statistics, cached images) goes through these helpers so that a crash
mid-write never leaves a truncated file at the final path.
"""

import json
import os
from pathlib import Path
from typing import Any
from uuid import uuid4

import structlog

logger = structlog.get_logger(__name__)


def read_json(path: Path) -> Any | None:
    """Load a JSON document, returning None when missing or unreadable."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning("document_read_failed", path=str(path), error=str(e))
        return None
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("document_corrupt", path=str(path), error=str(e))
        return None


def _temp_sibling(path: Path) -> Path:
    return path.with_name(f".{path.name}.tmp.{uuid4().hex}")


def write_bytes_atomic(path: Path, data: bytes, *, overwrite: bool = True) -> bool:
    """Write ``data`` to ``path`` through a temporary sibling.

    Args:
        path: Final location
        data: File contents
        overwrite: When False and ``path`` already exists after the temp
            file is written, the temp file is discarded instead

    Returns:
        True if ``path`` now holds ``data`` written by this call
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = _temp_sibling(path)
    try:
        tmp_path.write_bytes(data)
        if not overwrite and path.exists():
            tmp_path.unlink(missing_ok=True)
            return False
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
    return True


def write_json_atomic(path: Path, data: Any) -> None:
    """Serialize ``data`` as pretty-printed JSON and replace ``path``."""
    payload = json.dumps(data, ensure_ascii=False, indent=2).encode("utf-8")
    write_bytes_atomic(path, payload)
