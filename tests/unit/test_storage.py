"""Tests for atomic document writes and the runtime config store."""

import json
from pathlib import Path

import pytest

from comicgate.core.exceptions import ValidationError
from comicgate.storage.documents import read_json, write_bytes_atomic, write_json_atomic
from comicgate.storage.runtime_config import RuntimeConfigStore, normalize_proxy


class TestDocuments:
    """Tests for the temp-then-rename helpers."""

    def test_write_and_read_json(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "doc.json"
        write_json_atomic(path, {"a": [1, 2]})
        assert read_json(path) == {"a": [1, 2]}
        assert [p.name for p in path.parent.iterdir()] == ["doc.json"]

    def test_no_overwrite_keeps_existing(self, tmp_path: Path) -> None:
        path = tmp_path / "page.png"
        assert write_bytes_atomic(path, b"first", overwrite=False)
        assert not write_bytes_atomic(path, b"second", overwrite=False)
        assert path.read_bytes() == b"first"
        assert [p.name for p in tmp_path.iterdir()] == ["page.png"]

    def test_read_missing_empty_corrupt(self, tmp_path: Path) -> None:
        assert read_json(tmp_path / "absent.json") is None
        (tmp_path / "empty.json").write_text("  ")
        assert read_json(tmp_path / "empty.json") is None
        (tmp_path / "bad.json").write_text("{")
        assert read_json(tmp_path / "bad.json") is None


class TestRuntimeConfigStore:
    """Tests for the persisted runtime config."""

    def test_proxy_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        store = RuntimeConfigStore(path)

        assert store.set_socks_proxy("  socks5://127.0.0.1:1080 ") == "socks5://127.0.0.1:1080"
        assert json.loads(path.read_text())["socksProxy"] == "socks5://127.0.0.1:1080"
        assert RuntimeConfigStore(path).socks_proxy == "socks5://127.0.0.1:1080"

        assert store.set_socks_proxy("") is None
        assert RuntimeConfigStore(path).socks_proxy is None

    def test_invalid_proxy_rejected(self, tmp_path: Path) -> None:
        store = RuntimeConfigStore(tmp_path / "config.json")
        with pytest.raises(ValidationError):
            store.set_socks_proxy("ftp://proxy.example")
        assert store.socks_proxy is None

    def test_session_cookies(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        RuntimeConfigStore(path).save_session_cookies({"AVS": "abc"})
        assert RuntimeConfigStore(path).session_cookies == {"AVS": "abc"}

    def test_camel_case_document(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"apiBaseList": ["a.example"], "socksProxy": None}))
        assert RuntimeConfigStore(path).snapshot().api_base_list == ["a.example"]

    def test_normalize_proxy_blank(self) -> None:
        assert normalize_proxy(None) is None
        assert normalize_proxy("   ") is None
