"""Tests for mirror normalization, the pool cursor and pool seeding."""

from pathlib import Path

import pytest

from comicgate.config import DEFAULT_API_BASE_LIST, Settings
from comicgate.services.mirrors import (
    MirrorListStore,
    MirrorPool,
    normalize_base,
    seed_bases,
    split_base_list,
)
from comicgate.storage.runtime_config import RuntimeConfig


class TestNormalizeBase:
    """Tests for normalize_base and list parsing."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("www.example.cc", "https://www.example.cc"),
            ("  https://a.example/path?q=1 ", "https://a.example"),
            ("http://b.example:8080/", "http://b.example:8080"),
            ("c.example#frag", "https://c.example"),
            ("", None),
            ("   ", None),
            ("https://", None),
        ],
    )
    def test_normalize(self, raw: str, expected: str | None) -> None:
        assert normalize_base(raw) == expected

    def test_split_dedupes_in_order(self) -> None:
        text = "a.example, b.example\nhttps://a.example/  c.example"
        assert split_base_list(text) == [
            "https://a.example",
            "https://b.example",
            "https://c.example",
        ]


class TestMirrorPool:
    """Tests for candidate rotation, pin and commit."""

    def test_candidates_cover_every_base_once(self) -> None:
        pool = MirrorPool(["a.x", "b.x", "c.x"])
        pool.pin(1)
        assert pool.candidates() == [
            (1, "https://b.x"),
            (2, "https://c.x"),
            (0, "https://a.x"),
        ]

    def test_empty_pool(self) -> None:
        pool = MirrorPool([])
        assert pool.candidates() == []
        assert pool.current() is None

    def test_commit_resets_cursor(self) -> None:
        pool = MirrorPool(["a.x", "b.x"])
        pool.pin(1)
        assert pool.commit(["c.x", "d.x"])
        assert pool.index == 0
        assert pool.current() == "https://c.x"

    def test_commit_ignores_empty_list(self) -> None:
        pool = MirrorPool(["a.x"])
        assert not pool.commit(["", "  "])
        assert pool.bases() == ["https://a.x"]

    def test_pin_after_pool_replaced_looks_up_base(self) -> None:
        pool = MirrorPool(["a.x", "b.x", "c.x"])
        candidates = pool.candidates()
        pool.commit(["c.x", "a.x"])
        index, base = candidates[2]
        pool.pin(index, base)
        assert pool.current() == "https://c.x"
        assert pool.index == 0

    def test_pin_unknown_base_keeps_cursor(self) -> None:
        pool = MirrorPool(["a.x", "b.x"])
        pool.pin(1, "https://gone.x")
        assert pool.index == 0


class TestSeedBases:
    """Tests for the initial pool precedence."""

    def test_cached_and_configured_merge(self, tmp_path: Path) -> None:
        settings = Settings(data_dir=tmp_path, api_base_list="b.x,c.x", api_base="z.x")
        runtime = RuntimeConfig(api_base_list=["a.x"])
        bases = seed_bases(settings, runtime, ["https://cached.x"])
        assert bases == ["https://cached.x", "https://a.x", "https://b.x", "https://c.x"]

    def test_single_override_only_when_lists_empty(self, tmp_path: Path) -> None:
        settings = Settings(data_dir=tmp_path, api_base="z.x", api_base_list=None)
        assert seed_bases(settings, RuntimeConfig(), []) == ["https://z.x"]

    def test_defaults_when_nothing_configured(self, tmp_path: Path) -> None:
        settings = Settings(data_dir=tmp_path, api_base=None, api_base_list=None)
        bases = seed_bases(settings, RuntimeConfig(), [])
        assert bases == [normalize_base(b) for b in DEFAULT_API_BASE_LIST]


class TestMirrorListStore:
    """Tests for the persisted discovery list."""

    def test_round_trip(self, tmp_path: Path) -> None:
        store = MirrorListStore(tmp_path / "api-domain-list.json")
        store.save(["https://a.x", "https://b.x"])
        assert store.load() == ["https://a.x", "https://b.x"]

    def test_missing_or_corrupt_file(self, tmp_path: Path) -> None:
        path = tmp_path / "api-domain-list.json"
        store = MirrorListStore(path)
        assert store.load() == []
        path.write_text("{not json", encoding="utf-8")
        assert store.load() == []
