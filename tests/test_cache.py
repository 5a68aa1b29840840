"""Tests for cache keys and cache paths."""

import hashlib
from pathlib import Path

from subtitle_encoder.cache import SubtitleCache, get_cache_key


class TestGetCacheKey:
    def test_deterministic(self) -> None:
        assert get_cache_key("/m/a.mkv", 2, 1700000000000000000) == get_cache_key(
            "/m/a.mkv", 2, 1700000000000000000
        )

    def test_md5_of_joined_fields(self) -> None:
        expected = hashlib.md5(b"/m/a.mkv_2_1700000000").hexdigest()
        assert get_cache_key("/m/a.mkv", 2, 1700000000) == expected

    def test_hex_format(self) -> None:
        key = get_cache_key("/m/a.mkv", 0, 0)
        assert len(key) == 32
        assert all(c in "0123456789abcdef" for c in key)

    def test_mtime_changes_key(self) -> None:
        assert get_cache_key("/m/a.mkv", 2, 1) != get_cache_key("/m/a.mkv", 2, 2)

    def test_index_changes_key(self) -> None:
        assert get_cache_key("/m/a.mkv", 2, 1) != get_cache_key("/m/a.mkv", 3, 1)

    def test_path_changes_key(self) -> None:
        assert get_cache_key("/m/a.mkv", 2, 1) != get_cache_key("/m/b.mkv", 2, 1)

    def test_unicode_path(self) -> None:
        key = get_cache_key("/m/Амели (2001).mkv", 1, 5)
        expected = hashlib.md5("/m/Амели (2001).mkv_1_5".encode("utf-8")).hexdigest()
        assert key == expected

    def test_undecodable_path(self) -> None:
        # os.fsdecode of a latin-1 file name on a UTF-8 filesystem.
        key = get_cache_key("/m/caf\udce9.mkv", 1, 5)
        assert len(key) == 32
        assert key != get_cache_key("/m/cafe.mkv", 1, 5)


class TestSubtitleCache:
    def test_layout(self, tmp_path: Path) -> None:
        cache = SubtitleCache(tmp_path)
        path = cache.get_path("/m/a.mkv", 2, 7, "ass")
        key = get_cache_key("/m/a.mkv", 2, 7)
        assert path == tmp_path / "subtitles" / key[0] / f"{key}.ass"

    def test_extension_dot_is_optional(self, tmp_path: Path) -> None:
        cache = SubtitleCache(tmp_path)
        assert cache.get_path("/m/a.mkv", 2, 7, ".ass") == cache.get_path("/m/a.mkv", 2, 7, "ass")

    def test_path_is_absolute(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        path = SubtitleCache("relative-cache").get_path("/m/a.mkv", 0, 0, "ass")
        assert path.is_absolute()
        assert path.parts[-4] == "relative-cache"

    def test_root(self, tmp_path: Path) -> None:
        assert SubtitleCache(str(tmp_path)).root == tmp_path / "subtitles"

    def test_no_directories_created(self, tmp_path: Path) -> None:
        SubtitleCache(tmp_path / "cache").get_path("/m/a.mkv", 0, 0, "ass")
        assert not (tmp_path / "cache").exists()
