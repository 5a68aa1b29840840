"""Content-addressed cache layout for converted subtitle files."""

import hashlib
from pathlib import Path
from typing import Union


def get_cache_key(media_path: str, stream_index: int, mtime_ns: int) -> str:
    """Return the hex cache key for one subtitle stream of *media_path*.

    The key is the MD5 of ``<path>_<index>_<mtime>``.  Index and mtime are
    integers, so the string splits back unambiguously from the right and
    distinct triples never share an input.  Touching the media file changes
    *mtime_ns* and therefore the key.
    """
    raw = f"{media_path}_{int(stream_index)}_{int(mtime_ns)}"
    # surrogatepass: paths decoded with surrogateescape must still hash.
    return hashlib.md5(raw.encode("utf-8", "surrogatepass"), usedforsecurity=False).hexdigest()


class SubtitleCache:
    """Maps subtitle streams to files under ``<cache_path>/subtitles``.

    Files are sharded by the first hex character of their key:
    ``<cache_path>/subtitles/<k>/<key>.<ext>``.  Existence of the file is
    the cache-hit signal; entries are never rewritten.
    """

    def __init__(self, cache_path: Union[str, Path]) -> None:
        self.cache_path = Path(cache_path)

    @property
    def root(self) -> Path:
        return self.cache_path / "subtitles"

    def get_path(
        self, media_path: str, stream_index: int, mtime_ns: int, extension: str
    ) -> Path:
        """Return the absolute cache path for the given stream and extension."""
        key = get_cache_key(media_path, stream_index, mtime_ns)
        filename = f"{key}.{extension.lstrip('.')}"
        return (self.root / key[0] / filename).absolute()
