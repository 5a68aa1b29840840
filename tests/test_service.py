"""Tests for the subtitle service."""

import asyncio
import io
import os
import sys
import textwrap
from pathlib import Path
from typing import Dict, List, Optional, Union

import pytest
from subtitle_encoder.cache import SubtitleCache
from subtitle_encoder.encoder import InputType, SubtitleEncoder
from subtitle_encoder.errors import (
    InvalidArgumentError,
    SubtitleNotFoundError,
    UnsupportedFormatError,
)
from subtitle_encoder.library import LibraryItem, MediaSource, MediaStream, VideoType
from subtitle_encoder.locks import KeyedLockRegistry
from subtitle_encoder.service import SubtitleService

ASS_OUTPUT = textwrap.dedent("""\
    [Script Info]
    ScriptType: v4.00+

    [Events]
    Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text
    Dialogue: 0,0:00:01.00,0:00:02.00,Default,,0,0,0,,Extracted line
""")

SRT_FILE = b"1\n00:00:05,000 --> 00:00:06,000\nSidecar line\n\n"


class FakeLibrary:
    def __init__(self, items: List[LibraryItem], playable: Optional[Dict[str, List[str]]] = None) -> None:
        self.items = {item.id: item for item in items}
        self.playable = playable or {}

    def get_item(self, item_id: str) -> Optional[LibraryItem]:
        return self.items.get(item_id)

    def get_playable_stream_files(self, media_source_id: str) -> List[str]:
        return self.playable.get(media_source_id, [])


class RecordingEncoder:
    """Stands in for SubtitleEncoder; writes a fixed ASS file."""

    def __init__(self) -> None:
        self.extract_calls: List[tuple] = []
        self.convert_calls: List[tuple] = []

    async def extract_text_subtitle(self, input_files, input_type, stream_index, copy_stream, output_path):
        self.extract_calls.append((list(input_files), input_type, stream_index, copy_stream, output_path))
        self._write(output_path)

    async def convert_text_subtitle_to_ass(self, input_path, output_path, language=None):
        self.convert_calls.append((input_path, output_path, language))
        self._write(output_path)

    @staticmethod
    def _write(output_path: Path) -> None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(ASS_OUTPUT, encoding="utf-8")


@pytest.fixture
def video(tmp_path: Path) -> Path:
    path = tmp_path / "media" / "movie.mkv"
    path.parent.mkdir()
    path.write_bytes(b"\x1a\x45\xdf\xa3")
    return path


def make_item(path: Union[str, Path], streams: List[MediaStream], **source_kwargs) -> LibraryItem:
    source = MediaSource(id="source-1", path=str(path), streams=streams, **source_kwargs)
    return LibraryItem(id="item-1", name="movie", media_sources=[source])


def make_service(tmp_path: Path, items: List[LibraryItem], **kwargs) -> SubtitleService:
    return SubtitleService(
        library=FakeLibrary(items, kwargs.pop("playable", None)),
        encoder=kwargs.pop("encoder", None) or RecordingEncoder(),
        cache=SubtitleCache(tmp_path / "cache"),
    )


def read(result: io.BytesIO) -> str:
    with result:
        return result.read().decode("utf-8")


class TestConvertSubtitles:
    def test_srt_to_vtt(self, tmp_path: Path) -> None:
        service = make_service(tmp_path, [])
        result = asyncio.run(service.convert_subtitles(io.BytesIO(SRT_FILE), "srt", "vtt"))
        assert read(result) == "WEBVTT\n\n00:00:05.000 --> 00:00:06.000\nSidecar line\n\n"

    def test_unsupported(self, tmp_path: Path) -> None:
        service = make_service(tmp_path, [])
        with pytest.raises(UnsupportedFormatError):
            asyncio.run(service.convert_subtitles(io.BytesIO(SRT_FILE), "srt", "ttml"))


class TestEmbeddedStreams:
    def test_extracts_to_cache_and_converts(self, tmp_path: Path, video: Path) -> None:
        service = make_service(tmp_path, [make_item(video, [MediaStream(index=2, codec="subrip")])])

        result = asyncio.run(service.get_subtitles("item-1", "source-1", 2, "srt"))

        assert read(result) == "1\n00:00:01,000 --> 00:00:02,000\nExtracted line\n\n"
        [(files, input_type, index, copy, output)] = service.encoder.extract_calls
        assert files == [str(video)]
        assert input_type == InputType.FILE
        assert index == 2
        assert copy is False
        mtime = os.stat(video).st_mtime_ns
        assert output == service.cache.get_path(str(video), 2, mtime, "ass")

    def test_returns_intermediate_format(self, tmp_path: Path, video: Path) -> None:
        service = make_service(tmp_path, [make_item(video, [MediaStream(index=2, codec="ass")])])
        path, fmt = asyncio.run(service.get_subtitle_file("item-1", "source-1", 2))
        assert fmt == "ass"
        assert path.is_absolute()
        assert path.exists()

    def test_touching_media_changes_cache_path(self, tmp_path: Path, video: Path) -> None:
        service = make_service(tmp_path, [make_item(video, [MediaStream(index=2, codec="subrip")])])
        first, _ = asyncio.run(service.get_subtitle_file("item-1", "source-1", 2))
        stat = os.stat(video)
        os.utime(video, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
        second, _ = asyncio.run(service.get_subtitle_file("item-1", "source-1", 2))
        assert first != second

    def test_image_based_stream_rejected(self, tmp_path: Path, video: Path) -> None:
        stream = MediaStream(index=3, codec="hdmv_pgs_subtitle")
        service = make_service(tmp_path, [make_item(video, [stream])])
        with pytest.raises(UnsupportedFormatError):
            asyncio.run(service.get_subtitles("item-1", "source-1", 3, "srt"))
        assert service.encoder.extract_calls == []

    def test_missing_media_file(self, tmp_path: Path) -> None:
        gone = tmp_path / "gone.mkv"
        service = make_service(tmp_path, [make_item(gone, [MediaStream(index=2, codec="subrip")])])
        with pytest.raises(SubtitleNotFoundError):
            asyncio.run(service.get_subtitles("item-1", "source-1", 2, "srt"))

    def test_remote_source_uses_zero_mtime(self, tmp_path: Path) -> None:
        url = "http://example.invalid/movie.mkv"
        item = make_item(url, [MediaStream(index=2, codec="subrip")], is_remote=True)
        service = make_service(tmp_path, [item])

        asyncio.run(service.get_subtitle_file("item-1", "source-1", 2))

        [(files, input_type, _, _, output)] = service.encoder.extract_calls
        assert files == [url]
        assert input_type == InputType.URL
        assert output == service.cache.get_path(url, 2, 0, "ass")

    def test_dvd_uses_playable_files(self, tmp_path: Path) -> None:
        disc = tmp_path / "Movie"
        disc.mkdir()
        parts = [str(disc / "VIDEO_TS" / "VTS_01_1.VOB"), str(disc / "VIDEO_TS" / "VTS_01_2.VOB")]
        item = make_item(disc, [MediaStream(index=1, codec="dvd_subtitle"), MediaStream(index=4, codec="subrip")],
                         video_type=VideoType.DVD)
        service = make_service(tmp_path, [item], playable={"source-1": parts})

        asyncio.run(service.get_subtitle_file("item-1", "source-1", 4))

        [(files, input_type, _, _, _)] = service.encoder.extract_calls
        assert files == parts
        assert input_type == InputType.DVD

    def test_disc_without_playable_files(self, tmp_path: Path) -> None:
        disc = tmp_path / "Movie"
        disc.mkdir()
        item = make_item(disc, [MediaStream(index=4, codec="subrip")], video_type=VideoType.BLURAY)
        service = make_service(tmp_path, [item])
        with pytest.raises(SubtitleNotFoundError):
            asyncio.run(service.get_subtitle_file("item-1", "source-1", 4))


class TestExternalStreams:
    def test_parseable_file_served_directly(self, tmp_path: Path, video: Path) -> None:
        sidecar = video.with_name("movie.en.srt")
        sidecar.write_bytes(SRT_FILE)
        stream = MediaStream(index=5, codec="srt", is_external=True, path=str(sidecar))
        service = make_service(tmp_path, [make_item(video, [stream])])

        path, fmt = asyncio.run(service.get_subtitle_file("item-1", "source-1", 5))
        assert (path, fmt) == (sidecar, "srt")

        result = asyncio.run(service.get_subtitles("item-1", "source-1", 5, "vtt"))
        assert "Sidecar line" in read(result)
        assert service.encoder.extract_calls == []
        assert service.encoder.convert_calls == []

    def test_same_format_is_byte_identical(self, tmp_path: Path, video: Path) -> None:
        sidecar = video.with_name("movie.en.srt")
        original = b"\xef\xbb\xbf" + SRT_FILE.replace(b"\n", b"\r\n")
        sidecar.write_bytes(original)
        stream = MediaStream(index=5, codec="srt", is_external=True, path=str(sidecar))
        service = make_service(tmp_path, [make_item(video, [stream])])

        result = asyncio.run(service.get_subtitles("item-1", "source-1", 5, "SRT"))
        with result:
            assert result.read() == original

    def test_foreign_format_converted_through_cache(self, tmp_path: Path, video: Path) -> None:
        sidecar = video.with_name("movie.bg.smi")
        sidecar.write_text("<SAMI></SAMI>")
        stream = MediaStream(
            index=6, codec="sami", language="bg", is_external=True, path=str(sidecar)
        )
        service = make_service(tmp_path, [make_item(video, [stream])])

        result = asyncio.run(service.get_subtitles("item-1", "source-1", 6, "vtt"))

        assert "Extracted line" in read(result)
        [(input_path, output, language)] = service.encoder.convert_calls
        assert input_path == str(sidecar)
        assert language == "bg"
        mtime = os.stat(video).st_mtime_ns
        assert output == service.cache.get_path(str(video), 6, mtime, "ass")

    def test_external_without_path(self, tmp_path: Path, video: Path) -> None:
        stream = MediaStream(index=5, codec="srt", is_external=True)
        service = make_service(tmp_path, [make_item(video, [stream])])
        with pytest.raises(SubtitleNotFoundError):
            asyncio.run(service.get_subtitle_file("item-1", "source-1", 5))


class TestExternalFormat:
    def test_extension_wins(self) -> None:
        stream = MediaStream(index=0, codec="subrip", is_external=True, path="/m/a.en.SRT")
        assert SubtitleService.get_external_format(stream) == "SRT"

    def test_codec_fallback(self) -> None:
        stream = MediaStream(index=0, codec="vtt", is_external=True, path="/m/subtitle")
        assert SubtitleService.get_external_format(stream) == "vtt"


class TestLookups:
    def test_unknown_item(self, tmp_path: Path) -> None:
        service = make_service(tmp_path, [])
        with pytest.raises(SubtitleNotFoundError):
            asyncio.run(service.get_subtitles("nope", "source-1", 0, "srt"))

    def test_unknown_media_source(self, tmp_path: Path, video: Path) -> None:
        service = make_service(tmp_path, [make_item(video, [MediaStream(index=2, codec="subrip")])])
        with pytest.raises(SubtitleNotFoundError):
            asyncio.run(service.get_subtitles("item-1", "other-source", 2, "srt"))

    def test_unknown_stream_index(self, tmp_path: Path, video: Path) -> None:
        service = make_service(tmp_path, [make_item(video, [MediaStream(index=2, codec="subrip")])])
        with pytest.raises(SubtitleNotFoundError):
            asyncio.run(service.get_subtitles("item-1", "source-1", 9, "srt"))

    def test_non_subtitle_stream_index(self, tmp_path: Path, video: Path) -> None:
        audio = MediaStream(index=1, codec="aac", type="audio")
        service = make_service(tmp_path, [make_item(video, [audio])])
        with pytest.raises(SubtitleNotFoundError):
            asyncio.run(service.get_subtitles("item-1", "source-1", 1, "srt"))

    @pytest.mark.parametrize("item_id,source_id,fmt", [
        ("", "source-1", "srt"),
        ("item-1", "", "srt"),
        ("item-1", "source-1", ""),
    ])
    def test_empty_arguments(self, tmp_path: Path, video: Path, item_id: str, source_id: str, fmt: str) -> None:
        service = make_service(tmp_path, [make_item(video, [MediaStream(index=2, codec="subrip")])])
        with pytest.raises(InvalidArgumentError):
            asyncio.run(service.get_subtitles(item_id, source_id, 2, fmt))


@pytest.mark.skipif(sys.platform == "win32", reason="fake encoder is a shebang script")
class TestWithEncoder:
    def test_concurrent_requests_share_one_extraction(
        self, tmp_path: Path, video: Path, fake_encoder
    ) -> None:
        fake_encoder.set_mode("ok", delay=0.3)
        encoder = SubtitleEncoder(
            tmp_path / "logs", encoder_path=str(fake_encoder.path), locks=KeyedLockRegistry()
        )
        service = make_service(
            tmp_path, [make_item(video, [MediaStream(index=2, codec="subrip")])], encoder=encoder
        )

        async def _run() -> List[io.BytesIO]:
            return await asyncio.gather(
                service.get_subtitles("item-1", "source-1", 2, "vtt"),
                service.get_subtitles("item-1", "source-1", 2, "srt"),
                service.get_subtitles("item-1", "source-1", 2, "ass"),
            )

        vtt_result, srt_result, ass_result = asyncio.run(_run())
        assert len(fake_encoder.calls) == 1
        assert "<i>world</i>" in read(vtt_result)
        assert "Hello <i>world</i>" in read(srt_result)
        # Same-format request returns the cached file, font fix included.
        assert ",Arial Unicode MS," in read(ass_result)

        # A second round is served from the cache.
        asyncio.run(service.get_subtitles("item-1", "source-1", 2, "vtt")).close()
        assert len(fake_encoder.calls) == 1
