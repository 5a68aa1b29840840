"""Subtitle service: serves library subtitle streams in a requested format."""

import asyncio
import io
import logging
import os
from pathlib import Path
from typing import BinaryIO, List, Optional, Tuple

from .cache import SubtitleCache
from .encoder import InputType, SubtitleEncoder
from .errors import InvalidArgumentError, SubtitleNotFoundError, UnsupportedFormatError
from .formats import FormatRegistry, default_registry
from .library import LibraryItem, MediaLibrary, MediaSource, MediaStream, VideoType

# Every extraction and foreign-format conversion goes to ASS: it is the
# richest structured format the parsers read back.
INTERMEDIATE_FORMAT = "ass"


class SubtitleService:
    """Answers "subtitle stream S of item I in format F".

    Embedded streams and external files in formats without a parser are
    first turned into a cached ASS file by the :class:`SubtitleEncoder`;
    the resulting file (or the external file itself) is then converted in
    memory by the :class:`FormatRegistry`.
    """

    def __init__(
        self,
        library: MediaLibrary,
        encoder: SubtitleEncoder,
        cache: SubtitleCache,
        registry: Optional[FormatRegistry] = None,
    ) -> None:
        self.library = library
        self.encoder = encoder
        self.cache = cache
        self.registry = registry or default_registry()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def convert_subtitles(
        self, stream: BinaryIO, input_format: str, output_format: str
    ) -> io.BytesIO:
        """Convert *stream* between two named formats, without any caching."""
        return await asyncio.to_thread(
            self.registry.convert, stream, input_format, output_format
        )

    async def get_subtitles(
        self, item_id: str, media_source_id: str, stream_index: int, output_format: str
    ) -> io.BytesIO:
        """Return subtitle stream *stream_index* of the item in *output_format*.

        The result is a fully-buffered, rewound in-memory stream.
        """
        if not output_format:
            raise InvalidArgumentError("output_format must not be empty")
        path, input_format = await self.get_subtitle_file(item_id, media_source_id, stream_index)
        return await asyncio.to_thread(self._convert_file, path, input_format, output_format)

    async def get_subtitle_file(
        self, item_id: str, media_source_id: str, stream_index: int
    ) -> Tuple[Path, str]:
        """Return ``(readable file, its format)`` for one library subtitle stream."""
        if not item_id:
            raise InvalidArgumentError("item_id must not be empty")
        if not media_source_id:
            raise InvalidArgumentError("media_source_id must not be empty")

        item = await asyncio.to_thread(self.library.get_item, item_id)
        if item is None:
            raise SubtitleNotFoundError(f"Item not found: {item_id}")
        media_source = self._find_media_source(item, media_source_id)
        subtitle_stream = self._find_subtitle_stream(media_source, stream_index)

        input_type, input_files = await self._get_input(media_source)
        return await self.get_readable_file(
            media_source.path, input_files, input_type, subtitle_stream,
            remote=media_source.is_remote,
        )

    async def get_readable_file(
        self,
        media_path: str,
        input_files: List[str],
        input_type: InputType,
        subtitle_stream: MediaStream,
        remote: bool = False,
    ) -> Tuple[Path, str]:
        """Make sure a parseable file exists for *subtitle_stream* and return it."""
        if not subtitle_stream.is_external:
            if subtitle_stream.is_image_based:
                raise UnsupportedFormatError(
                    subtitle_stream.codec,
                    f"Image-based subtitle stream {subtitle_stream.index} "
                    f"({subtitle_stream.codec}) cannot be converted to text",
                )
            output_path = self._cache_path(media_path, subtitle_stream.index, remote)
            await self.encoder.extract_text_subtitle(
                input_files, input_type, subtitle_stream.index, False, output_path
            )
            return output_path, INTERMEDIATE_FORMAT

        if not subtitle_stream.path:
            raise SubtitleNotFoundError(
                f"External subtitle stream {subtitle_stream.index} has no path"
            )
        current_format = self.get_external_format(subtitle_stream)

        if not self.registry.can_parse(current_format):
            output_path = self._cache_path(media_path, subtitle_stream.index, remote)
            await self.encoder.convert_text_subtitle_to_ass(
                subtitle_stream.path, output_path, subtitle_stream.language
            )
            return output_path, INTERMEDIATE_FORMAT

        return Path(subtitle_stream.path), current_format

    @staticmethod
    def get_external_format(subtitle_stream: MediaStream) -> str:
        """Return the format tag of an external stream: its extension, else its codec."""
        suffix = Path(subtitle_stream.path or "").suffix
        return (suffix or subtitle_stream.codec).lstrip(".")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _find_media_source(item: LibraryItem, media_source_id: str) -> MediaSource:
        for source in item.media_sources:
            if source.id == media_source_id:
                return source
        raise SubtitleNotFoundError(
            f"Media source {media_source_id} not found for item {item.id}"
        )

    @staticmethod
    def _find_subtitle_stream(media_source: MediaSource, stream_index: int) -> MediaStream:
        for stream in media_source.streams:
            if stream.type == "subtitle" and stream.index == stream_index:
                return stream
        raise SubtitleNotFoundError(
            f"Subtitle stream {stream_index} not found in media source {media_source.id}"
        )

    async def _get_input(self, media_source: MediaSource) -> Tuple[InputType, List[str]]:
        if media_source.video_type == VideoType.BLURAY:
            input_type = InputType.BLURAY
        elif media_source.video_type == VideoType.DVD:
            input_type = InputType.DVD
        else:
            input_type = InputType.URL if media_source.is_remote else InputType.FILE
            return input_type, [media_source.path]

        input_files = await asyncio.to_thread(
            self.library.get_playable_stream_files, media_source.id
        )
        if not input_files:
            raise SubtitleNotFoundError(f"No playable files for media source {media_source.id}")
        return input_type, list(input_files)

    def _cache_path(self, media_path: str, stream_index: int, remote: bool) -> Path:
        mtime_ns = 0
        if not remote:
            try:
                mtime_ns = os.stat(media_path).st_mtime_ns
            except FileNotFoundError as exc:
                raise SubtitleNotFoundError(f"Media file not found: {media_path}") from exc
        return self.cache.get_path(media_path, stream_index, mtime_ns, INTERMEDIATE_FORMAT)

    def _convert_file(self, path: Path, input_format: str, output_format: str) -> io.BytesIO:
        logging.debug(f"Converting {path} from {input_format} to {output_format}")
        with open(path, "rb") as stream:
            return self.registry.convert(stream, input_format, output_format)
