"""Parser / writer abstraction and the format registry."""

import io
import logging
import shutil
from abc import ABC, abstractmethod
from typing import BinaryIO, Dict, List, Optional

from .errors import InvalidArgumentError, UnsupportedFormatError
from .models import Track

# Chunk size used when copying a stream verbatim.
COPY_BUFFER_SIZE = 81920


class SubtitleParser(ABC):
    """Turns raw subtitle bytes into a :class:`Track`."""

    #: Format tag used in error messages.
    name: str = ""

    @abstractmethod
    def parse(self, data: bytes) -> Track:
        """Parse *data*; raise :class:`SubtitleParseError` on malformed input."""


class SubtitleWriter(ABC):
    """Serializes a :class:`Track` to a binary sink."""

    name: str = ""

    @abstractmethod
    def write(self, track: Track, sink: BinaryIO) -> None:
        """Write *track* to *sink*."""


def normalize_format(format: Optional[str]) -> str:
    """Return the lower-cased tag for *format* without a leading dot.

    Raises:
        InvalidArgumentError: when *format* is empty.
    """
    tag = (format or "").strip().lstrip(".").lower()
    if not tag:
        raise InvalidArgumentError("format must not be empty")
    return tag


def same_format(first: str, second: str) -> bool:
    return normalize_format(first) == normalize_format(second)


class FormatRegistry:
    """Maps format tags to parsers and writers.

    New formats are added with :meth:`register_parser` /
    :meth:`register_writer`; lookups never need to change.
    """

    def __init__(self) -> None:
        self._parsers: Dict[str, SubtitleParser] = {}
        self._writers: Dict[str, SubtitleWriter] = {}

    def register_parser(self, parser: SubtitleParser, *tags: str) -> None:
        for tag in tags:
            self._parsers[normalize_format(tag)] = parser

    def register_writer(self, writer: SubtitleWriter, *tags: str) -> None:
        for tag in tags:
            self._writers[normalize_format(tag)] = writer

    @property
    def parser_formats(self) -> List[str]:
        return sorted(self._parsers)

    @property
    def writer_formats(self) -> List[str]:
        return sorted(self._writers)

    def get_parser(self, format: str) -> Optional[SubtitleParser]:
        """Return the parser for *format*, or None when there is none."""
        return self._parsers.get(normalize_format(format))

    def require_parser(self, format: str) -> SubtitleParser:
        parser = self.get_parser(format)
        if parser is None:
            raise UnsupportedFormatError(format)
        return parser

    def get_writer(self, format: str) -> SubtitleWriter:
        writer = self._writers.get(normalize_format(format))
        if writer is None:
            raise UnsupportedFormatError(format)
        return writer

    def can_parse(self, format: str) -> bool:
        return self.get_parser(format) is not None

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def parse(self, data: bytes, format: str) -> Track:
        return self.require_parser(format).parse(data)

    def convert(self, stream: BinaryIO, input_format: str, output_format: str) -> io.BytesIO:
        """Convert *stream* from *input_format* to *output_format*.

        Equal tags (case-insensitive) copy the bytes verbatim without parsing.
        Otherwise the input is parsed once and written once.  Returns a new,
        rewound buffer; on failure the buffer is closed before the error
        propagates.
        """
        buffer = io.BytesIO()
        try:
            if same_format(input_format, output_format):
                shutil.copyfileobj(stream, buffer, COPY_BUFFER_SIZE)
            else:
                parser = self.require_parser(input_format)
                writer = self.get_writer(output_format)
                track = parser.parse(stream.read())
                logging.debug(
                    f"Parsed {len(track)} cue(s) from {input_format}, writing {output_format}"
                )
                writer.write(track, buffer)
            buffer.seek(0)
        except BaseException:
            buffer.close()
            raise
        return buffer


def default_registry() -> FormatRegistry:
    """Return a registry with the built-in SubRip, SSA/ASS and WebVTT support."""
    from .subrip import SrtParser, SrtWriter
    from .ssa import SsaParser, SsaWriter
    from .vtt import VttParser, VttWriter

    registry = FormatRegistry()
    registry.register_parser(SrtParser(), "srt")
    registry.register_parser(SsaParser(), "ssa", "ass")
    registry.register_parser(VttParser(), "vtt")
    registry.register_writer(SrtWriter(), "srt")
    registry.register_writer(SsaWriter(), "ass", "ssa")
    registry.register_writer(VttWriter(), "vtt")
    return registry
