"""SubRip (.srt) support built on the ``srt`` library."""

import re
from datetime import timedelta
from typing import BinaryIO, List, Optional

import srt

from .encoding import decode_text
from .errors import SubtitleParseError
from .formats import SubtitleParser, SubtitleWriter
from .models import Cue, Track, clamp_range

# SubRip coordinate suffix, e.g. "X1:40 X2:600 Y1:20 Y2:50".
_COORDINATES_RE = re.compile(r"^(?:[XY][12]:\d+\s*)+$")


def _is_coordinates(value: Optional[str]) -> bool:
    return bool(value) and _COORDINATES_RE.match(value.strip()) is not None


class SrtParser(SubtitleParser):
    name = "srt"

    def parse(self, data: bytes) -> Track:
        text = decode_text(data).replace("\r\n", "\n")
        try:
            # srt.parse is lazy; errors surface while iterating.
            subtitles = list(srt.parse(text))
        except (srt.SRTParseError, srt.TimestampParseError) as exc:
            raise SubtitleParseError(self.name, str(exc)) from exc

        track = Track()
        for subtitle in subtitles:
            track.append(Cue(
                start=subtitle.start,
                end=subtitle.end,
                text=subtitle.content.strip("\n"),
                position=subtitle.proprietary or None,
            ))
        return track


class SrtWriter(SubtitleWriter):
    name = "srt"

    def write(self, track: Track, sink: BinaryIO) -> None:
        subtitles: List[srt.Subtitle] = []
        for number, cue in enumerate(track, start=1):
            start_ms, end_ms = clamp_range(cue)
            subtitles.append(srt.Subtitle(
                index=number,
                start=timedelta(milliseconds=start_ms),
                end=timedelta(milliseconds=end_ms),
                content=cue.text,
                proprietary=cue.position if _is_coordinates(cue.position) else "",
            ))
        # reindex=False keeps presentation order; compose would sort by start.
        sink.write(srt.compose(subtitles, reindex=False).encode("utf-8"))
