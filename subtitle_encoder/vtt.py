"""WebVTT (.vtt) support."""

import re
from datetime import timedelta
from typing import BinaryIO, List, Optional

from .encoding import decode_text
from .errors import SubtitleParseError
from .formats import SubtitleParser, SubtitleWriter
from .models import Cue, Track, clamp_range

_TIMESTAMP = r"(?:\d+:)?\d{1,2}:\d{2}[.,]\d{3}"
_TIMING_RE = re.compile(
    rf"^({_TIMESTAMP})[ \t]+-->[ \t]+({_TIMESTAMP})(?:[ \t]+(.*))?$"
)
_SETTING_RE = re.compile(r"^(vertical|line|position|size|align|region):\S+$")
_TAG_RE = re.compile(r"<(/?)([^>\s./]*)[^>]*>")
_LT_RE = re.compile(r"<(?!/?[ibu]>)")
_KEPT_TAGS = ("i", "b", "u")
_SKIPPED_BLOCKS = ("NOTE", "STYLE", "REGION")


def parse_timestamp(value: str) -> timedelta:
    """Parse ``[HH:]MM:SS.mmm``."""
    clock, _, millis = value.replace(",", ".").partition(".")
    parts = [int(p) for p in clock.split(":")]
    if len(parts) == 2:
        parts.insert(0, 0)
    hours, minutes, seconds = parts
    return timedelta(
        hours=hours, minutes=minutes, seconds=seconds, milliseconds=int(millis)
    )


def format_timestamp(millis: int) -> str:
    """Format milliseconds as ``HH:MM:SS.mmm``."""
    hours, millis = divmod(millis, 3600000)
    minutes, millis = divmod(millis, 60000)
    seconds, millis = divmod(millis, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}"


def is_cue_settings(value: Optional[str]) -> bool:
    """Return True when *value* is a list of WebVTT cue settings."""
    return bool(value) and all(_SETTING_RE.match(token) for token in value.split())


def _strip_tags(text: str) -> str:
    def _keep(match: "re.Match[str]") -> str:
        closing, name = match.groups()
        if name in _KEPT_TAGS:
            return f"<{closing}{name}>"
        return ""

    text = _TAG_RE.sub(_keep, text)
    return (
        text.replace("&lt;", "<").replace("&gt;", ">")
        .replace("&nbsp;", " ").replace("&amp;", "&")
    )


def _escape(text: str) -> str:
    return _LT_RE.sub("&lt;", text.replace("&", "&amp;"))


class VttParser(SubtitleParser):
    name = "vtt"

    def parse(self, data: bytes) -> Track:
        text = decode_text(data).replace("\r\n", "\n").replace("\r", "\n")
        blocks = re.split(r"\n(?:[ \t]*\n)+", text.strip("\n"))
        if not blocks or not blocks[0].startswith("WEBVTT"):
            raise SubtitleParseError(self.name, "missing WEBVTT header")

        track = Track()
        # The first block is the header (plus any header metadata lines).
        for block in blocks[1:]:
            lines = block.split("\n")
            if not lines or not lines[0].strip():
                continue
            if lines[0].startswith(_SKIPPED_BLOCKS):
                continue
            track.append(self._parse_cue(lines))
        return track

    def _parse_cue(self, lines: List[str]) -> Cue:
        timing_index = 0 if "-->" in lines[0] else 1
        if timing_index >= len(lines):
            raise SubtitleParseError(self.name, f"cue without timing: {lines[0]!r}")
        match = _TIMING_RE.match(lines[timing_index].strip())
        if match is None:
            raise SubtitleParseError(
                self.name, f"invalid cue timing: {lines[timing_index]!r}"
            )
        start, end, settings = match.groups()
        return Cue(
            start=parse_timestamp(start),
            end=parse_timestamp(end),
            text=_strip_tags("\n".join(lines[timing_index + 1:])),
            position=settings.strip() if settings and settings.strip() else None,
        )


class VttWriter(SubtitleWriter):
    name = "vtt"

    def write(self, track: Track, sink: BinaryIO) -> None:
        parts = ["WEBVTT\n\n"]
        for cue in track:
            start, end = clamp_range(cue)
            timing = f"{format_timestamp(start)} --> {format_timestamp(end)}"
            if is_cue_settings(cue.position):
                timing = f"{timing} {cue.position}"
            # Blank lines would end the cue early.
            text = "\n".join(line for line in cue.lines if line.strip())
            parts.append(f"{timing}\n{_escape(text)}\n\n")
        sink.write("".join(parts).encode("utf-8"))
