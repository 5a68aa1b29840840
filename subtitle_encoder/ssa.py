"""SubStation Alpha (.ssa) and Advanced SubStation Alpha (.ass) support."""

import re
from datetime import timedelta
from typing import BinaryIO, Dict, List, Optional

from .encoding import decode_text
from .errors import SubtitleParseError
from .formats import SubtitleParser, SubtitleWriter
from .models import Cue, Track, clamp_range

# Column layout used when an [Events] section has no Format line.
DEFAULT_EVENT_FORMAT: List[str] = [
    "layer", "start", "end", "style", "name",
    "marginl", "marginr", "marginv", "effect", "text",
]

DEFAULT_STYLE = "Default"

_TIMESTAMP_RE = re.compile(r"^(\d+):(\d{1,2}):(\d{1,2})(?:[.:](\d{1,3}))?$")
_OVERRIDE_RE = re.compile(r"\{([^}]*)\}")
_TOGGLE_RE = re.compile(r"\\([ibu])(\d+)(?=\\|$)")
_HTML_TAG_RE = re.compile(r"</?([a-zA-Z]+)[^>]*>")

_STYLE_FORMAT = (
    "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, "
    "OutlineColour, BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, "
    "ScaleY, Spacing, Angle, BorderStyle, Outline, Shadow, Alignment, "
    "MarginL, MarginR, MarginV, Encoding"
)
_STYLE_VALUES = (
    "Arial,20,&H00FFFFFF,&H000000FF,&H00000000,&H00000000,0,0,0,0,"
    "100,100,0,0,1,2,0,2,10,10,10,1"
)
_EVENT_FORMAT = "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text"


def parse_timestamp(value: str) -> timedelta:
    """Parse an ``H:MM:SS.cc`` timestamp."""
    match = _TIMESTAMP_RE.match(value.strip())
    if match is None:
        raise ValueError(f"Unparseable timestamp: {value!r}")
    hours, minutes, seconds, fraction = match.groups()
    millis = int((fraction or "0").ljust(3, "0"))
    return timedelta(
        hours=int(hours), minutes=int(minutes), seconds=int(seconds), milliseconds=millis
    )


def format_timestamp(millis: int) -> str:
    """Format milliseconds as ``H:MM:SS.cc``."""
    centis = millis // 10
    hours, centis = divmod(centis, 360000)
    minutes, centis = divmod(centis, 6000)
    seconds, centis = divmod(centis, 100)
    return f"{hours}:{minutes:02d}:{seconds:02d}.{centis:02d}"


def _override_to_markup(match: "re.Match[str]") -> str:
    tags = []
    for name, value in _TOGGLE_RE.findall(match.group(1)):
        tags.append(f"</{name}>" if int(value) == 0 else f"<{name}>")
    return "".join(tags)


def ass_to_text(value: str) -> str:
    """Convert ASS dialogue text to plain text with light markup."""
    text = _OVERRIDE_RE.sub(_override_to_markup, value)
    return text.replace("\\N", "\n").replace("\\n", "\n").replace("\\h", " ").strip()


def text_to_ass(value: str) -> str:
    """Convert plain text with light markup to ASS dialogue text."""

    def _tag(match: "re.Match[str]") -> str:
        name = match.group(1).lower()
        if name not in ("i", "b", "u"):
            return ""
        closing = match.group(0).startswith("</")
        return f"{{\\{name}{0 if closing else 1}}}"

    text = _HTML_TAG_RE.sub(_tag, value)
    return text.replace("\r\n", "\n").replace("\n", "\\N")


class SsaParser(SubtitleParser):
    """Reads the [Events] section of SSA and ASS scripts."""

    name = "ass"

    def parse(self, data: bytes) -> Track:
        track = Track()
        section: Optional[str] = None
        seen_section = False
        fields: List[str] = DEFAULT_EVENT_FORMAT

        for line_no, raw_line in enumerate(decode_text(data).splitlines(), start=1):
            line = raw_line.strip()
            if not line or line.startswith(";"):
                continue
            if line.startswith("[") and line.endswith("]"):
                section = line[1:-1].strip().lower()
                seen_section = True
                continue
            if section != "events":
                continue

            key, sep, value = line.partition(":")
            if not sep:
                continue
            key = key.strip().lower()
            if key == "format":
                fields = [f.strip().lower() for f in value.split(",")]
                if "text" not in fields or fields[-1] != "text":
                    raise SubtitleParseError(
                        self.name, f"line {line_no}: Format must end with Text"
                    )
            elif key == "dialogue":
                track.append(self._parse_dialogue(value, fields, line_no))

        if not seen_section:
            raise SubtitleParseError(self.name, "no [Script Info] or [Events] section")
        return track

    def _parse_dialogue(self, value: str, fields: List[str], line_no: int) -> Cue:
        parts = value.lstrip().split(",", len(fields) - 1)
        if len(parts) < len(fields):
            raise SubtitleParseError(
                self.name,
                f"line {line_no}: expected {len(fields)} fields, got {len(parts)}",
            )
        record: Dict[str, str] = dict(zip(fields, parts))
        try:
            start = parse_timestamp(record.get("start", ""))
            end = parse_timestamp(record.get("end", ""))
        except ValueError as exc:
            raise SubtitleParseError(self.name, f"line {line_no}: {exc}") from exc
        return Cue(
            start=start,
            end=end,
            text=ass_to_text(record["text"]),
            style=record.get("style", "").strip() or None,
        )


class SsaWriter(SubtitleWriter):
    """Writes an ASS v4.00+ script with one style per distinct cue style."""

    name = "ass"

    def write(self, track: Track, sink: BinaryIO) -> None:
        styles = [DEFAULT_STYLE]
        for cue in track:
            style = self._style_name(cue)
            if style not in styles:
                styles.append(style)

        lines = [
            "[Script Info]",
            "ScriptType: v4.00+",
            "WrapStyle: 0",
            "ScaledBorderAndShadow: yes",
            "",
            "[V4+ Styles]",
            _STYLE_FORMAT,
        ]
        lines.extend(f"Style: {style},{_STYLE_VALUES}" for style in styles)
        lines.extend(["", "[Events]", _EVENT_FORMAT])
        for cue in track:
            start, end = clamp_range(cue)
            lines.append(
                f"Dialogue: 0,{format_timestamp(start)},{format_timestamp(end)},"
                f"{self._style_name(cue)},,0,0,0,,{text_to_ass(cue.text)}"
            )
        sink.write(("\n".join(lines) + "\n").encode("utf-8"))

    @staticmethod
    def _style_name(cue: Cue) -> str:
        return (cue.style or DEFAULT_STYLE).replace(",", " ")
