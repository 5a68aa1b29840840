"""In-memory subtitle track model."""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Iterator, List, Optional, Tuple


@dataclass
class Cue:
    """One timed subtitle event.

    ``text`` holds plain text with ``\\n`` line breaks and the light markup
    tags ``<i>``, ``<b>`` and ``<u>``.  ``style`` and ``position`` are carried
    opaquely for the formats that understand them (ASS style name, WebVTT cue
    settings, SubRip coordinates).  ``end >= start`` is expected but not
    enforced here.
    """

    start: timedelta
    end: timedelta
    text: str
    style: Optional[str] = None
    position: Optional[str] = None

    @property
    def lines(self) -> List[str]:
        return self.text.split("\n")


@dataclass
class Track:
    """Ordered cues of one subtitle stream, in presentation order."""

    cues: List[Cue] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.cues)

    def __iter__(self) -> Iterator[Cue]:
        return iter(self.cues)

    def append(self, cue: Cue) -> None:
        self.cues.append(cue)


def to_milliseconds(value: timedelta) -> int:
    """Return *value* as a whole number of milliseconds."""
    return value // timedelta(milliseconds=1)


def clamp_range(cue: Cue) -> Tuple[int, int]:
    """Return ``(start_ms, end_ms)`` with negatives and inverted ranges clamped."""
    start = max(0, to_milliseconds(cue.start))
    end = max(start, to_milliseconds(cue.end))
    return start, end
