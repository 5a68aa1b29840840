"""Media library collaborator: item, media source and stream lookup."""

import json
import logging
import re
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Set

from .encoding import normalize_language

# Image-based subtitle codecs that cannot be turned into text without OCR.
IMAGE_BASED_CODECS: Set[str] = {
    "hdmv_pgs_subtitle", "pgssub", "hdmv pgs", "dvd_subtitle", "dvdsub",
    "vobsub", "dvbsub", "dvb_subtitle",
}

VIDEO_EXTENSIONS: Set[str] = {".mkv", ".mp4", ".webm", ".mov", ".avi", ".m2ts", ".ts"}

SUBTITLE_EXTENSIONS: Set[str] = {
    ".srt", ".ass", ".ssa", ".vtt", ".sub", ".smi", ".sami", ".ttml", ".dfxp",
}

_DVD_VOB_RE = re.compile(r"^VTS_(\d{2})_(\d+)\.VOB$", re.IGNORECASE)


class VideoType(Enum):
    VIDEO_FILE = "video_file"
    BLURAY = "bluray"
    DVD = "dvd"


@dataclass
class MediaStream:
    index: int
    codec: str
    type: str = "subtitle"
    language: str = "und"
    title: str = ""
    forced: bool = False
    is_external: bool = False
    path: Optional[str] = None

    @property
    def is_image_based(self) -> bool:
        return self.codec.lower() in IMAGE_BASED_CODECS


@dataclass
class MediaSource:
    id: str
    path: str
    is_remote: bool = False
    video_type: Optional[VideoType] = None
    streams: List[MediaStream] = field(default_factory=list)


@dataclass
class LibraryItem:
    id: str
    name: str
    media_sources: List[MediaSource] = field(default_factory=list)


class MediaLibrary(Protocol):
    """What the subtitle service needs from a media library."""

    def get_item(self, item_id: str) -> Optional[LibraryItem]:
        ...

    def get_playable_stream_files(self, media_source_id: str) -> List[str]:
        ...


class ProbeLibrary:
    """A library backed directly by the filesystem and ffprobe.

    Item ids and media source ids are paths: a video file, or a Blu-ray /
    DVD folder.  Embedded subtitle streams keep ffprobe's global stream
    index; sidecar files named ``<stem>.<lang>[.<n>].<ext>`` are appended as
    external streams numbered after them.
    """

    def __init__(self, probe_path: str = "ffprobe") -> None:
        self.probe_path = probe_path

    # ------------------------------------------------------------------
    # MediaLibrary interface
    # ------------------------------------------------------------------

    def get_item(self, item_id: str) -> Optional[LibraryItem]:
        path = Path(item_id)
        if not path.exists():
            return None

        video_type = self.detect_video_type(path)
        if video_type is None:
            return None

        if video_type == VideoType.VIDEO_FILE:
            input_argument = str(path)
        else:
            files = self.get_playable_stream_files(item_id)
            if not files:
                logging.warning(f"No playable stream files found in {path}")
                return None
            input_argument = "concat:" + "|".join(files) if len(files) > 1 else files[0]

        streams = self.probe_subtitle_streams(input_argument)
        if video_type == VideoType.VIDEO_FILE:
            next_index = max((s.index for s in streams), default=-1) + 1
            streams.extend(self.find_sidecar_streams(path, next_index))

        source = MediaSource(id=item_id, path=str(path), video_type=video_type, streams=streams)
        name = path.name if path.is_dir() else path.stem
        return LibraryItem(id=item_id, name=name, media_sources=[source])

    def get_playable_stream_files(self, media_source_id: str) -> List[str]:
        """Return the files that make up the main title of a disc folder."""
        path = Path(media_source_id)
        video_type = self.detect_video_type(path)
        if video_type == VideoType.BLURAY:
            return self._bluray_files(path)
        if video_type == VideoType.DVD:
            return self._dvd_files(path)
        return [str(path)]

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    @staticmethod
    def detect_video_type(path: Path) -> Optional[VideoType]:
        if path.is_file():
            if path.suffix.lower() in VIDEO_EXTENSIONS:
                return VideoType.VIDEO_FILE
            return None
        if (path / "BDMV").is_dir() or path.name.upper() == "BDMV":
            return VideoType.BLURAY
        if (path / "VIDEO_TS").is_dir() or path.name.upper() == "VIDEO_TS":
            return VideoType.DVD
        return None

    @staticmethod
    def _bluray_files(path: Path) -> List[str]:
        bdmv = path if path.name.upper() == "BDMV" else path / "BDMV"
        m2ts = list((bdmv / "STREAM").glob("*.m2ts"))
        if not m2ts:
            return []
        # The main feature is the largest clip.
        return [str(max(m2ts, key=lambda p: p.stat().st_size))]

    @staticmethod
    def _dvd_files(path: Path) -> List[str]:
        video_ts = path if path.name.upper() == "VIDEO_TS" else path / "VIDEO_TS"
        title_sets: Dict[str, List[Path]] = {}
        for vob in video_ts.glob("*"):
            match = _DVD_VOB_RE.match(vob.name)
            # Part 0 of every title set is its menu.
            if match and int(match.group(2)) > 0:
                title_sets.setdefault(match.group(1), []).append(vob)
        if not title_sets:
            return []
        main = max(title_sets.values(), key=lambda vobs: sum(v.stat().st_size for v in vobs))
        main.sort(key=lambda v: int(_DVD_VOB_RE.match(v.name).group(2)))
        return [str(v) for v in main]

    # ------------------------------------------------------------------
    # Stream discovery
    # ------------------------------------------------------------------

    def probe_subtitle_streams(self, input_argument: str) -> List[MediaStream]:
        """Return every embedded subtitle stream reported by ffprobe."""
        try:
            result = subprocess.run(
                [self.probe_path, "-v", "quiet", "-print_format", "json",
                 "-show_streams", input_argument],
                capture_output=True, text=True, check=True,
            )
            data = json.loads(result.stdout)
        except (subprocess.SubprocessError, OSError, json.JSONDecodeError) as exc:
            logging.error(f"Error reading streams of {input_argument}: {exc}")
            return []

        streams: List[MediaStream] = []
        for stream in data.get("streams", []):
            if stream.get("codec_type") != "subtitle":
                continue
            tags = stream.get("tags", {})
            disposition = stream.get("disposition", {})
            streams.append(MediaStream(
                index=stream["index"],
                codec=stream.get("codec_name", "unknown"),
                language=normalize_language(tags.get("language", tags.get("LANGUAGE", "und"))),
                title=tags.get("title", tags.get("TITLE", "")),
                forced=disposition.get("forced", 0) == 1,
            ))
        return streams

    @staticmethod
    def find_sidecar_streams(video_file: Path, first_index: int) -> List[MediaStream]:
        """Return external subtitle files that belong to *video_file*."""
        prefix = f"{video_file.stem}."
        candidates = sorted(
            p for p in video_file.parent.iterdir()
            if p.is_file()
            and p.name.startswith(prefix)
            and p.suffix.lower() in SUBTITLE_EXTENSIONS
        )

        streams: List[MediaStream] = []
        for offset, sub_file in enumerate(candidates):
            middle = sub_file.name[len(prefix):-len(sub_file.suffix)]
            parts = [part for part in middle.split(".") if part]
            language = normalize_language(parts[0]) if parts else "und"
            streams.append(MediaStream(
                index=first_index + offset,
                codec=sub_file.suffix.lstrip(".").lower(),
                language=language or "und",
                title=middle,
                forced="forced" in (part.lower() for part in parts),
                is_external=True,
                path=str(sub_file),
            ))
        return streams
