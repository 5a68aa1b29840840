"""Pre-populates the subtitle cache for a directory of videos."""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
)

from .errors import SubtitleError
from .library import VIDEO_EXTENSIONS, ProbeLibrary
from .service import SubtitleService


class CacheWarmer:
    """Extracts every embedded text subtitle stream under a directory."""

    def __init__(
        self,
        service: SubtitleService,
        library: ProbeLibrary,
        jobs: int = 1,
        show_progress: bool = True,
    ) -> None:
        self.service = service
        self.library = library
        self.jobs = max(1, jobs)
        self.show_progress = show_progress

        self.stats: Dict[str, int] = {
            "videos": 0,
            "cached": 0,
            "skipped": 0,
            "errors": 0,
        }
        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None

    @staticmethod
    def find_video_files(directory: Path) -> List[Path]:
        """Return video files and disc folders under *directory*, sorted."""
        found: List[Path] = []
        for path in sorted(directory.rglob("*")):
            if any(parent in found for parent in path.parents):
                continue
            if path.is_file() and path.suffix.lower() in VIDEO_EXTENSIONS:
                # Disc stream files are covered by their disc folder.
                if "BDMV" in (p.upper() for p in path.parts):
                    continue
                found.append(path)
            elif path.is_dir() and ProbeLibrary.detect_video_type(path) is not None:
                found.append(path)
        return found

    async def warm(self, directory: Path) -> None:
        """Make sure every embedded text stream under *directory* is cached."""
        self.start_time = datetime.now()
        videos = self.find_video_files(directory)
        if not videos:
            logging.info(f"No video files found in {directory}")
            self.end_time = datetime.now()
            return

        logging.info(f"Found {len(videos)} video(s), using {self.jobs} parallel job(s)")
        semaphore = asyncio.Semaphore(self.jobs)

        if self.show_progress:
            progress = Progress(
                SpinnerColumn(),
                TextColumn("[bold blue]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                TextColumn("•"),
                TimeRemainingColumn(),
            )
            with progress:
                task_id = progress.add_task("Caching subtitles", total=len(videos))

                async def _one(video: Path) -> None:
                    await self._warm_video(video, semaphore)
                    progress.advance(task_id)

                await asyncio.gather(*(_one(video) for video in videos))
        else:
            await asyncio.gather(*(self._warm_video(video, semaphore) for video in videos))

        self.end_time = datetime.now()

    async def _warm_video(self, video: Path, semaphore: asyncio.Semaphore) -> None:
        async with semaphore:
            item_id = str(video.absolute())
            item = await asyncio.to_thread(self.library.get_item, item_id)
            if item is None:
                logging.warning(f"Skipped: could not read {video}")
                self.stats["errors"] += 1
                return
            self.stats["videos"] += 1

            for source in item.media_sources:
                for stream in source.streams:
                    if stream.is_external:
                        continue
                    if stream.is_image_based:
                        logging.debug(f"  Skipped image-based stream {stream.index} of {video.name}")
                        self.stats["skipped"] += 1
                        continue
                    try:
                        path, _ = await self.service.get_subtitle_file(
                            item.id, source.id, stream.index
                        )
                    except SubtitleError as exc:
                        logging.error(f"  Stream {stream.index} of {video.name}: {exc}")
                        self.stats["errors"] += 1
                        continue
                    logging.debug(f"  Cached stream {stream.index} of {video.name}: {path}")
                    self.stats["cached"] += 1

    def print_summary(self) -> None:
        """Log the run summary."""
        logging.info("=" * 50)
        logging.info("SUMMARY")
        logging.info("=" * 50)
        logging.info(f"Videos read:          {self.stats['videos']}")
        logging.info(f"Streams cached:       {self.stats['cached']}")
        logging.info(f"Streams skipped:      {self.stats['skipped']}")
        logging.info(f"Errors encountered:   {self.stats['errors']}")

        if self.start_time and self.end_time:
            duration = self.end_time - self.start_time
            minutes, seconds = divmod(int(duration.total_seconds()), 60)
            logging.info("")
            logging.info(f"Started:              {self.start_time.strftime('%Y-%m-%d %H:%M:%S')}")
            logging.info(f"Finished:             {self.end_time.strftime('%Y-%m-%d %H:%M:%S')}")
            if minutes:
                logging.info(f"Duration:             {minutes}m {seconds}s")
            else:
                logging.info(f"Duration:             {seconds}s")
