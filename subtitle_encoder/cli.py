"""Command-line interface for subtitle-encoder."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from .cache import SubtitleCache
from .config import load_config, resolve_settings
from .encoder import SubtitleEncoder
from .errors import SubtitleError
from .formats import default_registry
from .library import ProbeLibrary
from .service import SubtitleService
from .utils import positive_float, positive_int
from .warmer import CacheWarmer


# ------------------------------------------------------------------
# Logging setup (single, authoritative call)
# ------------------------------------------------------------------

def setup_logging(verbosity: int = 0, log_file: Optional[Path] = None) -> None:
    """Configure the root logger.

    Args:
        verbosity: -1 = WARNING only, 0 = INFO (default), 1 = DEBUG.
        log_file:  Optional path; when given, output goes to both file and stderr.
    """
    level = {-1: logging.WARNING, 0: logging.INFO, 1: logging.DEBUG}.get(
        verbosity, logging.INFO
    )

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    fmt = "%(asctime)s - %(levelname)s - %(message)s" if log_file else "%(message)s"
    formatter = logging.Formatter(fmt)

    if log_file:
        fh = logging.FileHandler(log_file)
        fh.setFormatter(formatter)
        root.addHandler(fh)

    ch = logging.StreamHandler()
    ch.setFormatter(formatter)
    root.addHandler(ch)


# ------------------------------------------------------------------
# Wiring
# ------------------------------------------------------------------

def build_service(settings: Dict[str, Any]) -> SubtitleService:
    """Create the service, encoder, cache and library from *settings*."""
    encoder = SubtitleEncoder(
        log_dir=settings["log_dir"],
        encoder_path=settings["encoder_path"],
        timeout=settings["timeout"],
        kill_timeout=settings["kill_timeout"],
    )
    return SubtitleService(
        library=ProbeLibrary(probe_path=settings["probe_path"]),
        encoder=encoder,
        cache=SubtitleCache(settings["cache_path"]),
        registry=default_registry(),
    )


def _write_output(data: bytes, output: Optional[Path]) -> None:
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(data)
        logging.info(f"Wrote {output}")
    else:
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------

def cmd_convert(args: argparse.Namespace, service: SubtitleService) -> int:
    input_format = args.input_format or args.input.suffix.lstrip(".")
    with open(args.input, "rb") as stream:
        result = asyncio.run(service.convert_subtitles(stream, input_format, args.to))
    with result:
        _write_output(result.getvalue(), args.output)
    return 0


def _require_ffmpeg(service: SubtitleService) -> bool:
    encoder_path = service.encoder.encoder_path
    if SubtitleEncoder.check_ffmpeg(encoder_path):
        return True
    print(f"Error: ffmpeg is not installed or does not run: {encoder_path}", file=sys.stderr)
    print("  Ubuntu/Debian: sudo apt-get install ffmpeg", file=sys.stderr)
    print("  macOS:         brew install ffmpeg", file=sys.stderr)
    return False


def cmd_get(args: argparse.Namespace, service: SubtitleService) -> int:
    if not _require_ffmpeg(service):
        return 1
    item_id = str(args.video.absolute())
    result = asyncio.run(service.get_subtitles(item_id, item_id, args.stream, args.to))
    with result:
        _write_output(result.getvalue(), args.output)
    return 0


def cmd_tracks(args: argparse.Namespace, service: SubtitleService) -> int:
    console = Console()
    paths: List[Path] = []
    for path in args.paths:
        if path.is_dir() and ProbeLibrary.detect_video_type(path) is None:
            paths.extend(CacheWarmer.find_video_files(path))
        else:
            paths.append(path)

    for path in paths:
        item = service.library.get_item(str(path.absolute()))
        if item is None:
            console.print(f"[red]Not a readable video:[/red] {path}")
            continue

        table = Table(title=str(path), show_header=True, header_style="bold magenta")
        table.add_column("Index", style="cyan", width=6)
        table.add_column("Language", style="green", width=10)
        table.add_column("Codec", style="yellow", width=18)
        table.add_column("Forced", width=8)
        table.add_column("External", width=9)
        table.add_column("Title", width=25)
        table.add_column("Text?", width=6)

        for source in item.media_sources:
            for stream in source.streams:
                title = stream.title or "-"
                if len(title) > 25:
                    title = title[:22] + "..."
                table.add_row(
                    str(stream.index),
                    stream.language,
                    stream.codec,
                    "Yes" if stream.forced else "No",
                    "Yes" if stream.is_external else "No",
                    title,
                    "No" if stream.is_image_based else "Yes",
                )
        if table.row_count:
            console.print(table)
        else:
            console.print(f"{path}: no subtitle streams")
    return 0


def cmd_warm(args: argparse.Namespace, service: SubtitleService, jobs: int) -> int:
    if not args.directory.is_dir():
        print(f"Error: not a directory: {args.directory}", file=sys.stderr)
        return 1
    if not _require_ffmpeg(service):
        return 1
    warmer = CacheWarmer(
        service,
        service.library,
        jobs=jobs,
        show_progress=not args.log_file,
    )
    asyncio.run(warmer.warm(args.directory))
    warmer.print_summary()
    return 1 if warmer.stats["errors"] else 0


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="subtitle-encoder",
        description="Extract, convert and cache subtitle tracks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s convert movie.en.srt --to vtt -o movie.en.vtt
  %(prog)s get /media/movie.mkv --stream 2 --to vtt
  %(prog)s tracks /media/movies
  %(prog)s warm /media/movies --jobs 4

Config file: create ~/.subtitle-encoder.yaml with default settings.
        """,
    )

    parser.add_argument("--cache-dir", type=Path,
                        help="Cache root (default: ~/.cache/subtitle-encoder)")
    parser.add_argument("--encoder", help="Path to ffmpeg (default: ffmpeg)")
    parser.add_argument("--timeout", type=positive_float, metavar="SECONDS",
                        help="Encoder timeout in seconds (default: 60)")
    parser.add_argument("--log-file", type=Path,
                        help="Save log output to a file (in addition to stderr)")

    verbosity_group = parser.add_mutually_exclusive_group()
    verbosity_group.add_argument("-v", "--verbose", action="store_true",
                                 help="Enable debug-level output")
    verbosity_group.add_argument("-q", "--quiet", action="store_true",
                                 help="Suppress informational messages (warnings and errors only)")

    commands = parser.add_subparsers(dest="command", required=True)

    convert = commands.add_parser("convert", help="Convert a subtitle file between formats")
    convert.add_argument("input", type=Path, help="Subtitle file to convert")
    convert.add_argument("--to", required=True, help="Output format (srt, vtt, ass)")
    convert.add_argument("--from", dest="input_format",
                         help="Input format (default: the file extension)")
    convert.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")

    get = commands.add_parser("get", help="Fetch a video's subtitle stream through the cache")
    get.add_argument("video", type=Path, help="Video file or disc folder")
    get.add_argument("--stream", type=int, required=True, help="Subtitle stream index")
    get.add_argument("--to", help="Output format (default: srt)")
    get.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")

    tracks = commands.add_parser("tracks", help="List subtitle streams")
    tracks.add_argument("paths", type=Path, nargs="+", help="Video files, disc folders or directories")

    warm = commands.add_parser("warm", help="Cache every embedded text subtitle under a directory")
    warm.add_argument("directory", type=Path, help="Directory searched recursively")
    warm.add_argument("--jobs", type=positive_int, help="Parallel conversions (default: 1)")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Parse arguments, load configuration and run the requested command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    verbosity = 1 if args.verbose else (-1 if args.quiet else 0)
    setup_logging(verbosity=verbosity, log_file=args.log_file)

    config = load_config()
    if args.cache_dir:
        config["cache_path"] = str(args.cache_dir)
    if args.encoder:
        config["encoder_path"] = args.encoder
    if args.timeout:
        config["timeout"] = args.timeout
    settings = resolve_settings(config)

    if args.command == "get" and not args.to:
        args.to = settings["output_format"]

    service = build_service(settings)
    try:
        if args.command == "convert":
            code = cmd_convert(args, service)
        elif args.command == "get":
            code = cmd_get(args, service)
        elif args.command == "tracks":
            code = cmd_tracks(args, service)
        else:
            code = cmd_warm(args, service, args.jobs or settings["jobs"])
    except (SubtitleError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
