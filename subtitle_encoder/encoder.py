"""Runs the external encoder (ffmpeg) to extract and convert subtitles."""

import asyncio
import logging
import shlex
import subprocess
import uuid
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Union

from .encoding import CharsetEncodingDetector, detect_encoding
from .errors import EncoderError, EncoderLaunchError, InvalidArgumentError
from .locks import KeyedLockRegistry
from .locks import default_registry as default_lock_registry

PathLike = Union[str, Path]

# Outputs that get the Unicode font substitution.
ASS_EXTENSIONS = {".ass", ".ssa"}

ASS_FONT = ",Arial,"
ASS_UNICODE_FONT = ",Arial Unicode MS,"


class InputType(Enum):
    FILE = "file"
    URL = "url"
    BLURAY = "bluray"
    DVD = "dvd"


class EncodingDetector(Protocol):
    def get_subtitle_encoding(self, path: PathLike, language: Optional[str]) -> Optional[str]:
        ...


def build_input_argument(input_files: Sequence[str], input_type: InputType) -> str:
    """Return the ``-i`` value for *input_files*.

    Disc structures are played as the concatenation of their stream files.
    """
    if not input_files or not all(input_files):
        raise InvalidArgumentError("input_files must not be empty")
    if input_type in (InputType.BLURAY, InputType.DVD) and len(input_files) > 1:
        return "concat:" + "|".join(input_files)
    return input_files[0]


def set_ass_font(path: PathLike) -> bool:
    """Swap the ASS ``Arial`` style font for ``Arial Unicode MS`` in place.

    The file is rewritten in its original encoding (byte-order mark kept) and
    only when the text actually changed.  Returns True when it was rewritten.
    """
    path = Path(path)
    logging.info(f"Setting ass font within {path}")
    data = path.read_bytes()
    encoding, bom = detect_encoding(data)
    text = data[len(bom):].decode(encoding)
    new_text = text.replace(ASS_FONT, ASS_UNICODE_FONT)
    if new_text == text:
        return False
    path.write_bytes(bom + new_text.encode(encoding))
    return True


class SubtitleEncoder:
    """Extracts and converts subtitles with an external encoder.

    Every operation is single-flight per output path: callers wait on the
    output path's lock, the first one through runs the encoder, the rest
    find the finished file and return without spawning anything.

    The encoder gets ``timeout`` seconds to finish.  After that it is sent
    SIGTERM and given ``kill_timeout`` seconds to exit.  This watchdog is
    the only thing that stops a running encoder; cancelling a caller only
    abandons that caller's wait.
    """

    DEFAULT_TIMEOUT: float = 60.0
    DEFAULT_KILL_TIMEOUT: float = 1.0

    def __init__(
        self,
        log_dir: PathLike,
        encoder_path: str = "ffmpeg",
        timeout: float = DEFAULT_TIMEOUT,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
        locks: Optional[KeyedLockRegistry] = None,
        encoding_detector: Optional[EncodingDetector] = None,
    ) -> None:
        self.log_dir = Path(log_dir)
        self.encoder_path = encoder_path
        self.timeout = timeout
        self.kill_timeout = kill_timeout
        self.locks = locks if locks is not None else default_lock_registry
        self.encoding_detector = encoding_detector or CharsetEncodingDetector()

    # ------------------------------------------------------------------
    # Tool availability
    # ------------------------------------------------------------------

    @staticmethod
    def check_ffmpeg(encoder_path: str = "ffmpeg") -> bool:
        """Return True if the encoder executable runs."""
        try:
            subprocess.run([encoder_path, "-version"], capture_output=True, check=True)
            return True
        except (subprocess.CalledProcessError, OSError):
            return False

    # ------------------------------------------------------------------
    # Command lines
    # ------------------------------------------------------------------

    @staticmethod
    def build_extract_args(
        input_argument: str, stream_index: int, copy_stream: bool, output_path: PathLike
    ) -> List[str]:
        codec = "copy" if copy_stream else "ass"
        return [
            "-i", input_argument,
            "-map", f"0:{stream_index}",
            "-an", "-vn",
            "-c:s", codec,
            str(output_path),
        ]

    @staticmethod
    def build_convert_args(
        input_path: PathLike, output_path: PathLike, charset: Optional[str] = None
    ) -> List[str]:
        args: List[str] = []
        if charset:
            args += ["-sub_charenc", charset]
        args += ["-i", str(input_path), "-c:s", "ass", str(output_path)]
        return args

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def extract_text_subtitle(
        self,
        input_files: Sequence[str],
        input_type: InputType,
        stream_index: int,
        copy_stream: bool,
        output_path: PathLike,
    ) -> None:
        """Extract embedded stream *stream_index* into *output_path*."""
        input_argument = build_input_argument(input_files, input_type)
        output_path = self._require_output(output_path)
        args = self.build_extract_args(input_argument, stream_index, copy_stream, output_path)
        await self._single_flight(
            output_path,
            lambda: self._run_encoder(args, "extract", input_argument, output_path),
        )

    async def convert_text_subtitle_to_ass(
        self, input_path: PathLike, output_path: PathLike, language: Optional[str] = None
    ) -> None:
        """Convert the foreign subtitle file *input_path* to ASS at *output_path*."""
        if not input_path:
            raise InvalidArgumentError("input_path must not be empty")
        output_path = self._require_output(output_path)

        async def _convert() -> None:
            charset = None
            if language:
                charset = await asyncio.to_thread(
                    self.encoding_detector.get_subtitle_encoding, input_path, language
                )
            args = self.build_convert_args(input_path, output_path, charset)
            await self._run_encoder(args, "convert", str(input_path), output_path)

        await self._single_flight(output_path, _convert)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _require_output(output_path: PathLike) -> Path:
        if not output_path:
            raise InvalidArgumentError("output_path must not be empty")
        return Path(output_path)

    async def _single_flight(
        self, output_path: Path, work: Callable[[], Awaitable[None]]
    ) -> None:
        async def _if_missing() -> None:
            # Checked under the lock: later waiters see the first caller's file.
            if output_path.exists():
                logging.debug(f"Cache hit: {output_path}")
                return
            await work()

        await self.locks.run_exclusive(str(output_path), _if_missing)

    async def _run_encoder(
        self, args: List[str], kind: str, input_description: str, output_path: Path
    ) -> None:
        """Run the encoder once and verify that it produced *output_path*."""
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        log_path = self.log_dir / f"ffmpeg-sub-{kind}-{uuid.uuid4()}.txt"

        logging.debug(f"{self.encoder_path} {shlex.join(args)}")

        with open(log_path, "wb") as log_file:
            try:
                process = await asyncio.create_subprocess_exec(
                    self.encoder_path, *args,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=log_file,
                )
            except OSError as exc:
                logging.error(f"Error starting {self.encoder_path}: {exc}")
                raise EncoderLaunchError(
                    f"Could not start {self.encoder_path}: {exc}",
                    input_path=input_description,
                    output_path=output_path,
                    log_path=log_path,
                ) from exc

            try:
                ran_to_completion = await self._wait(process, kind)
            except BaseException:
                # Cancelled (loop shutdown): nobody is left to watch the process.
                try:
                    if process.returncode is None:
                        await self._stop(process, kind)
                finally:
                    self._delete_partial_output(output_path, kind)
                raise

        exit_code = process.returncode if ran_to_completion else -1

        if exit_code == 0 and output_path.exists():
            logging.info(
                f"ffmpeg subtitle {kind} completed for {input_description} to {output_path}"
            )
            if output_path.suffix.lower() in ASS_EXTENSIONS:
                await asyncio.to_thread(set_ass_font, output_path)
            return

        self._delete_partial_output(output_path, kind)
        msg = f"ffmpeg subtitle {kind} failed for {input_description} to {output_path}"
        if exit_code != 0:
            msg += f" (exit code {exit_code}, see {log_path})"
        else:
            msg += " (no output produced)"
        logging.error(msg)
        raise EncoderError(
            msg,
            input_path=input_description,
            output_path=output_path,
            exit_code=exit_code,
            log_path=log_path,
        )

    async def _wait(self, process: asyncio.subprocess.Process, kind: str) -> bool:
        """Wait for *process*; return False when the watchdog had to stop it."""
        try:
            await asyncio.wait_for(process.wait(), timeout=self.timeout)
            return True
        except asyncio.TimeoutError:
            pass

        logging.info(f"Killing ffmpeg subtitle {kind} process")
        await self._stop(process, kind)
        return False

    async def _stop(self, process: asyncio.subprocess.Process, kind: str) -> None:
        """Send SIGTERM, then SIGKILL after ``kill_timeout``, and reap *process*."""
        try:
            process.terminate()
            await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
        except ProcessLookupError:
            pass
        except asyncio.TimeoutError:
            logging.error(f"ffmpeg subtitle {kind} process ignored SIGTERM, sending SIGKILL")
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
        except OSError as exc:
            logging.error(f"Error killing subtitle {kind} process: {exc}")

    @staticmethod
    def _delete_partial_output(output_path: Path, kind: str) -> None:
        if not output_path.exists():
            return
        try:
            logging.info(f"Deleting {kind}ed subtitle due to failure: {output_path}")
            output_path.unlink()
        except OSError as exc:
            logging.error(f"Error deleting {kind}ed subtitle {output_path}: {exc}")
