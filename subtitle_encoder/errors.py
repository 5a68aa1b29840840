"""Exception types raised by subtitle-encoder."""

from pathlib import Path
from typing import Optional, Union


class SubtitleError(Exception):
    """Base class for every error raised by this package."""


class InvalidArgumentError(SubtitleError, ValueError):
    """A required parameter is missing or empty."""


class UnsupportedFormatError(SubtitleError, ValueError):
    """No parser or writer is registered for a format tag."""

    def __init__(self, format: str, message: Optional[str] = None) -> None:
        self.format = format
        super().__init__(message or f"Unsupported format: {format}")


class SubtitleParseError(SubtitleError, ValueError):
    """Malformed subtitle syntax."""

    def __init__(self, format: str, message: str) -> None:
        self.format = format
        super().__init__(f"Could not parse {format} subtitle: {message}")


class SubtitleNotFoundError(SubtitleError, LookupError):
    """Library item, media source or subtitle stream lookup missed."""


class EncoderError(SubtitleError):
    """The external encoder failed, timed out or produced no output."""

    def __init__(
        self,
        message: str,
        input_path: Optional[str] = None,
        output_path: Optional[Union[str, Path]] = None,
        exit_code: Optional[int] = None,
        log_path: Optional[Path] = None,
    ) -> None:
        self.input_path = input_path
        self.output_path = output_path
        self.exit_code = exit_code
        self.log_path = log_path
        super().__init__(message)


class EncoderLaunchError(EncoderError):
    """The external encoder process could not be started."""
