"""Subtitle Encoder: extract, convert and cache subtitle tracks."""

from .cache import SubtitleCache, get_cache_key
from .encoder import InputType, SubtitleEncoder
from .formats import FormatRegistry, default_registry
from .locks import KeyedLockRegistry
from .models import Cue, Track
from .service import SubtitleService

__version__ = "1.0.0"
__all__ = [
    "Cue",
    "FormatRegistry",
    "InputType",
    "KeyedLockRegistry",
    "SubtitleCache",
    "SubtitleEncoder",
    "SubtitleService",
    "Track",
    "default_registry",
    "get_cache_key",
]
