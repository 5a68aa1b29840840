"""Configuration loading and validation."""

import logging
import sys
from pathlib import Path
from typing import Any, Dict

import yaml

# Valid configuration keys and their expected Python types.
_VALID_KEYS: Dict[str, type] = {
    "cache_path": str,
    "log_dir": str,
    "encoder_path": str,
    "probe_path": str,
    "timeout": float,
    "kill_timeout": float,
    "output_format": str,
    "jobs": int,
}

# Keys that accept both int and float values (e.g. `timeout: 30` in YAML).
_NUMERIC_KEYS: frozenset = frozenset({"timeout", "kill_timeout"})

DEFAULTS: Dict[str, Any] = {
    "encoder_path": "ffmpeg",
    "probe_path": "ffprobe",
    "timeout": 60.0,
    "kill_timeout": 1.0,
    "output_format": "srt",
    "jobs": 1,
}


def validate_config(config: Dict[str, Any]) -> None:
    """Validate *config* dict against known keys and types.

    Calls ``sys.exit(1)`` with a human-readable message on the first set of
    errors found so that the user sees all problems at once.
    """
    errors = []

    for key, value in config.items():
        if key not in _VALID_KEYS:
            errors.append(
                f"Unknown key '{key}'. Valid keys: {', '.join(sorted(_VALID_KEYS))}"
            )
            continue

        expected = _VALID_KEYS[key]
        if key in _NUMERIC_KEYS:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                errors.append(
                    f"'{key}' must be a number, got {type(value).__name__}"
                )
        elif isinstance(value, bool) or not isinstance(value, expected):
            errors.append(
                f"'{key}' must be {expected.__name__}, got {type(value).__name__}"
            )

    # Value-level checks (only when the type already passed).
    for key in _NUMERIC_KEYS:
        value = config.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value <= 0:
            errors.append(f"'{key}' must be > 0, got {value}")

    jobs = config.get("jobs")
    if isinstance(jobs, int) and not isinstance(jobs, bool) and jobs < 1:
        errors.append(f"'jobs' must be >= 1, got {jobs}")

    output_format = config.get("output_format")
    if isinstance(output_format, str) and not output_format.strip():
        errors.append("'output_format' must not be empty")

    for key in ("cache_path", "log_dir"):
        value = config.get(key)
        if isinstance(value, str):
            p = Path(value).expanduser()
            if p.exists() and not p.is_dir():
                errors.append(f"'{key}' exists but is not a directory: {value}")

    if errors:
        print("Configuration error(s):", file=sys.stderr)
        for err in errors:
            print(f"  - {err}", file=sys.stderr)
        sys.exit(1)


def load_config() -> Dict[str, Any]:
    """Load and validate configuration from the first existing config file.

    Searches:
      1. ``~/.subtitle-encoder.yaml``
      2. ``.subtitle-encoder.yaml`` (current working directory)

    Returns an empty dict when no config file is found.
    """
    config_locations = [
        Path.home() / ".subtitle-encoder.yaml",
        Path(".subtitle-encoder.yaml"),
    ]

    for config_file in config_locations:
        if not config_file.exists():
            continue

        try:
            with open(config_file) as fh:
                config = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as exc:
            logging.warning(f"Could not load config from {config_file}: {exc}")
            break

        if not isinstance(config, dict):
            logging.warning(f"Ignoring {config_file}: top level must be a mapping")
            break
        validate_config(config)  # exits on error
        logging.info(f"Loaded configuration from: {config_file}")
        return config

    return {}


def resolve_settings(config: Dict[str, Any]) -> Dict[str, Any]:
    """Return *config* merged over the defaults, with paths resolved."""
    settings = {**DEFAULTS, **config}
    cache_path = Path(
        settings.get("cache_path") or Path.home() / ".cache" / "subtitle-encoder"
    ).expanduser()
    settings["cache_path"] = cache_path
    settings["log_dir"] = Path(settings.get("log_dir") or cache_path / "logs").expanduser()
    return settings
