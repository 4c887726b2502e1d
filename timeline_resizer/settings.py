"""
Persisted user settings.

Settings live in a small text file of ``key:value`` lines:

    schemaVersion:1
    durationSeconds:0
    durationFrames:15
    repositionMode:3

Remembering settings is a convenience, so every failure is absorbed here:
a missing or unreadable file, an unknown or missing key, a bad value or a
schema version mismatch all yield the default settings, and a failed save
is ignored.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional

from .models import (
    SETTINGS_SCHEMA_VERSION,
    ConfigurationError,
    RepositionMode,
    ResizeSettings,
)

logger = logging.getLogger(__name__)

SETTINGS_ENV_VAR = "TIMELINE_RESIZER_SETTINGS"
DEFAULT_SETTINGS_PATH = Path("~/.config/timeline-resizer/settings.txt")

# File key -> ResizeSettings field
_FIELDS = {
    "schemaVersion": "schema_version",
    "durationSeconds": "duration_seconds",
    "durationFrames": "duration_frames",
    "repositionMode": "reposition_mode",
}


class SettingsFormatError(ValueError):
    """Settings file content could not be parsed."""


def default_settings() -> ResizeSettings:
    return ResizeSettings()


def settings_path() -> Path:
    """Settings file location, overridable via $TIMELINE_RESIZER_SETTINGS."""
    override = os.environ.get(SETTINGS_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return DEFAULT_SETTINGS_PATH.expanduser()


def parse_settings(text: str, expected_version: int = SETTINGS_SCHEMA_VERSION) -> ResizeSettings:
    """Parse settings file content.

    Raises:
        SettingsFormatError: For unknown, duplicate or missing keys, bad values
            and schema version mismatches.
    """
    values: Dict[str, str] = {}
    for line in text.splitlines():
        if not line.strip():
            continue
        key, sep, value = line.partition(':')
        key = key.strip()
        if not sep or key not in _FIELDS:
            raise SettingsFormatError(f"Unknown settings entry: {line!r}")
        if key in values:
            raise SettingsFormatError(f"Duplicate settings key: {key}")
        values[key] = value.strip()

    missing = [key for key in _FIELDS if key not in values]
    if missing:
        raise SettingsFormatError(f"Missing settings keys: {', '.join(missing)}")

    try:
        version = int(values["schemaVersion"])
        seconds = int(values["durationSeconds"])
        frames = int(values["durationFrames"])
        mode = RepositionMode.from_string(values["repositionMode"])
    except (ValueError, ConfigurationError) as e:
        raise SettingsFormatError(f"Invalid settings value: {e}")

    if version != expected_version:
        raise SettingsFormatError(
            f"Settings schema version {version} does not match {expected_version}"
        )
    if seconds < 0 or frames < 0:
        raise SettingsFormatError("Settings durations cannot be negative")

    return ResizeSettings(
        schema_version=version,
        duration_seconds=seconds,
        duration_frames=frames,
        reposition_mode=mode,
    )


def format_settings(settings: ResizeSettings) -> str:
    lines = []
    for key, attr in _FIELDS.items():
        value = getattr(settings, attr)
        if isinstance(value, RepositionMode):
            value = value.value
        lines.append(f"{key}:{value}")
    return "\n".join(lines) + "\n"


def load_settings(path: Optional[Path] = None) -> ResizeSettings:
    """Load settings from the previous run, or defaults if none are usable."""
    path = Path(path) if path is not None else settings_path()
    try:
        text = path.read_text(encoding='utf-8')
        return parse_settings(text)
    except FileNotFoundError:
        logger.debug("No settings file at %s, using defaults", path)
    except (OSError, UnicodeDecodeError, SettingsFormatError) as e:
        logger.debug("Ignoring settings file %s: %s", path, e)
    return default_settings()


def save_settings(settings: ResizeSettings, path: Optional[Path] = None) -> bool:
    """Save settings for the next run. Returns False if the file could not be written."""
    path = Path(path) if path is not None else settings_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(format_settings(settings), encoding='utf-8')
    except OSError as e:
        logger.debug("Could not save settings to %s: %s", path, e)
        return False
    return True
