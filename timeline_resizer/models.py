"""
Data models for timeline layer resizing.

Provides the value types shared by the planner, the host adapters, the
settings store and the MCP server: reposition modes, duration specs,
persisted settings, placement steps and batch results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

# ============================================================================
# ERRORS
# ============================================================================


class ConfigurationError(ValueError):
    """Invalid resize request (duration under one frame, unknown mode, empty selection)."""


class HostOperationError(RuntimeError):
    """A host timeline primitive failed (no timeline, frame animation mode, ...)."""


# ============================================================================
# ENUMS
# ============================================================================

# Maximum length for mode strings to prevent memory abuse
_MAX_MODE_LENGTH = 64


class RepositionMode(Enum):
    """How resized items are placed on the timeline.

    Integer values match the persisted settings file format.
    """
    NONE = 0
    AT_PLAYHEAD = 1
    STAGGER_TOP_FIRST = 2
    STAGGER_BOTTOM_FIRST = 3

    @classmethod
    def from_string(cls, value) -> 'RepositionMode':
        """Convert a name or integer value to RepositionMode.

        Examples:
            RepositionMode.from_string("none")                 -> RepositionMode.NONE
            RepositionMode.from_string("stagger-bottom-first") -> RepositionMode.STAGGER_BOTTOM_FIRST
            RepositionMode.from_string("2")                    -> RepositionMode.STAGGER_TOP_FIRST
        """
        if isinstance(value, RepositionMode):
            return value
        if isinstance(value, bool):
            raise ConfigurationError(f"Invalid reposition mode: {value!r}")
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise ConfigurationError(
                    f"Invalid reposition mode: {value}. "
                    f"Valid values: {', '.join(str(m.value) for m in cls)}"
                )
        if not isinstance(value, str):
            raise ConfigurationError(f"Expected str or int, got {type(value).__name__}")
        if '\x00' in value or len(value) > _MAX_MODE_LENGTH:
            raise ConfigurationError("Reposition mode contains invalid characters")

        cleaned = value.strip()
        if not cleaned:
            raise ConfigurationError("Reposition mode cannot be empty")
        if cleaned.isdigit():
            return cls.from_string(int(cleaned))

        key = cleaned.upper().replace('-', '_').replace(' ', '_')
        try:
            return cls[key]
        except KeyError:
            raise ConfigurationError(
                f"Invalid reposition mode: '{value}'. "
                f"Valid modes: {', '.join(m.label for m in cls)}"
            )

    @property
    def label(self) -> str:
        """Lower-case, dash separated name used by the MCP tools."""
        return self.name.lower().replace('_', '-')

    @property
    def repositions(self) -> bool:
        return self is not RepositionMode.NONE


class BatchOutcome(Enum):
    """Terminal state of a batch run."""
    SUCCESS = "success"
    ABORTED = "aborted"


# ============================================================================
# FRAME ARITHMETIC
# ============================================================================

def frames_from_time(seconds: float, frames: float, frame_rate: float) -> int:
    """Combine a seconds+frames pair into a whole frame count.

    Non-integral results (e.g. 29.97 fps) are rounded to the nearest frame.
    """
    return int(round(seconds * frame_rate + frames))


def split_frames(total_frames: int, frame_rate: float) -> tuple:
    """Split a frame count into (seconds, frames) for display.

    At non-integral frame rates the leftover frame count is rounded.
    """
    if frame_rate <= 0:
        raise ValueError(f"Frame rate must be positive, got {frame_rate}")
    sign = -1 if total_frames < 0 else 1
    remaining = abs(total_frames)
    seconds = int(remaining // frame_rate)
    frames = int(round(remaining - seconds * frame_rate))
    return sign * seconds, sign * frames


# ============================================================================
# DURATION
# ============================================================================

@dataclass(frozen=True)
class DurationSpec:
    """
    Requested clip length as seconds plus frames.

    The combined length depends on the timeline frame rate:

        DurationSpec(0, 15).total_frames(30.0)  # 15
        DurationSpec(2, 5).total_frames(24.0)   # 53
    """
    seconds: int = 1
    frames: int = 0

    def validate(self) -> None:
        for name, value in (("seconds", self.seconds), ("frames", self.frames)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"Duration {name} must be a whole number, got {value!r}")
            if value < 0:
                raise ConfigurationError(f"Duration {name} cannot be negative, got {value}")

    def total_frames(self, frame_rate: float) -> int:
        """Return the length in whole frames, rejecting anything under one frame."""
        self.validate()
        if frame_rate <= 0:
            raise ConfigurationError(f"Frame rate must be positive, got {frame_rate}")
        total = frames_from_time(self.seconds, self.frames, frame_rate)
        if total < 1:
            raise ConfigurationError(
                f"Duration {self.seconds}s + {self.frames}f is shorter than one frame"
            )
        return total

    def to_display(self) -> str:
        return f"{self.seconds}s + {self.frames}f"


# ============================================================================
# SETTINGS
# ============================================================================

SETTINGS_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class ResizeSettings:
    """User settings remembered between runs."""
    schema_version: int = SETTINGS_SCHEMA_VERSION
    duration_seconds: int = 1
    duration_frames: int = 0
    reposition_mode: RepositionMode = RepositionMode.NONE

    @property
    def duration(self) -> DurationSpec:
        return DurationSpec(self.duration_seconds, self.duration_frames)


# ============================================================================
# PLANNING AND RESULTS
# ============================================================================

@dataclass(frozen=True)
class PlacementStep:
    """One item's absolute target start frame and its position in the visit order."""
    item: int
    target_frame: int
    visit_order: int


@dataclass
class BatchResult:
    """Outcome of one batch run.

    Aborted runs carry a single generic message; there is no per-item
    success reporting.
    """
    outcome: BatchOutcome
    items: List[int] = field(default_factory=list)
    mode: RepositionMode = RepositionMode.NONE
    total_frames: int = 0
    items_processed: int = 0
    placements: List[PlacementStep] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is BatchOutcome.SUCCESS
