"""
Timeline Resizer - set exact durations and staggered positions for timeline layers.

This package provides tools to:
- Force selected layers to an exact duration using only relative host moves
- Reposition layers at the playhead, or stagger them end to end
- Drive a JSON timeline document that follows the host's clamp rules
- Remember the last used settings between runs
"""

from .document import TimelineDocument, TimelineItem, load_document
from .host import TimelineHost
from .models import (
    BatchOutcome,
    BatchResult,
    ConfigurationError,
    DurationSpec,
    HostOperationError,
    PlacementStep,
    RepositionMode,
    ResizeSettings,
)
from .planner import (
    TimelineResizer,
    normalize_duration,
    normalize_position_to_zero,
    plan_positions,
    run_batch,
)
from .settings import default_settings, load_settings, save_settings

__version__ = "1.0.0"

__all__ = [
    # Version
    "__version__",

    # Enums
    "RepositionMode",
    "BatchOutcome",

    # Models
    "DurationSpec",
    "ResizeSettings",
    "PlacementStep",
    "BatchResult",

    # Errors
    "ConfigurationError",
    "HostOperationError",

    # Host
    "TimelineHost",
    "TimelineDocument",
    "TimelineItem",
    "load_document",

    # Planner
    "TimelineResizer",
    "normalize_duration",
    "normalize_position_to_zero",
    "plan_positions",
    "run_batch",

    # Settings
    "default_settings",
    "load_settings",
    "save_settings",
]
