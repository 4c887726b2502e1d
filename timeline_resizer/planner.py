"""
Relative-only timeline edit planner.

The host cannot report an item's in-point, out-point or position, and only
offers relative moves that clamp at the timeline boundaries. The planner
turns those clamps into absolute edits:

- Moving the out-point far to the left leaves a clip exactly one frame long,
  starting at its untouched in-point. Extending the out-point by
  ``total_frames - 1`` then sets an exact duration.
- Moving the in-point far to the left pins it at frame 0, which gives a known
  anchor. A whole-item move of ``target`` frames is then an absolute move.

Repositioning always discards the item's original position and duration;
there is no way to read them back.

Usage:
    resizer = TimelineResizer(host)
    result = resizer.resize_selection(settings)
"""

import logging
import math
from numbers import Real
from typing import List, Optional, Sequence

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

logger = logging.getLogger(__name__)

# Far enough left that the host always clamps, whatever the item's state.
CLAMP_SECONDS = 1_000_000

HISTORY_NAME = "Timeline Layer Resizer"

GENERIC_FAILURE_MESSAGE = (
    "Error setting duration or position of a layer. Perhaps you don't have a "
    "video timeline created yet? Or have it set to frame animation (not "
    "supported) instead of layer animation?"
)


# ============================================================================
# NORMALIZERS
# ============================================================================

def normalize_duration(host: TimelineHost, item: int, total_frames: int) -> None:
    """Make ``item`` exactly ``total_frames`` long, keeping its in-point."""
    if total_frames < 1:
        raise ConfigurationError(f"Duration must be at least one frame, got {total_frames}")
    host.move_out_point(item, -CLAMP_SECONDS, 0)
    # Issued even for one-frame clips so every item gets the same calls
    host.move_out_point(item, 0, total_frames - 1)


def normalize_position_to_zero(host: TimelineHost, item: int) -> None:
    """Pin ``item``'s in-point at frame 0."""
    host.move_in_point(item, -CLAMP_SECONDS, 0)


# ============================================================================
# STAGGER SEQUENCER
# ============================================================================

def plan_positions(
    items: Sequence[int],
    mode: RepositionMode,
    anchor_frame: int,
    item_duration_frames: int,
) -> List[PlacementStep]:
    """
    Compute each item's absolute start frame, in the order items are visited.

    ``items`` is in stacking order with index 0 the bottom-most selected item.

    Args:
        items: Selected item references
        mode: AT_PLAYHEAD, STAGGER_TOP_FIRST or STAGGER_BOTTOM_FIRST
        anchor_frame: Start frame of the first visited item
        item_duration_frames: Length of every item, used as the stagger step

    Returns:
        PlacementSteps sorted by visit order
    """
    mode = RepositionMode.from_string(mode)
    if mode is RepositionMode.AT_PLAYHEAD:
        ordered, step = list(items), 0
    elif mode is RepositionMode.STAGGER_BOTTOM_FIRST:
        ordered, step = list(items), item_duration_frames
    elif mode is RepositionMode.STAGGER_TOP_FIRST:
        ordered, step = list(reversed(items)), item_duration_frames
    else:
        raise ConfigurationError(f"Mode {mode.label} does not reposition items")

    return [
        PlacementStep(item=item, target_frame=anchor_frame + visit * step, visit_order=visit)
        for visit, item in enumerate(ordered)
    ]


def anchor_start(anchor_frame: float) -> int:
    """Round an anchor to a whole start frame, rejecting anything off the timeline."""
    if isinstance(anchor_frame, bool) or not isinstance(anchor_frame, Real):
        raise ConfigurationError(f"Anchor frame must be a number, got {anchor_frame!r}")
    if not math.isfinite(anchor_frame):
        raise ConfigurationError(f"Anchor frame must be finite, got {anchor_frame}")
    start = int(round(anchor_frame))
    if start < 0:
        raise ConfigurationError(f"Anchor frame must not be before frame 0, got {start}")
    return start


# ============================================================================
# BATCH ORCHESTRATOR
# ============================================================================

def run_batch(
    host: TimelineHost,
    items: Sequence[int],
    duration: DurationSpec,
    mode: RepositionMode = RepositionMode.NONE,
    anchor_frame: Optional[float] = None,
) -> BatchResult:
    """
    Resize, and optionally reposition, every item in one undoable step.

    Configuration errors are raised before the host is touched. A failing
    host primitive aborts the remaining items; edits already made stay in
    place and can be undone together through the single history entry.
    The original selection is restored either way.

    Args:
        host: Timeline adapter
        items: Item references in stacking order
        duration: Requested clip length
        mode: Reposition mode
        anchor_frame: Start frame for repositioning, defaults to the playhead

    Returns:
        BatchResult with SUCCESS or ABORTED outcome
    """
    mode = RepositionMode.from_string(mode)
    duration.validate()
    if mode.repositions and anchor_frame is not None:
        anchor_frame = anchor_start(anchor_frame)
    items = list(items)
    result = BatchResult(outcome=BatchOutcome.SUCCESS, items=items, mode=mode)

    logger.info("Resizing %d item(s) to %s, mode %s", len(items), duration.to_display(), mode.label)
    with host.history_group(HISTORY_NAME):
        try:
            try:
                result.total_frames = duration.total_frames(host.frame_rate())
                if mode.repositions:
                    if anchor_frame is None:
                        anchor_frame = host.playhead_frame()
                    result.placements = plan_positions(
                        items, mode, anchor_start(anchor_frame), result.total_frames
                    )
                    _apply_placements(host, result)
                else:
                    _apply_durations(host, result)
            except HostOperationError as e:
                logger.warning(
                    "Batch aborted after %d of %d item(s): %s",
                    result.items_processed, len(items), e,
                )
                result.outcome = BatchOutcome.ABORTED
                result.message = GENERIC_FAILURE_MESSAGE
        finally:
            _restore_selection(host, items)

    if result.succeeded:
        logger.info("Resized %d item(s) to %d frame(s)", result.items_processed, result.total_frames)
    return result


def _apply_durations(host: TimelineHost, result: BatchResult) -> None:
    for item in result.items:
        host.activate_item(item)
        normalize_duration(host, item, result.total_frames)
        result.items_processed += 1
        logger.debug("Item %d: duration %d", item, result.total_frames)


def _apply_placements(host: TimelineHost, result: BatchResult) -> None:
    for step in result.placements:
        host.activate_item(step.item)
        normalize_position_to_zero(host, step.item)
        normalize_duration(host, step.item, result.total_frames)
        # In-point is known to be 0 here, so the relative move lands absolutely
        host.move_whole_item(step.item, 0, step.target_frame)
        result.items_processed += 1
        logger.debug("Item %d: start %d, duration %d", step.item, step.target_frame, result.total_frames)


def _restore_selection(host: TimelineHost, items: List[int]) -> None:
    try:
        host.reselect_items(items)
    except HostOperationError as e:
        logger.warning("Could not restore selection: %s", e)


# ============================================================================
# RESIZER
# ============================================================================

class TimelineResizer:
    """
    Applies resize settings to a host's current selection.

    Usage:
        resizer = TimelineResizer(host)
        items = resizer.selected_items()
        result = resizer.resize(settings, items)
    """

    def __init__(self, host: TimelineHost):
        self.host = host

    def selected_items(self) -> List[int]:
        """Selected items, background layer excluded."""
        return self.host.selected_item_indices(exclude_background=True)

    def resize(
        self,
        settings: ResizeSettings,
        items: Sequence[int],
        anchor_frame: Optional[float] = None,
    ) -> BatchResult:
        return run_batch(
            self.host,
            items,
            settings.duration,
            settings.reposition_mode,
            anchor_frame=anchor_frame,
        )

    def resize_selection(
        self,
        settings: ResizeSettings,
        anchor_frame: Optional[float] = None,
    ) -> BatchResult:
        """Resize the current selection; an empty selection is a configuration error."""
        items = self.selected_items()
        if not items:
            raise ConfigurationError(
                "Select the layers in your timeline you want to target before resizing"
            )
        return self.resize(settings, items, anchor_frame=anchor_frame)

    def preview(
        self,
        settings: ResizeSettings,
        items: Sequence[int],
        anchor_frame: Optional[float] = None,
    ) -> List[PlacementStep]:
        """Placements a resize would produce, without touching the timeline.

        Items keep their current start in NONE mode, so the list is empty.
        """
        total_frames = settings.duration.total_frames(self.host.frame_rate())
        if not settings.reposition_mode.repositions:
            return []
        if anchor_frame is None:
            anchor_frame = self.host.playhead_frame()
        return plan_positions(items, settings.reposition_mode, anchor_start(anchor_frame), total_frames)
