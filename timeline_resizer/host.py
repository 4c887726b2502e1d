"""
Host timeline adapter interface.

The host application exposes write-only, clamp-defined primitives: there is
no way to read an item's in-point, out-point or position. Every relative move
takes a signed ``seconds * frame_rate + frames`` delta and the host enforces
two clamps:

- the in-point never goes below frame 0
- the out-point is always at least in-point + 1 frame

All absolute positioning done by the planner depends on these two clamps.
Primitives raise ``HostOperationError`` when the active document has no
clip-mode timeline.
"""

from contextlib import AbstractContextManager
from typing import List, Protocol, Sequence, runtime_checkable


@runtime_checkable
class TimelineHost(Protocol):
    """Primitives a host timeline must provide to the planner."""

    def frame_rate(self) -> float:
        """Timeline frame rate in frames/second."""
        ...

    def playhead_frame(self) -> float:
        """Current playhead position in frames."""
        ...

    def selected_item_indices(self, exclude_background: bool = True) -> List[int]:
        """Selected items in stacking order (index 0 = bottom), empty if none."""
        ...

    def activate_item(self, item: int) -> None:
        ...

    def move_in_point(self, item: int, seconds: int, frames: int) -> None:
        ...

    def move_out_point(self, item: int, seconds: int, frames: int) -> None:
        ...

    def move_whole_item(self, item: int, seconds: int, frames: int) -> None:
        ...

    def reselect_items(self, items: Sequence[int]) -> None:
        ...

    def history_group(self, name: str) -> AbstractContextManager:
        """Collapse every edit made inside the block into one undoable step."""
        ...
