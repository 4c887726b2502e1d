"""
Timeline document - a JSON-backed host timeline.

Implements the ``TimelineHost`` primitives over an in-memory list of items so
the planner can be driven end to end without the host application. The
document enforces the same clamp contract as the host (in-point floors at 0,
out-point floors at in-point + 1), keeps one undo entry per history group and
round-trips through a small JSON format:

    {
        "frameRate": 30,
        "playheadFrame": 100,
        "animationMode": "clip",
        "hasBackground": true,
        "items": [
            {"name": "Background", "inPoint": 0, "outPoint": 300, "selected": false},
            {"name": "Title", "inPoint": 12, "outPoint": 90, "selected": true}
        ]
    }

Item indexes are list positions: stacking order with 0 at the bottom.
"""

import copy
import json
import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .models import HostOperationError, frames_from_time

logger = logging.getLogger(__name__)

CLIP_MODE = "clip"
FRAME_MODE = "frame"

# Maximum document size accepted by load_document (10 MB).
MAX_DOCUMENT_SIZE = 10 * 1024 * 1024


@dataclass
class TimelineItem:
    """A layer's clip span. ``out_point`` is exclusive: duration = out - in."""
    name: str
    in_point: int = 0
    out_point: int = 1
    selected: bool = False

    @property
    def duration(self) -> int:
        return self.out_point - self.in_point

    def span(self) -> Tuple[int, int]:
        return (self.in_point, self.out_point)


@dataclass
class HistoryEntry:
    """State captured when a history group was opened; restoring it undoes the group."""
    name: str
    snapshot: List[Dict[str, Any]] = field(default_factory=list)


class TimelineDocument:
    """
    In-memory timeline honouring the host's relative, clamping primitives.

    Usage:
        doc = load_document("edit.json")
        result = TimelineResizer(doc).resize_selection(settings)
        doc.save("edit_resized.json")
    """

    def __init__(
        self,
        items: Optional[List[TimelineItem]] = None,
        frame_rate: float = 30.0,
        playhead: float = 0.0,
        animation_mode: str = CLIP_MODE,
        has_background: bool = False,
    ):
        if not math.isfinite(frame_rate) or frame_rate <= 0:
            raise ValueError(f"Frame rate must be positive, got {frame_rate}")
        self.items: List[TimelineItem] = list(items or [])
        self.fps = float(frame_rate)
        self.playhead = float(playhead)
        self.animation_mode = animation_mode
        self.has_background = has_background
        self.active_item: Optional[int] = None
        self.history: List[HistoryEntry] = []
        self.journal: List[Tuple[str, int, int, int]] = []
        self._open_groups = 0

    # ========================================================================
    # QUERIES
    # ========================================================================

    def frame_rate(self) -> float:
        self._require_timeline()
        return self.fps

    def playhead_frame(self) -> float:
        self._require_timeline()
        return self.playhead

    def selected_item_indices(self, exclude_background: bool = True) -> List[int]:
        selected = [i for i, item in enumerate(self.items) if item.selected]
        if exclude_background and self.has_background and selected and selected[0] == 0:
            return selected[1:]
        return selected

    # ========================================================================
    # PRIMITIVES
    # ========================================================================

    def activate_item(self, item: int) -> None:
        self._get_item(item)
        self.active_item = item

    def move_in_point(self, item: int, seconds: int, frames: int) -> None:
        target = self._prepare_move("moveInTime", item, seconds, frames)
        delta = frames_from_time(seconds, frames, self.fps)
        target.in_point = max(0, target.in_point + delta)
        target.out_point = max(target.out_point, target.in_point + 1)

    def move_out_point(self, item: int, seconds: int, frames: int) -> None:
        target = self._prepare_move("moveOutTime", item, seconds, frames)
        delta = frames_from_time(seconds, frames, self.fps)
        target.out_point = max(target.in_point + 1, target.out_point + delta)

    def move_whole_item(self, item: int, seconds: int, frames: int) -> None:
        target = self._prepare_move("moveAllTime", item, seconds, frames)
        delta = frames_from_time(seconds, frames, self.fps)
        # The clip keeps its length when it hits frame 0
        delta = max(delta, -target.in_point)
        target.in_point += delta
        target.out_point += delta

    def reselect_items(self, items: Sequence[int]) -> None:
        wanted = set(items)
        for index in wanted:
            self._get_item(index)
        for i, item in enumerate(self.items):
            item.selected = i in wanted

    @contextmanager
    def history_group(self, name: str) -> Iterator[None]:
        """Record every edit made inside the block as a single undo entry."""
        if self._open_groups:
            # Nested groups fold into the outer entry
            self._open_groups += 1
            try:
                yield
            finally:
                self._open_groups -= 1
            return

        entry = HistoryEntry(name=name, snapshot=self._snapshot())
        edits_before = len(self.journal)
        self._open_groups = 1
        try:
            yield
        finally:
            self._open_groups = 0
            # A group that issued no primitive leaves no history entry
            if len(self.journal) > edits_before:
                self.history.append(entry)
                logger.debug("History entry recorded: %s", name)

    def undo(self) -> str:
        """Restore the state captured by the most recent history group."""
        if not self.history:
            raise ValueError("Nothing to undo")
        entry = self.history.pop()
        self._restore(entry.snapshot)
        return entry.name

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _require_timeline(self) -> None:
        if not self.items:
            raise HostOperationError("No timeline exists in the active document")

    def _get_item(self, item: int) -> TimelineItem:
        if isinstance(item, bool) or not isinstance(item, int):
            raise HostOperationError(f"Invalid item reference: {item!r}")
        if item < 0 or item >= len(self.items):
            raise HostOperationError(f"No item at index {item}")
        return self.items[item]

    def _prepare_move(self, action: str, item: int, seconds: int, frames: int) -> TimelineItem:
        self._require_timeline()
        if self.animation_mode != CLIP_MODE:
            raise HostOperationError(
                f"'{action}' is not available in {self.animation_mode} animation mode"
            )
        target = self._get_item(item)
        self.active_item = item
        self.journal.append((action, item, seconds, frames))
        return target

    def _snapshot(self) -> List[Dict[str, Any]]:
        return [
            {"inPoint": it.in_point, "outPoint": it.out_point, "selected": it.selected}
            for it in self.items
        ]

    def _restore(self, snapshot: List[Dict[str, Any]]) -> None:
        if len(snapshot) != len(self.items):
            raise ValueError("History entry does not match the document's items")
        for item, state in zip(self.items, snapshot):
            item.in_point = state["inPoint"]
            item.out_point = state["outPoint"]
            item.selected = state["selected"]

    # ========================================================================
    # SERIALIZATION
    # ========================================================================

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TimelineDocument':
        """Build a document from its JSON form, validating every field."""
        if not isinstance(data, dict):
            raise ValueError("Timeline document must be a JSON object")
        try:
            frame_rate = float(data.get("frameRate", 30.0))
            playhead = float(data.get("playheadFrame", 0.0))
        except (TypeError, ValueError):
            raise ValueError("frameRate and playheadFrame must be numbers")
        if not math.isfinite(frame_rate) or frame_rate <= 0:
            raise ValueError(f"frameRate must be a positive number, got {frame_rate}")
        if not math.isfinite(playhead) or playhead < 0:
            raise ValueError(f"playheadFrame must be a non-negative number, got {playhead}")

        raw_items = data.get("items", [])
        if not isinstance(raw_items, list):
            raise ValueError("'items' must be a list")

        items = []
        for i, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                raise ValueError(f"Item {i} must be an object")
            in_point, out_point = _parse_span(raw, f"Item {i}")
            items.append(TimelineItem(
                name=str(raw.get("name", f"Layer {i}")),
                in_point=in_point,
                out_point=out_point,
                selected=bool(raw.get("selected", False)),
            ))

        doc = cls(
            items=items,
            frame_rate=frame_rate,
            playhead=playhead,
            animation_mode=str(data.get("animationMode", CLIP_MODE)),
            has_background=bool(data.get("hasBackground", False)),
        )
        raw_history = data.get("history", [])
        if not isinstance(raw_history, list):
            raise ValueError("'history' must be a list")
        for n, raw_entry in enumerate(raw_history):
            snapshot = raw_entry.get("items", []) if isinstance(raw_entry, dict) else None
            if not isinstance(snapshot, list) or len(snapshot) != len(items):
                raise ValueError("History entry does not match the document's items")
            states = []
            for i, state in enumerate(snapshot):
                where = f"History entry {n}, item {i}"
                if not isinstance(state, dict):
                    raise ValueError(f"{where} must be an object")
                if "inPoint" not in state or "outPoint" not in state:
                    raise ValueError(f"{where} needs inPoint and outPoint")
                in_point, out_point = _parse_span(state, where)
                selected = state.get("selected", False)
                if not isinstance(selected, bool):
                    raise ValueError(f"{where} has a non-boolean 'selected'")
                states.append({"inPoint": in_point, "outPoint": out_point, "selected": selected})
            doc.history.append(HistoryEntry(name=str(raw_entry.get("name", "")), snapshot=states))
        return doc

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frameRate": self.fps,
            "playheadFrame": self.playhead,
            "animationMode": self.animation_mode,
            "hasBackground": self.has_background,
            "items": [
                {
                    "name": it.name,
                    "inPoint": it.in_point,
                    "outPoint": it.out_point,
                    "selected": it.selected,
                }
                for it in self.items
            ],
            "history": [
                {"name": entry.name, "items": copy.deepcopy(entry.snapshot)}
                for entry in self.history
            ],
        }

    def save(self, output_path: str) -> str:
        """Write the document as JSON and return the path written."""
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2)
            f.write('\n')
        return output_path


def _frame_value(value: Any, field_name: str, where: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{where} has a non-integer {field_name}")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if not isinstance(value, int):
        raise ValueError(f"{where} has a non-integer {field_name}")
    return value


def _parse_span(raw: Dict[str, Any], where: str) -> Tuple[int, int]:
    """Read ``inPoint``/``outPoint`` as whole frames with 0 <= in < out."""
    in_point = _frame_value(raw.get("inPoint", 0), "inPoint", where)
    out_point = _frame_value(raw.get("outPoint", in_point + 1), "outPoint", where)
    if in_point < 0 or out_point <= in_point:
        raise ValueError(
            f"{where} must satisfy 0 <= inPoint < outPoint, got {in_point}..{out_point}"
        )
    return in_point, out_point


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

def load_document(filepath: str) -> TimelineDocument:
    """Load a timeline document from a JSON file."""
    path = Path(filepath)
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {filepath}")
    if path.stat().st_size > MAX_DOCUMENT_SIZE:
        raise ValueError(
            f"Timeline document too large. Maximum: {MAX_DOCUMENT_SIZE // (1024 * 1024)} MB"
        )
    try:
        data = json.loads(path.read_text(encoding='utf-8'))
    except json.JSONDecodeError as e:
        raise ValueError(f"Malformed timeline document: {e.msg} (line {e.lineno})")
    return TimelineDocument.from_dict(data)
