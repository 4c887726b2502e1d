"""Shared fixtures: in-memory timeline documents and on-disk copies."""

import json

import pytest

from timeline_resizer.document import TimelineDocument, TimelineItem


def build_document(spans, frame_rate=30.0, playhead=100.0, selected=None, **kwargs):
    """Build a document from (in, out) spans; every item is selected unless told otherwise."""
    items = []
    for i, (in_point, out_point) in enumerate(spans):
        is_selected = True if selected is None else i in selected
        items.append(TimelineItem(f"Layer {i}", in_point, out_point, is_selected))
    return TimelineDocument(items, frame_rate=frame_rate, playhead=playhead, **kwargs)


@pytest.fixture
def three_layers():
    """Three selected layers with unrelated prior spans, 30fps, playhead at 100."""
    return build_document([(40, 90), (0, 300), (212, 215)])


@pytest.fixture
def timeline_file(tmp_path):
    """A timeline document on disk: background plus three layers, two selected."""
    data = {
        "frameRate": 30,
        "playheadFrame": 100,
        "animationMode": "clip",
        "hasBackground": True,
        "items": [
            {"name": "Background", "inPoint": 0, "outPoint": 600, "selected": True},
            {"name": "Title", "inPoint": 12, "outPoint": 90, "selected": True},
            {"name": "Logo", "inPoint": 300, "outPoint": 301, "selected": False},
            {"name": "Lower Third", "inPoint": 45, "outPoint": 400, "selected": True},
        ],
    }
    path = tmp_path / "edit.timeline.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def settings_file(tmp_path, monkeypatch):
    """Point the settings store at a temp file for the duration of a test."""
    path = tmp_path / "config" / "settings.txt"
    monkeypatch.setenv("TIMELINE_RESIZER_SETTINGS", str(path))
    return path
