"""Tests for the relative-only edit planner: normalizers, stagger sequencer and batch runs."""

import pytest

from timeline_resizer.document import TimelineDocument
from timeline_resizer.models import (
    BatchOutcome,
    ConfigurationError,
    DurationSpec,
    HostOperationError,
    PlacementStep,
    RepositionMode,
    ResizeSettings,
)
from timeline_resizer.planner import (
    CLAMP_SECONDS,
    GENERIC_FAILURE_MESSAGE,
    HISTORY_NAME,
    TimelineResizer,
    normalize_duration,
    normalize_position_to_zero,
    plan_positions,
    run_batch,
)

from conftest import build_document

PRIOR_SPANS = [(0, 1), (10, 50), (500, 501), (3, 9000), (250, 260)]


class FailingDocument(TimelineDocument):
    """Document whose out-point moves fail for one item."""

    def __init__(self, *args, fail_on_item=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_on_item = fail_on_item

    def move_out_point(self, item, seconds, frames):
        if item == self.fail_on_item:
            raise HostOperationError("timeline vanished")
        super().move_out_point(item, seconds, frames)


def _starts(doc):
    return [item.in_point for item in doc.items]


def _durations(doc):
    return [item.duration for item in doc.items]


# ============================================================
# Duration Normalizer
# ============================================================

class TestNormalizeDuration:

    @pytest.mark.parametrize("span", PRIOR_SPANS)
    @pytest.mark.parametrize("total_frames", [1, 2, 15, 301])
    def test_exact_duration_from_any_prior_state(self, span, total_frames):
        doc = build_document([span])
        normalize_duration(doc, 0, total_frames)
        assert doc.items[0].duration == total_frames
        assert doc.items[0].in_point == span[0]

    def test_call_sequence(self):
        doc = build_document([(10, 50)])
        normalize_duration(doc, 0, 15)
        assert doc.journal == [
            ("moveOutTime", 0, -CLAMP_SECONDS, 0),
            ("moveOutTime", 0, 0, 14),
        ]

    def test_single_frame_still_issues_zero_delta(self):
        doc = build_document([(10, 50)])
        normalize_duration(doc, 0, 1)
        assert doc.journal[-1] == ("moveOutTime", 0, 0, 0)
        assert len(doc.journal) == 2
        assert doc.items[0].duration == 1

    def test_rejects_zero_frames(self):
        doc = build_document([(10, 50)])
        with pytest.raises(ConfigurationError):
            normalize_duration(doc, 0, 0)
        assert doc.journal == []


# ============================================================
# Position Normalizer
# ============================================================

class TestNormalizePosition:

    @pytest.mark.parametrize("span", PRIOR_SPANS)
    def test_in_point_pinned_at_zero(self, span):
        doc = build_document([span])
        normalize_position_to_zero(doc, 0)
        assert doc.items[0].in_point == 0

    def test_call_sequence(self):
        doc = build_document([(10, 50)])
        normalize_position_to_zero(doc, 0)
        assert doc.journal == [("moveInTime", 0, -CLAMP_SECONDS, 0)]


# ============================================================
# Stagger Sequencer
# ============================================================

class TestPlanPositions:

    def test_at_playhead_shares_anchor(self):
        steps = plan_positions([4, 5, 6], RepositionMode.AT_PLAYHEAD, 100, 15)
        assert [s.target_frame for s in steps] == [100, 100, 100]
        assert [s.item for s in steps] == [4, 5, 6]

    def test_stagger_bottom_first(self):
        steps = plan_positions([4, 5, 6], RepositionMode.STAGGER_BOTTOM_FIRST, 100, 15)
        assert steps == [
            PlacementStep(item=4, target_frame=100, visit_order=0),
            PlacementStep(item=5, target_frame=115, visit_order=1),
            PlacementStep(item=6, target_frame=130, visit_order=2),
        ]

    def test_stagger_top_first_visits_top_down(self):
        steps = plan_positions([4, 5, 6], RepositionMode.STAGGER_TOP_FIRST, 100, 15)
        assert [(s.item, s.target_frame) for s in steps] == [(6, 100), (5, 115), (4, 130)]
        assert [s.visit_order for s in steps] == [0, 1, 2]

    def test_single_item(self):
        steps = plan_positions([9], RepositionMode.STAGGER_TOP_FIRST, 0, 30)
        assert steps == [PlacementStep(item=9, target_frame=0, visit_order=0)]

    def test_empty_selection(self):
        assert plan_positions([], RepositionMode.STAGGER_BOTTOM_FIRST, 0, 30) == []

    def test_accepts_mode_names(self):
        steps = plan_positions([1, 2], "stagger-bottom-first", 10, 5)
        assert [s.target_frame for s in steps] == [10, 15]

    def test_none_mode_rejected(self):
        with pytest.raises(ConfigurationError):
            plan_positions([1, 2], RepositionMode.NONE, 0, 10)


# ============================================================
# Batch Orchestrator
# ============================================================

class TestRunBatchDurationOnly:

    def test_keeps_start_frames(self, three_layers):
        result = run_batch(three_layers, [0, 1, 2], DurationSpec(0, 15))
        assert result.outcome is BatchOutcome.SUCCESS
        assert result.items_processed == 3
        assert _starts(three_layers) == [40, 0, 212]
        assert _durations(three_layers) == [15, 15, 15]

    def test_does_not_query_playhead(self, three_layers, monkeypatch):
        def fail():
            raise AssertionError("playhead should not be queried")
        monkeypatch.setattr(three_layers, "playhead_frame", fail)
        run_batch(three_layers, [0, 1, 2], DurationSpec(1, 0))

    def test_visits_in_selection_order(self, three_layers):
        run_batch(three_layers, [2, 0], DurationSpec(0, 5))
        assert [entry[1] for entry in three_layers.journal] == [2, 2, 0, 0]
        assert _durations(three_layers) == [5, 300, 5]

    def test_seconds_use_frame_rate(self):
        doc = build_document([(10, 20)], frame_rate=24.0)
        result = run_batch(doc, [0], DurationSpec(2, 5))
        assert result.total_frames == 53
        assert doc.items[0].duration == 53


class TestRunBatchRepositioning:

    def test_stagger_bottom_first_example(self, three_layers):
        result = run_batch(three_layers, [0, 1, 2], DurationSpec(0, 15), RepositionMode.STAGGER_BOTTOM_FIRST)
        assert result.succeeded
        assert _starts(three_layers) == [100, 115, 130]
        assert _durations(three_layers) == [15, 15, 15]

    def test_stagger_top_first(self, three_layers):
        run_batch(three_layers, [0, 1, 2], DurationSpec(0, 15), RepositionMode.STAGGER_TOP_FIRST)
        assert _starts(three_layers) == [130, 115, 100]

    def test_at_playhead(self, three_layers):
        run_batch(three_layers, [0, 1, 2], DurationSpec(1, 0), RepositionMode.AT_PLAYHEAD)
        assert _starts(three_layers) == [100, 100, 100]
        assert _durations(three_layers) == [30, 30, 30]

    @pytest.mark.parametrize("count", [1, 2, 5, 8])
    def test_stagger_has_no_gaps_or_overlaps(self, count):
        doc = build_document([(i * 7, i * 7 + 40) for i in range(count)], playhead=12)
        run_batch(doc, list(range(count)), DurationSpec(0, 9), RepositionMode.STAGGER_BOTTOM_FIRST)
        for k, item in enumerate(doc.items):
            assert item.in_point == 12 + k * 9
        for below, above in zip(doc.items, doc.items[1:]):
            assert below.out_point == above.in_point

    def test_explicit_anchor_overrides_playhead(self, three_layers):
        run_batch(three_layers, [0, 1, 2], DurationSpec(0, 10), RepositionMode.STAGGER_BOTTOM_FIRST, anchor_frame=0)
        assert _starts(three_layers) == [0, 10, 20]

    def test_fractional_playhead_rounds(self):
        doc = build_document([(5, 8)], playhead=41.6)
        run_batch(doc, [0], DurationSpec(0, 3), RepositionMode.AT_PLAYHEAD)
        assert doc.items[0].in_point == 42

    def test_call_sequence_per_item(self):
        doc = build_document([(10, 50)])
        run_batch(doc, [0], DurationSpec(0, 15), RepositionMode.AT_PLAYHEAD)
        assert doc.journal == [
            ("moveInTime", 0, -CLAMP_SECONDS, 0),
            ("moveOutTime", 0, -CLAMP_SECONDS, 0),
            ("moveOutTime", 0, 0, 14),
            ("moveAllTime", 0, 0, 100),
        ]

    def test_placements_reported(self, three_layers):
        result = run_batch(three_layers, [0, 1, 2], DurationSpec(0, 15), RepositionMode.STAGGER_TOP_FIRST)
        assert [s.item for s in result.placements] == [2, 1, 0]

    @pytest.mark.parametrize("mode", list(RepositionMode))
    def test_idempotent(self, mode):
        once = build_document([(40, 90), (0, 300), (212, 215)])
        twice = build_document([(40, 90), (0, 300), (212, 215)])
        run_batch(once, [0, 1, 2], DurationSpec(0, 20), mode)
        run_batch(twice, [0, 1, 2], DurationSpec(0, 20), mode)
        run_batch(twice, [0, 1, 2], DurationSpec(0, 20), mode)
        assert [it.span() for it in once.items] == [it.span() for it in twice.items]


class TestRunBatchErrors:

    def test_zero_duration_rejected_before_edits(self, three_layers):
        with pytest.raises(ConfigurationError):
            run_batch(three_layers, [0, 1, 2], DurationSpec(0, 0), RepositionMode.AT_PLAYHEAD)
        assert three_layers.journal == []
        assert three_layers.history == []

    def test_unknown_mode_rejected(self, three_layers):
        with pytest.raises(ConfigurationError):
            run_batch(three_layers, [0, 1, 2], DurationSpec(0, 5), "diagonal")
        assert three_layers.journal == []

    def test_negative_duration_rejected(self, three_layers):
        with pytest.raises(ConfigurationError):
            run_batch(three_layers, [0], DurationSpec(-1, 40))

    @pytest.mark.parametrize("anchor", [-20, -0.6, "100", [100], float("nan"), float("inf"), True])
    def test_bad_explicit_anchor_rejected_before_edits(self, three_layers, anchor):
        before = [it.span() for it in three_layers.items]
        with pytest.raises(ConfigurationError):
            run_batch(three_layers, [0, 1, 2], DurationSpec(0, 15),
                      RepositionMode.STAGGER_BOTTOM_FIRST, anchor_frame=anchor)
        assert three_layers.journal == []
        assert three_layers.history == []
        assert [it.span() for it in three_layers.items] == before

    def test_negative_playhead_rejected_before_edits(self):
        doc = build_document([(40, 90), (0, 300), (212, 215)], playhead=-20)
        with pytest.raises(ConfigurationError, match="before frame 0"):
            run_batch(doc, [0, 1, 2], DurationSpec(0, 15), RepositionMode.STAGGER_BOTTOM_FIRST)
        assert doc.journal == []
        assert doc.history == []
        assert doc.selected_item_indices() == [0, 1, 2]

    def test_anchor_rounding_to_zero_allowed(self, three_layers):
        run_batch(three_layers, [0, 1, 2], DurationSpec(0, 10),
                  RepositionMode.STAGGER_BOTTOM_FIRST, anchor_frame=-0.4)
        assert _starts(three_layers) == [0, 10, 20]

    def test_anchor_ignored_without_repositioning(self, three_layers):
        result = run_batch(three_layers, [0, 1, 2], DurationSpec(0, 10), anchor_frame=-5)
        assert result.succeeded
        assert _starts(three_layers) == [40, 0, 212]

    def test_host_failure_aborts_remaining_items(self):
        doc = FailingDocument(build_document([(40, 90), (0, 300), (212, 215)]).items, playhead=100, fail_on_item=1)
        result = run_batch(doc, [0, 1, 2], DurationSpec(0, 15), RepositionMode.STAGGER_BOTTOM_FIRST)
        assert result.outcome is BatchOutcome.ABORTED
        assert result.message == GENERIC_FAILURE_MESSAGE
        assert result.items_processed == 1
        # First item edited and not rolled back, last item untouched
        assert doc.items[0].span() == (100, 115)
        assert doc.items[2].span() == (212, 215)
        assert all(entry[1] != 2 for entry in doc.journal)

    def test_abort_keeps_single_undo_entry(self):
        doc = FailingDocument(build_document([(40, 90), (0, 300), (212, 215)]).items, fail_on_item=2)
        run_batch(doc, [0, 1, 2], DurationSpec(0, 15), RepositionMode.STAGGER_BOTTOM_FIRST)
        assert len(doc.history) == 1
        doc.undo()
        assert [it.span() for it in doc.items] == [(40, 90), (0, 300), (212, 215)]

    def test_frame_animation_mode_aborts(self):
        doc = build_document([(40, 90), (0, 300)], animation_mode="frame")
        result = run_batch(doc, [0, 1], DurationSpec(0, 15))
        assert result.outcome is BatchOutcome.ABORTED
        assert result.items_processed == 0
        assert [it.span() for it in doc.items] == [(40, 90), (0, 300)]

    def test_missing_timeline_aborts(self):
        result = run_batch(TimelineDocument(), [], DurationSpec(0, 15))
        assert result.outcome is BatchOutcome.ABORTED

    def test_selection_restored_after_abort(self):
        doc = FailingDocument(build_document([(40, 90), (0, 300), (212, 215)]).items, fail_on_item=0)
        result = run_batch(doc, [0, 2], DurationSpec(0, 15))
        assert not result.succeeded
        assert doc.selected_item_indices() == [0, 2]


class TestRunBatchHistory:

    @pytest.mark.parametrize("count", [1, 4, 12])
    def test_one_history_entry_per_batch(self, count):
        doc = build_document([(i, i + 10) for i in range(count)])
        run_batch(doc, list(range(count)), DurationSpec(0, 3), RepositionMode.STAGGER_TOP_FIRST)
        assert len(doc.history) == 1
        assert doc.history[0].name == HISTORY_NAME

    def test_undo_reverts_whole_batch(self, three_layers):
        before = [it.span() for it in three_layers.items]
        run_batch(three_layers, [0, 1, 2], DurationSpec(0, 15), RepositionMode.STAGGER_BOTTOM_FIRST)
        three_layers.undo()
        assert [it.span() for it in three_layers.items] == before

    def test_selection_restored(self):
        doc = build_document([(0, 10), (5, 6), (9, 40)], selected={0, 2})
        run_batch(doc, [0, 2], DurationSpec(0, 4), RepositionMode.AT_PLAYHEAD)
        assert doc.selected_item_indices() == [0, 2]


# ============================================================
# TimelineResizer
# ============================================================

class TestTimelineResizer:

    def test_resize_selection_skips_background(self):
        doc = build_document([(0, 600), (10, 20), (30, 40)], has_background=True)
        settings = ResizeSettings(duration_seconds=0, duration_frames=15,
                                  reposition_mode=RepositionMode.STAGGER_BOTTOM_FIRST)
        result = TimelineResizer(doc).resize_selection(settings)
        assert result.items == [1, 2]
        assert doc.items[0].span() == (0, 600)
        assert [doc.items[1].span(), doc.items[2].span()] == [(100, 115), (115, 130)]

    def test_empty_selection_rejected(self):
        doc = build_document([(0, 10)], selected=set())
        with pytest.raises(ConfigurationError, match="Select the layers"):
            TimelineResizer(doc).resize_selection(ResizeSettings())

    def test_preview_does_not_edit(self, three_layers):
        settings = ResizeSettings(duration_seconds=0, duration_frames=15,
                                  reposition_mode=RepositionMode.STAGGER_TOP_FIRST)
        steps = TimelineResizer(three_layers).preview(settings, [0, 1, 2])
        assert [(s.item, s.target_frame) for s in steps] == [(2, 100), (1, 115), (0, 130)]
        assert three_layers.journal == []

    def test_preview_rejects_negative_anchor(self, three_layers):
        settings = ResizeSettings(reposition_mode=RepositionMode.AT_PLAYHEAD)
        with pytest.raises(ConfigurationError):
            TimelineResizer(three_layers).preview(settings, [0, 1, 2], anchor_frame=-3)

    def test_preview_none_mode_is_empty(self, three_layers):
        assert TimelineResizer(three_layers).preview(ResizeSettings(), [0, 1, 2]) == []
