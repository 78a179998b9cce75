"""Tests for timeline.py - video ranges and the drag editor."""

import pytest

from revue.models import Comment, ScopeKey, TargetType, TimeRange
from revue.timeline import (
    DragMode,
    TimelineDrag,
    active_comments,
    apply_drag,
    assign_rows,
    default_range,
    format_time,
    is_active,
    seek_from_track,
    seek_time,
    time_delta,
)

SCOPE = ScopeKey("vid-1", "clip-a")


def ranged(start, end, pin=1):
    return Comment.create(SCOPE, TargetType.VIDEO, pin, f"At {start}", time_range=TimeRange(start, end))


class TestTimeRange:
    def test_end_must_follow_start(self):
        with pytest.raises(ValueError):
            TimeRange(5, 5)

    def test_start_must_be_non_negative(self):
        with pytest.raises(ValueError):
            TimeRange(-1, 2)

    def test_half_open(self):
        span = TimeRange(10, 15)
        assert span.contains(10)
        assert not span.contains(15)


class TestApplyDrag:
    """Tests for drag clamping rules."""

    def test_pointer_distance_to_seconds(self):
        assert time_delta(100, 500, 60) == pytest.approx(12)
        assert time_delta(100, 0, 60) == 0.0

    def test_resize_start_keeps_minimum_width(self):
        """Dragging the start 15s right on [10, 20) stops at 19.5."""
        assert apply_drag(DragMode.RESIZE_START, TimeRange(10, 20), 15, 60) == TimeRange(19.5, 20)

    def test_resize_start_stops_at_zero(self):
        assert apply_drag(DragMode.RESIZE_START, TimeRange(10, 20), -30, 60) == TimeRange(0, 20)

    def test_move_keeps_width_inside_video(self):
        assert apply_drag(DragMode.MOVE, TimeRange(10, 20), 45, 60) == TimeRange(50, 60)
        assert apply_drag(DragMode.MOVE, TimeRange(10, 20), -20, 60) == TimeRange(0, 10)

    def test_resize_end_keeps_minimum_width(self):
        assert apply_drag(DragMode.RESIZE_END, TimeRange(10, 20), -15, 60) == TimeRange(10, 10.5)

    def test_resize_end_stops_at_duration(self):
        assert apply_drag(DragMode.RESIZE_END, TimeRange(10, 20), 100, 60) == TimeRange(10, 60)

    def test_resize_end_on_short_video(self):
        """A duration before the range start still leaves a valid range."""
        assert apply_drag(DragMode.RESIZE_END, TimeRange(10, 20), 1, 8) == TimeRange(10, 10.5)

    def test_none_mode_is_a_no_op(self):
        assert apply_drag(DragMode.NONE, TimeRange(10, 20), 5, 60) == TimeRange(10, 20)


class TestTimelineDrag:
    """Tests for the drag session."""

    def test_updates_from_total_pointer_distance(self):
        drag = TimelineDrag.begin(ranged(10, 20), DragMode.MOVE, pointer_x=100, track_width=600, duration=60)
        assert drag.update(160) == TimeRange(16, 26)
        assert drag.changed
        assert drag.update(100) == TimeRange(10, 20)
        assert not drag.changed

    def test_requires_a_range(self):
        comment = Comment.create(SCOPE, TargetType.VIDEO, 1, "No range")
        with pytest.raises(ValueError):
            TimelineDrag.begin(comment, DragMode.MOVE, 0, 600, 60)


class TestPlayback:
    """Tests for playback-driven visibility and defaults."""

    def test_active_window(self):
        """A [10, 15) comment shows at 12 and not at 17."""
        comment = ranged(10, 15)
        assert is_active(comment, 12)
        assert not is_active(comment, 17)
        assert not is_active(comment, 15)

    def test_active_comments_sorted_by_start(self):
        late, early, gone = ranged(8, 20, pin=1), ranged(2, 12, pin=2), ranged(0, 1, pin=3)
        assert active_comments([late, early, gone], 10) == [early, late]

    def test_default_range_from_playback_time(self):
        assert default_range(12) == TimeRange(12, 17)

    def test_default_range_clamped_to_duration(self):
        assert default_range(58, duration=60) == TimeRange(58, 60)
        assert default_range(59.8, duration=60) == TimeRange(59.5, 60)

    def test_seek(self):
        assert seek_time(ranged(42, 50)) == 42
        assert seek_from_track(250, 50, 400, 60) == pytest.approx(30)
        assert seek_from_track(10, 50, 400, 60) == 0.0


class TestLayout:
    def test_overlapping_ranges_use_separate_rows(self):
        a, b, c = ranged(0, 5, 1), ranged(3, 8, 2), ranged(5, 9, 3)
        assert assign_rows([c, b, a]) == {a.id: 0, b.id: 1, c.id: 0}

    @pytest.mark.parametrize(
        "seconds,label",
        [(0, "0:00"), (5.9, "0:05"), (75, "1:15"), (600, "10:00"), (-3, "0:00"), (None, "0:00")],
    )
    def test_format_time(self, seconds, label):
        assert format_time(seconds) == label
