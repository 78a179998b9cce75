"""
Video comment time ranges and the timeline drag editor.

Each video comment owns a [start, end) range in seconds. On the timeline
a range can be dragged as a whole (move) or by either edge (resize). All
clamping lives in :func:`apply_drag`; the drag session only tracks the
pointer and feeds deltas into it.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from .coordinates import clamp
from .models import Comment, TimeRange

MIN_RANGE_WIDTH = 0.5
DEFAULT_SPAN = 5.0


class DragMode(str, Enum):
    """Which part of a timeline bar the pointer grabbed."""
    NONE = "none"
    MOVE = "move"
    RESIZE_START = "resize-start"
    RESIZE_END = "resize-end"


def time_delta(pointer_delta_x: float, track_width: float, duration: float) -> float:
    """Convert a horizontal pointer movement on the track to seconds."""
    if track_width <= 0 or duration <= 0:
        return 0.0
    return pointer_delta_x / track_width * duration


def apply_drag(mode: DragMode, initial: TimeRange, delta: float, duration: float) -> TimeRange:
    """
    Apply a drag delta to the range captured at drag start.

    - move: shifts both bounds, keeping the width, within [0, duration]
    - resize-start: moves start within [0, end - 0.5]
    - resize-end: moves end within [start + 0.5, duration]

    Args:
        mode: Grabbed handle
        initial: Range at drag start
        delta: Drag distance in seconds (may be negative)
        duration: Video duration in seconds

    Returns:
        The new range
    """
    mode = DragMode(mode)
    if mode == DragMode.MOVE:
        width = initial.width
        start = clamp(initial.start + delta, 0.0, max(0.0, duration - width))
        return TimeRange(start, start + width)
    if mode == DragMode.RESIZE_START:
        start = max(0.0, min(initial.end - MIN_RANGE_WIDTH, initial.start + delta))
        return TimeRange(start, initial.end)
    if mode == DragMode.RESIZE_END:
        end = min(duration, max(initial.start + MIN_RANGE_WIDTH, initial.end + delta))
        if end <= initial.start:
            # Video shorter than the range start; keep the minimum width
            end = initial.start + MIN_RANGE_WIDTH
        return TimeRange(initial.start, end)
    return initial


@dataclass
class TimelineDrag:
    """
    An in-progress timeline drag.

    Holds the range captured at drag start and the live range; the live
    range is recomputed from the total pointer distance on every move, so
    rounding never accumulates.
    """
    target_id: str
    comment_id: str
    mode: DragMode
    origin_x: float
    track_width: float
    duration: float
    initial: TimeRange
    current: TimeRange

    @classmethod
    def begin(
        cls,
        comment: Comment,
        mode: DragMode,
        pointer_x: float,
        track_width: float,
        duration: float,
    ) -> "TimelineDrag":
        if comment.time_range is None:
            raise ValueError(f"Comment {comment.id} has no time range")
        return cls(
            target_id=comment.target_id,
            comment_id=comment.id,
            mode=DragMode(mode),
            origin_x=pointer_x,
            track_width=track_width,
            duration=duration,
            initial=comment.time_range,
            current=comment.time_range,
        )

    def update(self, pointer_x: float) -> TimeRange:
        delta = time_delta(pointer_x - self.origin_x, self.track_width, self.duration)
        self.current = apply_drag(self.mode, self.initial, delta, self.duration)
        return self.current

    @property
    def changed(self) -> bool:
        return self.current != self.initial


# =============================================================================
# Playback helpers
# =============================================================================

def default_range(
    playback_time: float,
    duration: Optional[float] = None,
    span: float = DEFAULT_SPAN,
) -> TimeRange:
    """Range for a new comment: from the playback time, ``span`` seconds long."""
    start = max(0.0, playback_time or 0.0)
    end = start + span
    if duration and duration > 0:
        start = min(start, max(0.0, duration - MIN_RANGE_WIDTH))
        end = min(end, duration)
        if end - start < MIN_RANGE_WIDTH:
            end = start + MIN_RANGE_WIDTH
    return TimeRange(start, end)


def is_active(comment: Comment, playback_time: float) -> bool:
    """A video pin is shown while playback is inside its range."""
    return comment.time_range is not None and comment.time_range.contains(playback_time)


def active_comments(comments: Iterable[Comment], playback_time: float) -> list[Comment]:
    """Comments whose range covers the playback time, by start then pin."""
    return sorted(
        (c for c in comments if is_active(c, playback_time)),
        key=lambda c: (c.time_range.start, c.pin_number),
    )


def seek_time(comment: Comment) -> float:
    """Where selecting a comment seeks the video to."""
    return comment.time_range.start if comment.time_range else 0.0


def seek_from_track(pointer_x: float, track_left: float, track_width: float, duration: float) -> float:
    """Playback time for a click on the timeline track."""
    if track_width <= 0 or duration <= 0:
        return 0.0
    return clamp((pointer_x - track_left) / track_width * duration, 0.0, duration)


def assign_rows(comments: Iterable[Comment]) -> dict[str, int]:
    """
    Lay out overlapping ranges on separate timeline rows.

    Comments are placed in start order, each on the first row where it
    does not overlap an earlier bar.
    """
    placed: list[list[TimeRange]] = []
    rows: dict[str, int] = {}
    ranged = sorted(
        (c for c in comments if c.time_range is not None),
        key=lambda c: (c.time_range.start, c.pin_number),
    )
    for comment in ranged:
        span = comment.time_range
        for row, bars in enumerate(placed):
            if all(span.end <= bar.start or span.start >= bar.end for bar in bars):
                bars.append(span)
                rows[comment.id] = row
                break
        else:
            placed.append([span])
            rows[comment.id] = len(placed) - 1
    return rows


def format_time(seconds: float) -> str:
    """Format playback time as m:ss."""
    if seconds is None or math.isnan(seconds) or math.isinf(seconds):
        return "0:00"
    seconds = max(0.0, seconds)
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}:{secs:02d}"
