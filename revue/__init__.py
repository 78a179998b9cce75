"""
Revue - Annotation Engine

Pinned, threaded review comments on three kinds of targets:
- Websites, reviewed page by page at several device breakpoints
- Mockups, one set of pins per image
- Videos, with comments anchored to playback time ranges
"""

__version__ = "0.1.0"

from .errors import InvalidCommentError, NotFoundError, RevueError
from .models import (
    AbsolutePosition,
    Comment,
    DeviceView,
    Mockup,
    RelativePosition,
    ScopeKey,
    TimeRange,
    Video,
    Website,
)
from .scope import ReviewSession, resolve_scope
from .store import MemoryDocumentStore, MemoryTaskMirror
from .sync import SyncCoordinator

__all__ = [
    "InvalidCommentError",
    "NotFoundError",
    "RevueError",
    "AbsolutePosition",
    "Comment",
    "DeviceView",
    "Mockup",
    "RelativePosition",
    "ScopeKey",
    "TimeRange",
    "Video",
    "Website",
    "ReviewSession",
    "resolve_scope",
    "MemoryDocumentStore",
    "MemoryTaskMirror",
    "SyncCoordinator",
]
