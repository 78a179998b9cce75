"""
Comment lifecycle and reply threads.

Comments toggle between Active and Resolved (no terminal state, no
automatic resolution). Replies form a tree under each comment; they have
no status of their own and deleting one removes its whole subtree.

All functions return new Comment objects and leave their input untouched.
"""

from enum import Enum
from typing import Iterator, Optional

from .errors import InvalidCommentError, NotFoundError
from .models import Comment, CommentStatus, Reply, clone_replies

CALENDAR_TITLE_CHARS = 30


class DueDateAction(str, Enum):
    """What a due-date change requires from the task/calendar mirror."""
    NONE = "none"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def require_text(text: Optional[str], what: str = "Comment") -> str:
    """Return stripped text, rejecting blanks."""
    if text is None or not text.strip():
        raise InvalidCommentError(f"{what} text is required")
    return text.strip()


def toggled_status(status: CommentStatus) -> CommentStatus:
    if status == CommentStatus.RESOLVED:
        return CommentStatus.ACTIVE
    return CommentStatus.RESOLVED


def toggle_status(comment: Comment) -> Comment:
    """Flip Active and Resolved."""
    return comment.evolve(status=toggled_status(comment.status))


def edit_text(comment: Comment, text: str) -> Comment:
    """Replace the comment text. Status is unchanged."""
    return comment.evolve(text=require_text(text))


# =============================================================================
# Reply trees
# =============================================================================

def iter_replies(replies: list[Reply], max_depth: Optional[int] = 64) -> Iterator[tuple[int, Reply]]:
    """
    Depth-first walk over a reply tree.

    Yields (depth, reply) with top-level replies at depth 0, in display
    order. Subtrees deeper than ``max_depth`` are not descended into;
    ``max_depth=None`` walks the whole tree.
    """
    stack = [(0, reply) for reply in reversed(replies)]
    while stack:
        depth, reply = stack.pop()
        yield depth, reply
        if max_depth is None or depth + 1 < max_depth:
            stack.extend((depth + 1, child) for child in reversed(reply.replies))


def find_reply(replies: list[Reply], reply_id: str, max_depth: Optional[int] = 64) -> Optional[Reply]:
    for _, reply in iter_replies(replies, max_depth):
        if reply.id == reply_id:
            return reply
    return None


def count_replies(replies: list[Reply], max_depth: Optional[int] = 64) -> int:
    return sum(1 for _ in iter_replies(replies, max_depth))


def add_reply(comment: Comment, reply: Reply, parent_reply_id: Optional[str] = None) -> Comment:
    """
    Append a reply to a comment, or under another reply at any depth.

    Raises:
        InvalidCommentError: If the reply text is blank
        NotFoundError: If the parent reply does not exist
    """
    require_text(reply.text, "Reply")
    replies = clone_replies(comment.replies)
    if parent_reply_id is None:
        replies.append(reply)
    else:
        parent = find_reply(replies, parent_reply_id, max_depth=None)
        if parent is None:
            raise NotFoundError("reply", parent_reply_id)
        parent.replies.append(reply)
    return comment.evolve(replies=replies)


def delete_reply(comment: Comment, reply_id: str) -> Comment:
    """
    Remove a reply and everything nested under it, at any depth.

    Raises:
        NotFoundError: If the reply does not exist
    """
    replies = clone_replies(comment.replies)
    for siblings in _sibling_lists(replies):
        for index, reply in enumerate(siblings):
            if reply.id == reply_id:
                del siblings[index]
                return comment.evolve(replies=replies)
    raise NotFoundError("reply", reply_id)


def _sibling_lists(replies: list[Reply]) -> Iterator[list[Reply]]:
    yield replies
    for _, reply in iter_replies(replies, max_depth=None):
        if reply.replies:
            yield reply.replies


# =============================================================================
# Due dates
# =============================================================================

def plan_due_date_change(old: Optional[str], new: Optional[str]) -> DueDateAction:
    """
    Decide the mirror action for a due-date change.

    Setting a first due date creates the linked entry, clearing it deletes
    the entry, and changing it updates the entry in place.
    """
    old = old or None
    new = new or None
    if new and not old:
        return DueDateAction.CREATE
    if old and not new:
        return DueDateAction.DELETE
    if old and new and old != new:
        return DueDateAction.UPDATE
    return DueDateAction.NONE


def calendar_title(comment: Comment) -> str:
    """Title used for the linked task/calendar entry."""
    return f"Comment #{comment.pin_number}: {comment.text[:CALENDAR_TITLE_CHARS]}..."
