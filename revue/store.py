"""
Storage collaborators and in-memory implementations.

The annotation engine talks to two collaborators:

- DocumentStore: comments and targets, with a per-target subscription
  that pushes the canonical comment list after every write
- TaskMirror: tasks/calendar entries linked to comments with a due date

Both are asynchronous. The in-memory versions back the tests and a
throwaway ``revue serve --memory`` instance.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, AsyncIterator, Optional

from .errors import NotFoundError
from .logging import get_logger, short_id
from .models import AnnotationTarget, Comment, new_id, target_from_dict, utc_now

logger = get_logger(__name__)


class SnapshotHub:
    """Fans canonical comment lists out to subscribers of a target."""

    def __init__(self):
        self._queues: dict[str, list[asyncio.Queue]] = {}

    def open(self, target_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.setdefault(target_id, []).append(queue)
        return queue

    def close(self, target_id: str, queue: asyncio.Queue) -> None:
        queues = self._queues.get(target_id, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._queues.pop(target_id, None)

    def has_subscribers(self, target_id: str) -> bool:
        return bool(self._queues.get(target_id))

    def publish(self, target_id: str, comments: list[Comment]) -> None:
        for queue in self._queues.get(target_id, []):
            queue.put_nowait([copy_comment(c) for c in comments])


def copy_comment(comment: Comment) -> Comment:
    return Comment.from_dict(comment.to_dict())


def copy_target(target: AnnotationTarget) -> AnnotationTarget:
    return target_from_dict(target.to_dict())


class DocumentStore(ABC):
    """Persistent comment and target storage."""

    @abstractmethod
    def subscribe(self, target_id: str) -> AsyncIterator[list[Comment]]:
        """Stream the target's comment list: the current list first, then one per write."""

    @abstractmethod
    async def list_comments(self, target_id: str) -> list[Comment]:
        ...

    @abstractmethod
    async def create(self, comment: Comment) -> str:
        """Persist a new comment, stamping server-side creation time. Returns its id."""

    @abstractmethod
    async def update(self, comment_id: str, fields: dict[str, Any]) -> None:
        """Overwrite the given comment fields (last write wins)."""

    @abstractmethod
    async def delete(self, comment_id: str) -> None:
        ...

    @abstractmethod
    async def increment_comment_count(self, target_id: str, delta: int) -> int:
        """Atomically adjust a target's comment counter. Returns the new value."""

    @abstractmethod
    async def list_targets(self) -> list[AnnotationTarget]:
        ...

    @abstractmethod
    async def get_target(self, target_id: str) -> Optional[AnnotationTarget]:
        ...

    @abstractmethod
    async def save_target(self, target: AnnotationTarget) -> None:
        ...

    @abstractmethod
    async def update_target(self, target_id: str, fields: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def delete_target(self, target_id: str) -> None:
        """Delete a target and any comments still attached to it."""


class TaskMirror(ABC):
    """External tasks/calendar entries mirroring comment due dates."""

    @abstractmethod
    async def create_from_comment(
        self,
        comment_id: str,
        text: str,
        due_date: str,
        author_id: str,
        title: Optional[str] = None,
    ) -> str:
        """Create the linked entry. Returns the linked id."""

    @abstractmethod
    async def update_linked(self, linked_id: str, fields: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def delete_linked(self, comment_id: str) -> int:
        """Delete every entry linked to a comment. Returns how many were removed."""


# =============================================================================
# In-memory implementations
# =============================================================================

class MemoryDocumentStore(DocumentStore):
    """Dictionary-backed store. Writes are atomic on the event loop."""

    def __init__(self):
        self._comments: dict[str, Comment] = {}
        self._targets: dict[str, AnnotationTarget] = {}
        self._hub = SnapshotHub()

    def _snapshot(self, target_id: str) -> list[Comment]:
        comments = [c for c in self._comments.values() if c.target_id == target_id]
        return sorted(comments, key=lambda c: c.created_at)

    def _publish(self, target_id: str) -> None:
        self._hub.publish(target_id, self._snapshot(target_id))

    async def subscribe(self, target_id: str) -> AsyncIterator[list[Comment]]:
        queue = self._hub.open(target_id)
        try:
            yield [copy_comment(c) for c in self._snapshot(target_id)]
            while True:
                yield await queue.get()
        finally:
            self._hub.close(target_id, queue)

    async def list_comments(self, target_id: str) -> list[Comment]:
        return [copy_comment(c) for c in self._snapshot(target_id)]

    async def create(self, comment: Comment) -> str:
        comment_id = comment.id
        if not comment_id or comment_id in self._comments:
            comment_id = new_id("com")
        stored = replace(copy_comment(comment), id=comment_id, created_at=utc_now())
        self._comments[comment_id] = stored
        self._publish(stored.target_id)
        return comment_id

    async def update(self, comment_id: str, fields: dict[str, Any]) -> None:
        stored = self._comments.get(comment_id)
        if stored is None:
            raise NotFoundError("comment", comment_id)
        updated = replace(stored, **fields)
        self._comments[comment_id] = copy_comment(updated)
        self._publish(stored.target_id)

    async def delete(self, comment_id: str) -> None:
        stored = self._comments.pop(comment_id, None)
        if stored is not None:
            self._publish(stored.target_id)

    async def increment_comment_count(self, target_id: str, delta: int) -> int:
        target = self._targets.get(target_id)
        if target is None:
            raise NotFoundError("target", target_id)
        target.comment_count = max(0, target.comment_count + delta)
        return target.comment_count

    async def list_targets(self) -> list[AnnotationTarget]:
        return [copy_target(t) for t in self._targets.values()]

    async def get_target(self, target_id: str) -> Optional[AnnotationTarget]:
        target = self._targets.get(target_id)
        return copy_target(target) if target else None

    async def save_target(self, target: AnnotationTarget) -> None:
        self._targets[target.id] = copy_target(target)

    async def update_target(self, target_id: str, fields: dict[str, Any]) -> None:
        target = self._targets.get(target_id)
        if target is None:
            raise NotFoundError("target", target_id)
        self._targets[target_id] = copy_target(replace(target, **fields))

    async def delete_target(self, target_id: str) -> None:
        self._targets.pop(target_id, None)
        orphans = [cid for cid, c in self._comments.items() if c.target_id == target_id]
        for comment_id in orphans:
            del self._comments[comment_id]
        if orphans:
            logger.info("Removed %d comments with target %s", len(orphans), short_id(target_id))
        self._publish(target_id)


class MemoryTaskMirror(TaskMirror):
    """Calendar entries kept in a dictionary keyed by linked id."""

    def __init__(self):
        self.entries: dict[str, dict[str, Any]] = {}

    def linked_to(self, comment_id: str) -> list[dict[str, Any]]:
        return [e for e in self.entries.values() if e["source_id"] == comment_id]

    async def create_from_comment(
        self,
        comment_id: str,
        text: str,
        due_date: str,
        author_id: str,
        title: Optional[str] = None,
    ) -> str:
        entry = {
            "source_id": comment_id,
            "title": title or f"Feedback: {text[:30]}...",
            "start_date": due_date,
            "end_date": due_date,
            "type": "comment",
            "user_id": author_id,
            "created_at": utc_now(),
        }
        for linked_id, existing in self.entries.items():
            if existing["source_id"] == comment_id:
                # One entry per comment; a repeated create refreshes it
                logger.warning("Entry for comment %s already exists, updating", short_id(comment_id))
                existing.update({k: v for k, v in entry.items() if k != "created_at"})
                return linked_id
        linked_id = new_id("cal")
        self.entries[linked_id] = {"id": linked_id, **entry}
        return linked_id

    async def update_linked(self, linked_id: str, fields: dict[str, Any]) -> None:
        entry = self.entries.get(linked_id)
        if entry is None:
            raise NotFoundError("calendar entry", linked_id)
        if "due_date" in fields:
            due = fields["due_date"]
            entry["start_date"] = entry["end_date"] = due
        entry.update({k: v for k, v in fields.items() if k != "due_date"})

    async def delete_linked(self, comment_id: str) -> int:
        doomed = [lid for lid, e in self.entries.items() if e["source_id"] == comment_id]
        for linked_id in doomed:
            del self.entries[linked_id]
        return len(doomed)
