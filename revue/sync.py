"""
Optimistic local state synchronized with the document store.

The coordinator owns the local copy of every loaded target and its
comments. It is the only writer: readers register listeners and get the
new comment list after each change.

Every mutation follows the same protocol:

1. apply it to the local copy and notify listeners (no waiting)
2. tag it as pending and send the matching write to the store
3. canonical snapshots from the store's subscription replace the local
   copy; pending mutations and a live timeline drag are laid over them

A rejected write is recorded as a SyncWarning and, unless disabled in
the config, reverted locally. Failures are never raised to callers;
only invalid input is (InvalidCommentError, NotFoundError).
"""

import asyncio
import itertools
from collections import deque
from contextlib import suppress
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional

from . import approval, config, targets as target_ops, threads
from .errors import (
    CascadeError,
    InvalidCommentError,
    MirrorError,
    NotFoundError,
    StoreWriteError,
)
from .logging import get_logger, log_context, short_id
from .models import (
    AbsolutePosition,
    AnnotationTarget,
    Comment,
    CommentStatus,
    Position,
    RelativePosition,
    Reply,
    ReviewStatus,
    ScopeKey,
    SubAsset,
    TargetType,
    TimeRange,
    utc_now,
)
from .numbering import next_pin_number
from .scope import ReviewSession, comments_for_sub_asset, comments_in_scope
from .store import DocumentStore, TaskMirror
from .timeline import DragMode, TimelineDrag, default_range

logger = get_logger(__name__)

REMOTE_ERRORS = (StoreWriteError, NotFoundError)
MIRROR_ERRORS = (MirrorError, StoreWriteError, NotFoundError)
EDITABLE_FIELDS = {"text", "due_date", "time_range", "position", "status"}
MAX_WARNINGS = 100

Listener = Callable[[str, list[Comment]], None]
WarningListener = Callable[["SyncWarning"], None]


@dataclass
class SyncWarning:
    """A non-blocking failure shown to the user."""
    operation: str
    message: str
    target_id: str
    comment_id: Optional[str] = None
    rolled_back: bool = False
    created_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "message": self.message,
            "target_id": self.target_id,
            "comment_id": self.comment_id,
            "rolled_back": self.rolled_back,
            "created_at": self.created_at,
        }


@dataclass
class PendingMutation:
    """A local change whose remote write has not been acknowledged."""
    token: int
    kind: str  # "comment" or "target"
    target_id: str
    key: str
    before: Any
    after: Any


class SyncCoordinator:
    """
    Single mutation surface for targets and comments.

    Args:
        store: Document store collaborator
        mirror: Task/calendar mirror collaborator
        rollback_on_failure: Revert rejected optimistic changes (config default)
        max_reply_depth: Traversal cap for reply trees (config default)
        default_video_span: Width of new video ranges in seconds (config default)
    """

    def __init__(
        self,
        store: DocumentStore,
        mirror: TaskMirror,
        rollback_on_failure: Optional[bool] = None,
        max_reply_depth: Optional[int] = None,
        default_video_span: Optional[float] = None,
    ):
        self.store = store
        self.mirror = mirror
        self.rollback_on_failure = (
            rollback_on_failure if rollback_on_failure is not None else config.rollback_on_failure()
        )
        self.max_reply_depth = max_reply_depth or config.get_max_reply_depth()
        self.default_video_span = default_video_span or config.get_default_video_span()

        self._targets: dict[str, AnnotationTarget] = {}
        self._comments: dict[str, dict[str, Comment]] = {}
        self._pending: dict[int, PendingMutation] = {}
        self._tokens = itertools.count(1)
        self._drag: Optional[TimelineDrag] = None
        self._listeners: list[Listener] = []
        self._warning_listeners: list[WarningListener] = []
        self._subscriptions: dict[str, asyncio.Task] = {}
        self.warnings: deque[SyncWarning] = deque(maxlen=MAX_WARNINGS)

    # =========================================================================
    # Reads
    # =========================================================================

    def targets(self) -> list[AnnotationTarget]:
        return sorted(self._targets.values(), key=lambda t: t.created_at)

    def target(self, target_id: str) -> AnnotationTarget:
        target = self._targets.get(target_id)
        if target is None:
            raise NotFoundError("target", target_id)
        return target

    def comments(self, target_id: str) -> list[Comment]:
        return sorted(self._comments.get(target_id, {}).values(), key=lambda c: c.created_at)

    def all_comments(self) -> list[Comment]:
        return [c for target_id in self._comments for c in self.comments(target_id)]

    def comments_in_scope(self, scope: ScopeKey) -> list[Comment]:
        return comments_in_scope(self._comments.get(scope.target_id, {}).values(), scope)

    def get_comment(self, target_id: str, comment_id: str) -> Comment:
        comment = self._comments.get(target_id, {}).get(comment_id)
        if comment is None:
            raise NotFoundError("comment", comment_id)
        return comment

    def next_pin_number(self, scope: ScopeKey) -> int:
        return next_pin_number(self._comments.get(scope.target_id, {}).values(), scope)

    def thread(self, target_id: str, comment_id: str) -> list[tuple[int, Reply]]:
        """Replies of a comment in display order, down to the traversal cap."""
        comment = self.get_comment(target_id, comment_id)
        return list(threads.iter_replies(comment.replies, self.max_reply_depth))

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def drag(self) -> Optional[TimelineDrag]:
        return self._drag

    # =========================================================================
    # Listeners
    # =========================================================================

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a reader. Returns a function that unregisters it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def add_warning_listener(self, listener: WarningListener) -> Callable[[], None]:
        self._warning_listeners.append(listener)
        return lambda: self._warning_listeners.remove(listener) if listener in self._warning_listeners else None

    def _notify(self, target_id: str) -> None:
        comments = self.comments(target_id)
        for listener in list(self._listeners):
            listener(target_id, comments)

    def _warn(
        self,
        operation: str,
        exc: Exception,
        target_id: str,
        comment_id: Optional[str] = None,
        rolled_back: bool = False,
    ) -> SyncWarning:
        warning = SyncWarning(operation, str(exc), target_id, comment_id, rolled_back)
        self.warnings.append(warning)
        logger.warning(
            "%s failed%s: %s",
            operation,
            " (reverted)" if rolled_back else "",
            exc,
            extra=log_context(target_id, comment_id),
        )
        for listener in list(self._warning_listeners):
            listener(warning)
        return warning

    # =========================================================================
    # Pending mutations
    # =========================================================================

    def _begin(self, kind: str, target_id: str, key: str, before: Any, after: Any) -> PendingMutation:
        mutation = PendingMutation(next(self._tokens), kind, target_id, key, before, after)
        self._pending[mutation.token] = mutation
        return mutation

    def _settle(self, mutation: PendingMutation) -> None:
        self._pending.pop(mutation.token, None)

    def _current(self, mutation: PendingMutation) -> Any:
        if mutation.kind == "comment":
            return self._comments.get(mutation.target_id, {}).get(mutation.key)
        return self._targets.get(mutation.key)

    def _restore(self, mutation: PendingMutation) -> None:
        if mutation.kind == "comment":
            comments = self._comments.setdefault(mutation.target_id, {})
            if mutation.before is None:
                comments.pop(mutation.key, None)
            else:
                comments[mutation.key] = mutation.before
        elif mutation.before is None:
            self._targets.pop(mutation.key, None)
        else:
            self._targets[mutation.key] = mutation.before
        self._notify(mutation.target_id)

    def _reject(self, mutation: PendingMutation, operation: str, exc: Exception) -> SyncWarning:
        """Record a rejected write and revert it if nothing changed it since."""
        rolled_back = False
        if self.rollback_on_failure:
            if self._current(mutation) == mutation.after:
                self._restore(mutation)
                rolled_back = True
            else:
                logger.info("Not reverting %s: changed locally since", short_id(mutation.key))
        comment_id = mutation.key if mutation.kind == "comment" else None
        return self._warn(operation, exc, mutation.target_id, comment_id, rolled_back)

    def _put_comment(self, comment: Comment) -> None:
        self._comments.setdefault(comment.target_id, {})[comment.id] = comment

    def _drop_comment(self, target_id: str, comment_id: str) -> None:
        self._comments.get(target_id, {}).pop(comment_id, None)

    async def _commit_comment(
        self,
        operation: str,
        before: Comment,
        after: Comment,
        fields: dict[str, Any],
    ) -> bool:
        self._put_comment(after)
        self._notify(after.target_id)
        mutation = self._begin("comment", after.target_id, after.id, before, after)
        try:
            await self.store.update(after.id, fields)
        except REMOTE_ERRORS as exc:
            self._reject(mutation, operation, exc)
            return False
        finally:
            self._settle(mutation)
        return True

    async def _commit_target(
        self,
        operation: str,
        before: Optional[AnnotationTarget],
        after: AnnotationTarget,
        fields: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Write a target change; ``fields=None`` saves the whole target."""
        self._targets[after.id] = after
        self._notify(after.id)
        mutation = self._begin("target", after.id, after.id, before, after)
        try:
            if fields is None:
                await self.store.save_target(after)
            else:
                await self.store.update_target(after.id, fields)
        except REMOTE_ERRORS as exc:
            self._reject(mutation, operation, exc)
            return False
        finally:
            self._settle(mutation)
        return True

    async def _increment(self, target_id: str, delta: int) -> None:
        try:
            count = await self.store.increment_comment_count(target_id, delta)
        except REMOTE_ERRORS as exc:
            self._warn("update comment count", exc, target_id)
            return
        target = self._targets.get(target_id)
        if target is not None:
            self._targets[target_id] = target.evolve(comment_count=count)

    # =========================================================================
    # Loading and subscriptions
    # =========================================================================

    async def load_all(self) -> int:
        """Load every target and its comments from the store."""
        for target in await self.store.list_targets():
            self._targets[target.id] = target
            self._comments[target.id] = {c.id: c for c in await self.store.list_comments(target.id)}
        logger.info("Loaded %d targets", len(self._targets))
        return len(self._targets)

    async def load_target(self, target_id: str) -> AnnotationTarget:
        target = await self.store.get_target(target_id)
        if target is None:
            raise NotFoundError("target", target_id)
        self._targets[target_id] = target
        self._comments[target_id] = {c.id: c for c in await self.store.list_comments(target_id)}
        self._notify(target_id)
        return target

    def apply_snapshot(self, target_id: str, comments: list[Comment]) -> None:
        """Replace the local comments of a target with a canonical snapshot."""
        merged = {c.id: c for c in comments}
        for mutation in self._pending.values():
            if mutation.kind != "comment" or mutation.target_id != target_id:
                continue
            if mutation.after is None:
                merged.pop(mutation.key, None)
            else:
                merged[mutation.key] = mutation.after
        drag = self._drag
        if drag is not None and drag.target_id == target_id and drag.comment_id in merged:
            merged[drag.comment_id] = replace(merged[drag.comment_id], time_range=drag.current)
        self._comments[target_id] = merged
        self._notify(target_id)

    async def attach(self, target_id: str) -> None:
        """Start following the store's subscription for a target."""
        if target_id in self._subscriptions:
            return
        if target_id not in self._targets:
            await self.load_target(target_id)
        self._subscriptions[target_id] = asyncio.create_task(self._follow(target_id))
        logger.debug("Following target %s", short_id(target_id))

    async def attach_all(self) -> int:
        """Follow every loaded target. Returns how many are followed."""
        for target_id in list(self._targets):
            await self.attach(target_id)
        return len(self._subscriptions)

    async def _follow(self, target_id: str) -> None:
        try:
            async for snapshot in self.store.subscribe(target_id):
                self.apply_snapshot(target_id, snapshot)
        except REMOTE_ERRORS as exc:
            self._warn("subscribe", exc, target_id)

    async def detach(self, target_id: str) -> None:
        task = self._subscriptions.pop(target_id, None)
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    async def close(self) -> None:
        for target_id in list(self._subscriptions):
            await self.detach(target_id)

    # =========================================================================
    # Comments
    # =========================================================================

    def _validate_placement(
        self,
        target: AnnotationTarget,
        scope: ScopeKey,
        position: Optional[Position],
        time_range: Optional[TimeRange],
    ) -> None:
        if target.target_type == TargetType.VIDEO:
            if not isinstance(time_range, TimeRange):
                raise InvalidCommentError("Video comments need a time range")
            if position is not None and not isinstance(position, AbsolutePosition):
                raise InvalidCommentError("Video pins use overlay pixel positions")
        else:
            if not isinstance(position, RelativePosition):
                raise InvalidCommentError("A pin position is required")
            if time_range is not None:
                raise InvalidCommentError("Only video comments have a time range")
        if target.target_type == TargetType.WEBSITE:
            if scope.device_view not in target.device_views:
                raise InvalidCommentError(f"Device '{scope.device_view}' is not enabled for this website")
        elif target.sub_assets and target.find_sub_asset(scope.sub_scope_id) is None:
            raise InvalidCommentError(f"Unknown {target.sub_asset_field[:-1]} '{scope.sub_scope_id}'")

    def _prepare_comment(
        self,
        scope: ScopeKey,
        text: str,
        author_id: str,
        position: Optional[Position],
        time_range: Optional[TimeRange],
        due_date: Optional[str],
    ) -> Comment:
        """Validate and apply a new comment locally."""
        text = threads.require_text(text)
        target = self.target(scope.target_id)
        self._validate_placement(target, scope, position, time_range)
        comment = Comment.create(
            scope,
            target.target_type,
            self.next_pin_number(scope),
            text,
            author_id=author_id,
            position=position,
            time_range=time_range,
            due_date=due_date,
        )
        self._put_comment(comment)
        self._notify(target.id)
        return comment

    async def _push_new_comment(self, comment: Comment) -> Comment:
        target_id = comment.target_id
        mutation = self._begin("comment", target_id, comment.id, None, comment)
        try:
            comment_id = await self.store.create(comment)
        except REMOTE_ERRORS as exc:
            self._reject(mutation, "create comment", exc)
            return comment
        finally:
            self._settle(mutation)

        if comment_id != comment.id:
            self._drop_comment(target_id, comment.id)
            comment = replace(comment, id=comment_id)
            self._put_comment(comment)
            self._notify(target_id)
        logger.info(
            "Created comment #%d in %s", comment.pin_number, comment.scope,
            extra=log_context(target_id, comment.id),
        )

        await self._increment(target_id, 1)
        if comment.due_date:
            comment = await self._sync_due_date(comment, None)
        return comment

    async def submit_comment(
        self,
        scope: ScopeKey,
        text: str,
        author_id: str = "anonymous",
        position: Optional[Position] = None,
        time_range: Optional[TimeRange] = None,
        due_date: Optional[str] = None,
    ) -> Comment:
        """
        Create a comment with the next pin number of its scope.

        Raises:
            InvalidCommentError: Missing text, position or time range (nothing is written)
            NotFoundError: Unknown target
        """
        comment = self._prepare_comment(scope, text, author_id, position, time_range, due_date)
        return await self._push_new_comment(comment)

    async def submit_from_session(
        self,
        session: ReviewSession,
        text: str,
        author_id: str = "anonymous",
        due_date: Optional[str] = None,
        duration: Optional[float] = None,
        time_range: Optional[TimeRange] = None,
    ) -> Comment:
        """
        Submit the session's open composition.

        Video comments without an explicit range start at the playback
        time the composer was opened at. The composition stays open when
        the input is rejected.
        """
        composition = session.composition
        if composition is None:
            raise InvalidCommentError("No comment is being composed")
        if session.target.target_type == TargetType.VIDEO and time_range is None:
            time_range = default_range(composition.playback_time or 0.0, duration, self.default_video_span)
        comment = self._prepare_comment(
            composition.scope, text, author_id, composition.position, time_range, due_date
        )
        session.take_composition()
        return await self._push_new_comment(comment)

    async def update_comment(self, target_id: str, comment_id: str, **changes: Any) -> Comment:
        """
        Edit text, due date, time range, position or status.

        Due-date changes create, update or delete the linked task/calendar
        entry once the comment write has been accepted.
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidCommentError(f"Cannot edit: {', '.join(sorted(unknown))}")
        current = self.get_comment(target_id, comment_id)
        if "text" in changes:
            changes["text"] = threads.require_text(changes["text"])
        if "due_date" in changes:
            changes["due_date"] = changes["due_date"] or None
        if "status" in changes:
            changes["status"] = CommentStatus(changes["status"])
        if "position" in changes or "time_range" in changes:
            target = self.target(target_id)
            self._validate_placement(
                target,
                current.scope,
                changes.get("position", current.position),
                changes.get("time_range", current.time_range),
            )

        after = current.evolve(**changes)
        fields = dict(changes, updated_at=after.updated_at)
        if not await self._commit_comment("update comment", current, after, fields):
            return self._comments.get(target_id, {}).get(comment_id, current)
        if "due_date" in changes:
            after = await self._sync_due_date(after, current.due_date)
        return after

    async def toggle_resolved(self, target_id: str, comment_id: str) -> Comment:
        current = self.get_comment(target_id, comment_id)
        comment = await self.update_comment(
            target_id, comment_id, status=threads.toggled_status(current.status)
        )
        logger.info("Comment %s is now %s", short_id(comment_id), comment.status.value)
        return comment

    async def _sync_due_date(self, comment: Comment, old_due_date: Optional[str]) -> Comment:
        action = threads.plan_due_date_change(old_due_date, comment.due_date)
        if action == threads.DueDateAction.NONE:
            return comment
        title = threads.calendar_title(comment)
        try:
            if action == threads.DueDateAction.DELETE:
                await self.mirror.delete_linked(comment.id)
                linked_id = None
            elif action == threads.DueDateAction.UPDATE and comment.linked_task_id:
                await self.mirror.update_linked(
                    comment.linked_task_id, {"due_date": comment.due_date, "title": title}
                )
                linked_id = comment.linked_task_id
            else:
                linked_id = await self.mirror.create_from_comment(
                    comment.id, comment.text, comment.due_date, comment.author_id, title=title
                )
        except MIRROR_ERRORS as exc:
            self._warn("sync due date", exc, comment.target_id, comment.id)
            return comment
        logger.info("Due date %s for comment %s", action.value, short_id(comment.id))

        if linked_id == comment.linked_task_id:
            return comment
        linked = comment.evolve(linked_task_id=linked_id)
        await self._commit_comment(
            "link due date entry",
            comment,
            linked,
            {"linked_task_id": linked_id, "updated_at": linked.updated_at},
        )
        return linked

    async def delete_comment(self, target_id: str, comment_id: str) -> bool:
        """
        Delete a comment: linked task/calendar entry first, then the
        comment, then the target's comment counter.

        Returns False when a step was rejected; the comment is then
        restored locally (when rollback is enabled).
        """
        current = self.get_comment(target_id, comment_id)
        self._drop_comment(target_id, comment_id)
        self._notify(target_id)
        mutation = self._begin("comment", target_id, comment_id, current, None)
        try:
            if current.due_date or current.linked_task_id:
                try:
                    await self.mirror.delete_linked(comment_id)
                except MIRROR_ERRORS as exc:
                    self._reject(mutation, "delete linked entry", exc)
                    return False
            try:
                await self.store.delete(comment_id)
            except REMOTE_ERRORS as exc:
                self._reject(mutation, "delete comment", exc)
                return False
        finally:
            self._settle(mutation)
        logger.info("Deleted comment #%d", current.pin_number, extra=log_context(target_id, comment_id))
        await self._increment(target_id, -1)
        return True

    async def add_reply(
        self,
        target_id: str,
        comment_id: str,
        author_id: str,
        text: str,
        parent_reply_id: Optional[str] = None,
    ) -> Reply:
        current = self.get_comment(target_id, comment_id)
        reply = Reply.create(author_id, threads.require_text(text, "Reply"))
        after = threads.add_reply(current, reply, parent_reply_id)
        await self._commit_comment(
            "add reply", current, after, {"replies": after.replies, "updated_at": after.updated_at}
        )
        return reply

    async def delete_reply(self, target_id: str, comment_id: str, reply_id: str) -> Comment:
        current = self.get_comment(target_id, comment_id)
        after = threads.delete_reply(current, reply_id)
        await self._commit_comment(
            "delete reply", current, after, {"replies": after.replies, "updated_at": after.updated_at}
        )
        return self._comments.get(target_id, {}).get(comment_id, after)

    # =========================================================================
    # Timeline drag
    # =========================================================================

    def begin_drag(
        self,
        target_id: str,
        comment_id: str,
        mode: DragMode,
        pointer_x: float,
        track_width: float,
        duration: float,
    ) -> TimelineDrag:
        """Grab a timeline bar. Only local state changes until release."""
        if self._drag is not None:
            self.cancel_drag()
        comment = self.get_comment(target_id, comment_id)
        if comment.time_range is None:
            raise InvalidCommentError("Comment has no time range")
        self._drag = TimelineDrag.begin(comment, mode, pointer_x, track_width, duration)
        return self._drag

    def drag_to(self, pointer_x: float) -> TimeRange:
        """Recompute the dragged range for live feedback."""
        drag = self._require_drag()
        new_range = drag.update(pointer_x)
        comment = self._comments.get(drag.target_id, {}).get(drag.comment_id)
        if comment is None:
            self._drag = None
            raise NotFoundError("comment", drag.comment_id)
        self._put_comment(replace(comment, time_range=new_range))
        self._notify(drag.target_id)
        return new_range

    async def end_drag(self) -> Comment:
        """Release the bar: one remote write with the final range."""
        drag = self._require_drag()
        self._drag = None
        comment = self.get_comment(drag.target_id, drag.comment_id)
        before = replace(comment, time_range=drag.initial)
        after = comment.evolve(time_range=drag.current)
        await self._commit_comment(
            "move time range",
            before,
            after,
            {"time_range": drag.current, "updated_at": after.updated_at},
        )
        return self._comments.get(drag.target_id, {}).get(drag.comment_id, after)

    def cancel_drag(self) -> None:
        drag = self._drag
        self._drag = None
        if drag is None:
            return
        comment = self._comments.get(drag.target_id, {}).get(drag.comment_id)
        if comment is not None:
            self._put_comment(replace(comment, time_range=drag.initial))
            self._notify(drag.target_id)

    def _require_drag(self) -> TimelineDrag:
        if self._drag is None:
            raise InvalidCommentError("No timeline drag in progress")
        return self._drag

    # =========================================================================
    # Targets
    # =========================================================================

    async def create_target(self, target: AnnotationTarget, follow: bool = False) -> AnnotationTarget:
        """Save a new target. With ``follow`` its subscription is started once the save succeeds."""
        self._comments.setdefault(target.id, {})
        if not await self._commit_target("create target", None, target):
            return target
        logger.info("Created %s target %s", target.target_type.value, short_id(target.id))
        if follow:
            await self.attach(target.id)
        return self._targets.get(target.id, target)

    async def delete_target(self, target_id: str) -> bool:
        """
        Delete a target, cascading through every comment's delete path.

        Returns False, keeping the target, when any comment delete is rejected.
        """
        current = self.target(target_id)
        doomed = self.comments(target_id)
        failed = 0
        for comment in doomed:
            if not await self.delete_comment(target_id, comment.id):
                failed += 1
        if failed:
            self._warn("delete target", CascadeError("target", target_id, failed), target_id)
            return False
        await self.detach(target_id)
        self._targets.pop(target_id, None)
        self._notify(target_id)
        mutation = self._begin("target", target_id, target_id, current, None)
        try:
            await self.store.delete_target(target_id)
        except REMOTE_ERRORS as exc:
            self._reject(mutation, "delete target", exc)
            return False
        finally:
            self._settle(mutation)
        self._comments.pop(target_id, None)
        logger.info("Deleted target %s", short_id(target_id))
        return True

    async def toggle_approval(self, target_id: str, sub_asset_id: Optional[str] = None) -> bool:
        """Flip approval of a sub-asset (or of a single-asset target). Returns the new state."""
        current = self.target(target_id)
        after = approval.toggle_approval(current, sub_asset_id)
        await self._commit_target(
            "toggle approval",
            current,
            after,
            {"approved_ids": after.approved_ids, "is_approved": after.is_approved},
        )
        return approval.is_approved(self.target(target_id), sub_asset_id)

    async def add_sub_asset(
        self,
        target_id: str,
        name: str,
        url: str,
        asset_id: Optional[str] = None,
    ) -> SubAsset:
        current = self.target(target_id)
        after, asset = target_ops.add_sub_asset(current, name, url, asset_id)
        await self._commit_target(
            "add sub-asset", current, after, {after.sub_asset_field: after.sub_assets}
        )
        return asset

    async def remove_sub_asset(self, target_id: str, asset_id: str) -> int:
        """
        Remove a page, image or video asset.

        Deletes every comment attached to it (all breakpoints for a page)
        and its approval entry. Returns the number of comments deleted.
        If any of those deletes is rejected the sub-asset stays and a
        warning is recorded, so no comment is left without its scope.
        """
        current = self.target(target_id)
        doomed = comments_for_sub_asset(current, asset_id, self.comments(target_id))
        deleted = 0
        for comment in doomed:
            if await self.delete_comment(target_id, comment.id):
                deleted += 1
        if deleted < len(doomed):
            # Survivors would point at a sub-asset that no longer exists
            self._warn(
                "remove sub-asset",
                CascadeError("sub-asset", asset_id, len(doomed) - deleted),
                target_id,
            )
            return deleted
        current = self.target(target_id)
        after = target_ops.remove_sub_asset(current, asset_id)
        await self._commit_target(
            "remove sub-asset",
            current,
            after,
            {after.sub_asset_field: after.sub_assets, "approved_ids": after.approved_ids},
        )
        logger.info("Removed %s with %d comments", short_id(asset_id), deleted)
        return deleted

    async def add_version(
        self,
        target_id: str,
        asset_url: str,
        user_id: str,
        notes: str = "",
    ) -> AnnotationTarget:
        current = self.target(target_id)
        after = target_ops.add_version(current, asset_url, user_id, notes)
        await self._commit_target(
            "add version",
            current,
            after,
            {"version": after.version, "asset_url": after.asset_url, "versions": after.versions},
        )
        return self.target(target_id)

    async def switch_version(self, target_id: str, version_number: int) -> AnnotationTarget:
        current = self.target(target_id)
        after = target_ops.switch_version(current, version_number)
        await self._commit_target(
            "switch version",
            current,
            after,
            {"version": after.version, "asset_url": after.asset_url},
        )
        return self.target(target_id)

    async def set_review_status(self, target_id: str, status: ReviewStatus) -> AnnotationTarget:
        current = self.target(target_id)
        after = target_ops.set_review_status(current, status)
        await self._commit_target("set review status", current, after, {"status": after.status})
        return self.target(target_id)
