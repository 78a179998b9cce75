"""
SQLite-based local storage for targets, comments and calendar entries.

Each operation opens its own connection and runs in a worker thread, so
the event loop never blocks on disk. Comments and targets are stored as
JSON documents next to the few columns that are queried directly.
Subscriptions are served in-process: every write publishes the target's
comment list to its subscribers.
"""

import asyncio
import json
import sqlite3
from contextlib import closing, contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any, AsyncIterator, Iterator, Optional

from .config import get_db_path
from .errors import NotFoundError, StoreWriteError
from .logging import get_logger, short_id
from .models import AnnotationTarget, Comment, new_id, target_from_dict, utc_now
from .store import DocumentStore, SnapshotHub, TaskMirror

logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS targets (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL,
    comment_count INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    data TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS comments (
    id TEXT PRIMARY KEY,
    target_id TEXT NOT NULL,
    pin_number INTEGER NOT NULL,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_comments_target ON comments(target_id, created_at);
CREATE TABLE IF NOT EXISTS calendar_events (
    id TEXT PRIMARY KEY,
    source_id TEXT NOT NULL,
    title TEXT NOT NULL,
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'comment',
    user_id TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_events_source ON calendar_events(source_id);
"""


class _SQLiteBase:
    def __init__(self, db_path: Optional[Path] = None):
        if db_path is None:
            db_path = get_db_path()
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize database schema."""
        with closing(sqlite3.connect(self.db_path)) as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Serialized write transaction; rolled back on error."""
        conn = sqlite3.connect(self.db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    async def _run(self, operation: str, func, *args):
        """Run a blocking call in a worker thread, mapping sqlite errors."""
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            logger.error("SQLite %s failed: %s", operation, exc)
            raise StoreWriteError(operation, str(exc)) from exc


class SQLiteDocumentStore(_SQLiteBase, DocumentStore):
    """DocumentStore persisted in a local SQLite file."""

    def __init__(self, db_path: Optional[Path] = None):
        super().__init__(db_path)
        self._hub = SnapshotHub()

    # -- comments -------------------------------------------------------------

    def _list_comments_sync(self, target_id: str) -> list[Comment]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT data FROM comments WHERE target_id = ? ORDER BY created_at",
                (target_id,),
            ).fetchall()
        return [Comment.from_dict(json.loads(row["data"])) for row in rows]

    async def _publish(self, target_id: str) -> None:
        if self._hub.has_subscribers(target_id):
            self._hub.publish(target_id, await self.list_comments(target_id))

    async def subscribe(self, target_id: str) -> AsyncIterator[list[Comment]]:
        queue = self._hub.open(target_id)
        try:
            yield await self.list_comments(target_id)
            while True:
                yield await queue.get()
        finally:
            self._hub.close(target_id, queue)

    async def list_comments(self, target_id: str) -> list[Comment]:
        return await self._run("list comments", self._list_comments_sync, target_id)

    @staticmethod
    def _write_comment(conn: sqlite3.Connection, comment: Comment) -> None:
        conn.execute(
            """
            INSERT OR REPLACE INTO comments
            (id, target_id, pin_number, status, created_at, updated_at, data)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                comment.id,
                comment.target_id,
                comment.pin_number,
                comment.status.value,
                comment.created_at,
                comment.updated_at,
                json.dumps(comment.to_dict()),
            ),
        )

    def _create_sync(self, comment: Comment) -> str:
        with self._transaction() as conn:
            comment_id = comment.id
            exists = comment_id and conn.execute(
                "SELECT 1 FROM comments WHERE id = ?", (comment_id,)
            ).fetchone()
            if not comment_id or exists:
                comment_id = new_id("com")
            self._write_comment(conn, replace(comment, id=comment_id, created_at=utc_now()))
        return comment_id

    async def create(self, comment: Comment) -> str:
        comment_id = await self._run("create comment", self._create_sync, comment)
        await self._publish(comment.target_id)
        return comment_id

    def _update_sync(self, comment_id: str, fields: dict[str, Any]) -> str:
        with self._transaction() as conn:
            row = conn.execute("SELECT data FROM comments WHERE id = ?", (comment_id,)).fetchone()
            if row is None:
                raise NotFoundError("comment", comment_id)
            comment = replace(Comment.from_dict(json.loads(row["data"])), **fields)
            self._write_comment(conn, comment)
        return comment.target_id

    async def update(self, comment_id: str, fields: dict[str, Any]) -> None:
        target_id = await self._run("update comment", self._update_sync, comment_id, fields)
        await self._publish(target_id)

    def _delete_sync(self, comment_id: str) -> Optional[str]:
        with self._transaction() as conn:
            row = conn.execute("SELECT target_id FROM comments WHERE id = ?", (comment_id,)).fetchone()
            if row is None:
                return None
            conn.execute("DELETE FROM comments WHERE id = ?", (comment_id,))
        return row["target_id"]

    async def delete(self, comment_id: str) -> None:
        target_id = await self._run("delete comment", self._delete_sync, comment_id)
        if target_id:
            await self._publish(target_id)

    def _increment_sync(self, target_id: str, delta: int) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE targets SET comment_count = MAX(0, comment_count + ?) WHERE id = ?",
                (delta, target_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("target", target_id)
            row = conn.execute("SELECT comment_count FROM targets WHERE id = ?", (target_id,)).fetchone()
        return row["comment_count"]

    async def increment_comment_count(self, target_id: str, delta: int) -> int:
        return await self._run("increment comment count", self._increment_sync, target_id, delta)

    # -- targets --------------------------------------------------------------

    @staticmethod
    def _row_to_target(row: sqlite3.Row) -> AnnotationTarget:
        target = target_from_dict(json.loads(row["data"]))
        target.comment_count = row["comment_count"]
        return target

    def _list_targets_sync(self) -> list[AnnotationTarget]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT data, comment_count FROM targets ORDER BY created_at"
            ).fetchall()
        return [self._row_to_target(row) for row in rows]

    async def list_targets(self) -> list[AnnotationTarget]:
        return await self._run("list targets", self._list_targets_sync)

    def _get_target_sync(self, target_id: str) -> Optional[AnnotationTarget]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT data, comment_count FROM targets WHERE id = ?", (target_id,)
            ).fetchone()
        return self._row_to_target(row) if row else None

    async def get_target(self, target_id: str) -> Optional[AnnotationTarget]:
        return await self._run("get target", self._get_target_sync, target_id)

    def _save_target_sync(self, target: AnnotationTarget) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO targets (id, type, comment_count, created_at, data)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET data = excluded.data
                """,
                (
                    target.id,
                    target.target_type.value,
                    target.comment_count,
                    target.created_at,
                    json.dumps(target.to_dict()),
                ),
            )

    async def save_target(self, target: AnnotationTarget) -> None:
        await self._run("save target", self._save_target_sync, target)

    def _update_target_sync(self, target_id: str, fields: dict[str, Any]) -> None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT data, comment_count FROM targets WHERE id = ?", (target_id,)
            ).fetchone()
            if row is None:
                raise NotFoundError("target", target_id)
            target = replace(self._row_to_target(row), **fields)
            conn.execute(
                "UPDATE targets SET data = ? WHERE id = ?",
                (json.dumps(target.to_dict()), target_id),
            )

    async def update_target(self, target_id: str, fields: dict[str, Any]) -> None:
        await self._run("update target", self._update_target_sync, target_id, fields)

    def _delete_target_sync(self, target_id: str) -> int:
        with self._transaction() as conn:
            conn.execute("DELETE FROM targets WHERE id = ?", (target_id,))
            cursor = conn.execute("DELETE FROM comments WHERE target_id = ?", (target_id,))
        return cursor.rowcount

    async def delete_target(self, target_id: str) -> None:
        removed = await self._run("delete target", self._delete_target_sync, target_id)
        if removed:
            logger.info("Removed %d comments with target %s", removed, short_id(target_id))
        await self._publish(target_id)


class SQLiteTaskMirror(_SQLiteBase, TaskMirror):
    """Calendar entries for comment due dates, kept in the same database."""

    def _create_sync(self, comment_id, text, due_date, author_id, title) -> str:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT id FROM calendar_events WHERE source_id = ?", (comment_id,)
            ).fetchone()
            if row is not None:
                logger.warning("Entry for comment %s already exists, updating", short_id(comment_id))
                conn.execute(
                    "UPDATE calendar_events SET title = ?, start_date = ?, end_date = ?, user_id = ? WHERE id = ?",
                    (title, due_date, due_date, author_id, row["id"]),
                )
                return row["id"]
            linked_id = new_id("cal")
            conn.execute(
                """
                INSERT INTO calendar_events
                (id, source_id, title, start_date, end_date, type, user_id, created_at)
                VALUES (?, ?, ?, ?, ?, 'comment', ?, ?)
                """,
                (linked_id, comment_id, title, due_date, due_date, author_id, utc_now()),
            )
        return linked_id

    async def create_from_comment(
        self,
        comment_id: str,
        text: str,
        due_date: str,
        author_id: str,
        title: Optional[str] = None,
    ) -> str:
        title = title or f"Feedback: {text[:30]}..."
        return await self._run(
            "create calendar entry", self._create_sync, comment_id, text, due_date, author_id, title
        )

    def _update_sync(self, linked_id: str, fields: dict[str, Any]) -> None:
        assignments = []
        params: list = []
        if "due_date" in fields:
            assignments.append("start_date = ?, end_date = ?")
            params.extend([fields["due_date"], fields["due_date"]])
        if "title" in fields:
            assignments.append("title = ?")
            params.append(fields["title"])
        if not assignments:
            return
        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE calendar_events SET {', '.join(assignments)} WHERE id = ?",
                (*params, linked_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("calendar entry", linked_id)

    async def update_linked(self, linked_id: str, fields: dict[str, Any]) -> None:
        await self._run("update calendar entry", self._update_sync, linked_id, fields)

    def _delete_sync(self, comment_id: str) -> int:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM calendar_events WHERE source_id = ?", (comment_id,))
        return cursor.rowcount

    async def delete_linked(self, comment_id: str) -> int:
        return await self._run("delete calendar entry", self._delete_sync, comment_id)

    def _entries_sync(self, comment_id: str) -> list[dict]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM calendar_events WHERE source_id = ?", (comment_id,)
            ).fetchall()
        return [dict(row) for row in rows]

    async def linked_to(self, comment_id: str) -> list[dict]:
        return await self._run("list calendar entries", self._entries_sync, comment_id)
