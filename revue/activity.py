"""Recent-activity feed derived from targets and comments."""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .models import AnnotationTarget, Comment

DEFAULT_LIMIT = 10


class ActivityKind(str, Enum):
    TARGET_CREATED = "target_created"
    COMMENT_ADDED = "comment_added"
    COMMENT_RESOLVED = "comment_resolved"


@dataclass
class ActivityEntry:
    kind: ActivityKind
    title: str
    detail: str
    timestamp: str
    user_id: str
    link: str

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "title": self.title,
            "detail": self.detail,
            "timestamp": self.timestamp,
            "user_id": self.user_id,
            "link": self.link,
        }


def target_link(target: AnnotationTarget) -> str:
    return f"/feedback/{target.project_id or '-'}/{target.target_type.value}/{target.id}"


def recent_activity(
    targets: Iterable[AnnotationTarget],
    comments: Iterable[Comment],
    limit: int = DEFAULT_LIMIT,
) -> list[ActivityEntry]:
    """
    Most recent events, newest first.

    A resolved comment contributes both its creation and its resolution
    (timestamped by its last update). Comments whose target is unknown are
    skipped.
    """
    by_id = {t.id: t for t in targets}
    entries = [
        ActivityEntry(
            ActivityKind.TARGET_CREATED,
            f"New {target.target_type.value}",
            target.name,
            target.created_at,
            target.created_by,
            target_link(target),
        )
        for target in by_id.values()
    ]
    for comment in comments:
        target = by_id.get(comment.target_id)
        if target is None:
            continue
        link = target_link(target)
        entries.append(ActivityEntry(
            ActivityKind.COMMENT_ADDED,
            f"Comment #{comment.pin_number} on {target.name}",
            comment.text,
            comment.created_at,
            comment.author_id,
            link,
        ))
        if comment.is_resolved:
            entries.append(ActivityEntry(
                ActivityKind.COMMENT_RESOLVED,
                f"Resolved #{comment.pin_number} on {target.name}",
                comment.text,
                comment.updated_at,
                comment.author_id,
                link,
            ))
    entries.sort(key=lambda e: e.timestamp, reverse=True)
    return entries[:max(0, limit)]
