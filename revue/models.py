"""
Review target and comment data model.

Targets come in three kinds (website, mockup, video). Each kind is split
into sub-assets (pages, images, video assets) and comments are pinned
inside one scope of a target:

- Website comments carry a page path and a device breakpoint
- Mockup comments carry an image id
- Video comments carry a video asset id and a [start, end) time range

Canvas positions are stored as percentages of the content box so they
survive zoom and window resizes; video overlay positions are raw pixels
relative to the rendered video element.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Optional, Union


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


ROOT_PAGE = "/"


def normalize_page_path(path: Optional[str]) -> str:
    """Normalize a page path so "/about/", "about" and "/about?x=1" match."""
    if not path:
        return ROOT_PAGE
    path = path.split("#", 1)[0].split("?", 1)[0].strip()
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/") or ROOT_PAGE
    return path


class TargetType(str, Enum):
    """Kinds of review target."""
    WEBSITE = "website"
    MOCKUP = "mockup"
    VIDEO = "video"


class DeviceView(str, Enum):
    """Device breakpoints a website can be reviewed at."""
    DESKTOP = "desktop"
    NOTEBOOK = "notebook"
    TABLET = "tablet"
    PHONE = "phone"


# Fixed viewport sizes (width, height); desktop fills the viewer
DEVICE_DIMENSIONS: dict[DeviceView, Optional[tuple[int, int]]] = {
    DeviceView.DESKTOP: None,
    DeviceView.NOTEBOOK: (1440, 900),
    DeviceView.TABLET: (768, 1024),
    DeviceView.PHONE: (375, 812),
}


class CommentStatus(str, Enum):
    """Comment lifecycle states. Both are reachable from each other."""
    ACTIVE = "Active"
    RESOLVED = "Resolved"


class ReviewStatus(str, Enum):
    """Overall review state of a target."""
    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"


# =============================================================================
# Positions and time ranges
# =============================================================================

@dataclass(frozen=True)
class RelativePosition:
    """Canvas position as percentages (0-100) of the content box."""
    x_percent: float
    y_percent: float

    kind: ClassVar[str] = "relative"

    def to_dict(self) -> dict:
        return {"kind": self.kind, "x_percent": self.x_percent, "y_percent": self.y_percent}


@dataclass(frozen=True)
class AbsolutePosition:
    """Video overlay position in pixels of the rendered video element."""
    x: float
    y: float

    kind: ClassVar[str] = "absolute"

    def to_dict(self) -> dict:
        return {"kind": self.kind, "x": self.x, "y": self.y}


Position = Union[RelativePosition, AbsolutePosition]


def position_from_dict(data: Optional[dict]) -> Optional[Position]:
    """Rebuild a position from its dictionary form."""
    if not data:
        return None
    kind = data.get("kind")
    if kind == RelativePosition.kind or (kind is None and "x_percent" in data):
        return RelativePosition(float(data["x_percent"]), float(data["y_percent"]))
    if kind == AbsolutePosition.kind or (kind is None and "x" in data):
        return AbsolutePosition(float(data["x"]), float(data["y"]))
    raise ValueError(f"Unknown position kind: {kind!r}")


@dataclass(frozen=True)
class TimeRange:
    """Half-open [start, end) interval in seconds."""
    start: float
    end: float

    def __post_init__(self):
        if self.start < 0:
            raise ValueError(f"Time range start must be >= 0, got {self.start}")
        if self.end <= self.start:
            raise ValueError(f"Time range end must be after start ({self.start} >= {self.end})")

    @property
    def width(self) -> float:
        return self.end - self.start

    def contains(self, time: float) -> bool:
        """Check if the given playback time falls within this range."""
        return self.start <= time < self.end

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["TimeRange"]:
        if not data:
            return None
        return cls(float(data["start"]), float(data["end"]))


# =============================================================================
# Scope key
# =============================================================================

@dataclass(frozen=True)
class ScopeKey:
    """
    The narrowest context a comment lives in.

    ``sub_scope_id`` is a page path for websites, an image id for mockups
    and a video asset id for videos. ``device_view`` is set for websites
    only; pins are never shared between breakpoints.
    """
    target_id: str
    sub_scope_id: str
    device_view: Optional[DeviceView] = None

    def to_dict(self) -> dict:
        return {
            "target_id": self.target_id,
            "sub_scope_id": self.sub_scope_id,
            "device_view": self.device_view.value if self.device_view else None,
        }


# =============================================================================
# Replies and comments
# =============================================================================

@dataclass
class Reply:
    """A reply in a comment thread. Replies nest without a depth limit."""
    id: str
    author_id: str
    text: str
    timestamp: str = field(default_factory=utc_now)
    replies: list["Reply"] = field(default_factory=list)

    @classmethod
    def create(cls, author_id: str, text: str) -> "Reply":
        return cls(id=new_id("rep"), author_id=author_id, text=text)

    def to_dict(self) -> dict:
        # Iterative so deep threads never hit the recursion limit
        root = {"id": self.id, "author_id": self.author_id, "text": self.text,
                "timestamp": self.timestamp, "replies": []}
        stack = [(self, root)]
        while stack:
            node, out = stack.pop()
            for child in node.replies:
                child_out = {"id": child.id, "author_id": child.author_id, "text": child.text,
                             "timestamp": child.timestamp, "replies": []}
                out["replies"].append(child_out)
                stack.append((child, child_out))
        return root

    @classmethod
    def from_dict(cls, data: dict) -> "Reply":
        def build(item: dict) -> "Reply":
            return cls(
                id=item["id"],
                author_id=item.get("author_id", "anonymous"),
                text=item.get("text", ""),
                timestamp=item.get("timestamp") or utc_now(),
            )

        root = build(data)
        stack = [(data, root)]
        while stack:
            item, node = stack.pop()
            for child_data in item.get("replies") or []:
                child = build(child_data)
                node.replies.append(child)
                stack.append((child_data, child))
        return root


def clone_replies(replies: list[Reply]) -> list[Reply]:
    """Deep copy of a reply list that does not recurse."""
    return [Reply.from_dict(reply.to_dict()) for reply in replies]


@dataclass
class Comment:
    """
    A pinned review comment.

    The scope fields (image_id, page_url + device_view, video_asset_id) are
    denormalized onto the comment; which ones are set depends on the
    target type. ``pin_number`` is a display number unique within the
    scope, ``id`` is the identity.
    """
    id: str
    target_id: str
    target_type: TargetType
    pin_number: int
    text: str
    author_id: str = "anonymous"
    position: Optional[Position] = None
    status: CommentStatus = CommentStatus.ACTIVE
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    image_id: Optional[str] = None
    page_url: Optional[str] = None
    device_view: Optional[DeviceView] = None
    video_asset_id: Optional[str] = None
    time_range: Optional[TimeRange] = None
    due_date: Optional[str] = None
    linked_task_id: Optional[str] = None
    replies: list[Reply] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        scope: ScopeKey,
        target_type: TargetType,
        pin_number: int,
        text: str,
        author_id: str = "anonymous",
        position: Optional[Position] = None,
        time_range: Optional[TimeRange] = None,
        due_date: Optional[str] = None,
    ) -> "Comment":
        """Factory method to create a new comment inside a scope."""
        comment = cls(
            id=new_id("com"),
            target_id=scope.target_id,
            target_type=target_type,
            pin_number=pin_number,
            text=text,
            author_id=author_id,
            position=position,
            time_range=time_range,
            due_date=due_date or None,
        )
        if target_type == TargetType.WEBSITE:
            comment.page_url = scope.sub_scope_id
            comment.device_view = scope.device_view or DeviceView.DESKTOP
        elif target_type == TargetType.MOCKUP:
            comment.image_id = scope.sub_scope_id
        else:
            comment.video_asset_id = scope.sub_scope_id
        return comment

    @property
    def scope(self) -> ScopeKey:
        """Derive the scope key from the denormalized scope fields."""
        if self.target_type == TargetType.WEBSITE:
            return ScopeKey(
                self.target_id,
                normalize_page_path(self.page_url),
                self.device_view or DeviceView.DESKTOP,
            )
        if self.target_type == TargetType.MOCKUP:
            return ScopeKey(self.target_id, self.image_id or self.target_id)
        return ScopeKey(self.target_id, self.video_asset_id or self.target_id)

    @property
    def is_resolved(self) -> bool:
        return self.status == CommentStatus.RESOLVED

    def evolve(self, **changes) -> "Comment":
        """Copy with changes applied; replies are deep-copied."""
        changes.setdefault("replies", clone_replies(self.replies))
        changes.setdefault("updated_at", utc_now())
        return replace(self, **changes)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "target_id": self.target_id,
            "target_type": self.target_type.value,
            "pin_number": self.pin_number,
            "text": self.text,
            "author_id": self.author_id,
            "position": self.position.to_dict() if self.position else None,
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "image_id": self.image_id,
            "page_url": self.page_url,
            "device_view": self.device_view.value if self.device_view else None,
            "video_asset_id": self.video_asset_id,
            "time_range": self.time_range.to_dict() if self.time_range else None,
            "due_date": self.due_date,
            "linked_task_id": self.linked_task_id,
            "replies": [reply.to_dict() for reply in self.replies],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Comment":
        """Create comment from dictionary."""
        device = data.get("device_view")
        return cls(
            id=data["id"],
            target_id=data["target_id"],
            target_type=TargetType(data["target_type"]),
            pin_number=int(data.get("pin_number", 1)),
            text=data.get("text", ""),
            author_id=data.get("author_id", "anonymous"),
            position=position_from_dict(data.get("position")),
            status=CommentStatus(data.get("status", CommentStatus.ACTIVE.value)),
            created_at=data.get("created_at") or utc_now(),
            updated_at=data.get("updated_at") or utc_now(),
            image_id=data.get("image_id"),
            page_url=data.get("page_url"),
            device_view=DeviceView(device) if device else None,
            video_asset_id=data.get("video_asset_id"),
            time_range=TimeRange.from_dict(data.get("time_range")),
            due_date=data.get("due_date"),
            linked_task_id=data.get("linked_task_id"),
            replies=[Reply.from_dict(r) for r in data.get("replies") or []],
        )


# =============================================================================
# Targets
# =============================================================================

@dataclass
class SubAsset:
    """A page, image or video asset inside a target.

    For website pages ``url`` holds the page path (e.g. "/about").
    """
    id: str
    name: str
    url: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "url": self.url}

    @classmethod
    def from_dict(cls, data: dict) -> "SubAsset":
        return cls(id=data["id"], name=data.get("name", ""), url=data.get("url", ""))


@dataclass
class AssetVersion:
    """One uploaded revision of a target's primary asset."""
    version_number: int
    asset_url: str
    created_by: str
    created_at: str = field(default_factory=utc_now)
    notes: str = ""

    def to_dict(self) -> dict:
        return {
            "version_number": self.version_number,
            "asset_url": self.asset_url,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AssetVersion":
        return cls(
            version_number=int(data["version_number"]),
            asset_url=data.get("asset_url", ""),
            created_by=data.get("created_by", "unknown"),
            created_at=data.get("created_at") or utc_now(),
            notes=data.get("notes", ""),
        )


@dataclass
class AnnotationTarget:
    """
    Base for review targets.

    ``approved_ids`` holds approved sub-asset ids. Targets without any
    sub-assets (legacy single-asset targets) use ``is_approved`` instead.
    """
    id: str
    name: str
    project_id: str = ""
    description: str = ""
    asset_url: str = ""
    status: ReviewStatus = ReviewStatus.PENDING
    created_by: str = "anonymous"
    created_at: str = field(default_factory=utc_now)
    comment_count: int = 0
    approved_ids: list[str] = field(default_factory=list)
    is_approved: bool = False
    version: int = 1
    versions: list[AssetVersion] = field(default_factory=list)

    target_type: ClassVar[TargetType]
    sub_asset_field: ClassVar[str]

    @property
    def sub_assets(self) -> list[SubAsset]:
        return getattr(self, self.sub_asset_field)

    def find_sub_asset(self, asset_id: str) -> Optional[SubAsset]:
        for asset in self.sub_assets:
            if asset.id == asset_id:
                return asset
        return None

    def evolve(self, **changes) -> "AnnotationTarget":
        """Copy with changes applied; list fields are copied."""
        for name in ("approved_ids", "versions", self.sub_asset_field):
            changes.setdefault(name, list(getattr(self, name)))
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.target_type.value,
            "name": self.name,
            "project_id": self.project_id,
            "description": self.description,
            "asset_url": self.asset_url,
            "status": self.status.value,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "comment_count": self.comment_count,
            "approved_ids": list(self.approved_ids),
            "is_approved": self.is_approved,
            "version": self.version,
            "versions": [v.to_dict() for v in self.versions],
            self.sub_asset_field: [a.to_dict() for a in self.sub_assets],
        }

    @classmethod
    def _base_kwargs(cls, data: dict) -> dict:
        return {
            "id": data["id"],
            "name": data.get("name", ""),
            "project_id": data.get("project_id", ""),
            "description": data.get("description", ""),
            "asset_url": data.get("asset_url", ""),
            "status": ReviewStatus(data.get("status", ReviewStatus.PENDING.value)),
            "created_by": data.get("created_by", "anonymous"),
            "created_at": data.get("created_at") or utc_now(),
            "comment_count": int(data.get("comment_count", 0)),
            "approved_ids": list(data.get("approved_ids") or []),
            "is_approved": bool(data.get("is_approved", False)),
            "version": int(data.get("version", 1)),
            "versions": [AssetVersion.from_dict(v) for v in data.get("versions") or []],
            cls.sub_asset_field: [SubAsset.from_dict(a) for a in data.get(cls.sub_asset_field) or []],
        }


@dataclass
class Website(AnnotationTarget):
    """An embedded website reviewed page by page at several breakpoints."""
    url: str = ""
    pages: list[SubAsset] = field(default_factory=list)
    device_views: list[DeviceView] = field(default_factory=lambda: list(DeviceView))

    target_type: ClassVar[TargetType] = TargetType.WEBSITE
    sub_asset_field: ClassVar[str] = "pages"

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["url"] = self.url
        data["device_views"] = [d.value for d in self.device_views]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Website":
        kwargs = cls._base_kwargs(data)
        kwargs["url"] = data.get("url", "")
        if data.get("device_views"):
            kwargs["device_views"] = [DeviceView(d) for d in data["device_views"]]
        return cls(**kwargs)


@dataclass
class Mockup(AnnotationTarget):
    """A set of static images."""
    images: list[SubAsset] = field(default_factory=list)

    target_type: ClassVar[TargetType] = TargetType.MOCKUP
    sub_asset_field: ClassVar[str] = "images"

    @classmethod
    def from_dict(cls, data: dict) -> "Mockup":
        return cls(**cls._base_kwargs(data))


@dataclass
class Video(AnnotationTarget):
    """A collection of video assets."""
    video_assets: list[SubAsset] = field(default_factory=list)

    target_type: ClassVar[TargetType] = TargetType.VIDEO
    sub_asset_field: ClassVar[str] = "video_assets"

    @classmethod
    def from_dict(cls, data: dict) -> "Video":
        return cls(**cls._base_kwargs(data))


TARGET_CLASSES: dict[TargetType, type] = {
    TargetType.WEBSITE: Website,
    TargetType.MOCKUP: Mockup,
    TargetType.VIDEO: Video,
}


def target_from_dict(data: dict) -> AnnotationTarget:
    """Create the right target variant from its dictionary form."""
    target_type = TargetType(data["type"])
    return TARGET_CLASSES[target_type].from_dict(data)
