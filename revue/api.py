"""FastAPI application exposing the annotation engine."""

from contextlib import asynccontextmanager
from typing import Literal, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .activity import DEFAULT_LIMIT, recent_activity
from .approval import approval_progress, percent_complete
from .errors import InvalidCommentError, NotFoundError
from .logging import get_logger
from .models import (
    AbsolutePosition,
    DeviceView,
    Position,
    RelativePosition,
    ReviewStatus,
    TargetType,
    TimeRange,
)
from .scope import resolve_scope
from .sync import SyncCoordinator
from .targets import create_target, list_versions
from .timeline import active_comments, assign_rows, default_range, format_time

logger = get_logger(__name__)


# Pydantic models for API requests


class PositionModel(BaseModel):
    """Pin position: percentages on canvases, overlay pixels on videos."""

    kind: Literal["relative", "absolute"] = Field(default="relative", description="Position kind")
    x_percent: Optional[float] = Field(default=None, ge=0, le=100)
    y_percent: Optional[float] = Field(default=None, ge=0, le=100)
    x: Optional[float] = None
    y: Optional[float] = None

    def to_position(self) -> Position:
        if self.kind == "relative":
            if self.x_percent is None or self.y_percent is None:
                raise InvalidCommentError("Relative positions need x_percent and y_percent")
            return RelativePosition(self.x_percent, self.y_percent)
        if self.x is None or self.y is None:
            raise InvalidCommentError("Absolute positions need x and y")
        return AbsolutePosition(self.x, self.y)


class TimeRangeModel(BaseModel):
    """Half-open [start, end) range in seconds."""

    start: float = Field(..., ge=0)
    end: float

    def to_time_range(self) -> TimeRange:
        try:
            return TimeRange(self.start, self.end)
        except ValueError as exc:
            raise InvalidCommentError(str(exc)) from None


class SubAssetRequest(BaseModel):
    """A page (url is the path), image or video asset."""

    url: str = Field(..., description="Page path or asset URL")
    name: str = Field(default="", description="Display name")
    id: Optional[str] = Field(default=None, description="Explicit sub-asset id")


class TargetCreateRequest(BaseModel):
    """Request to create a review target."""

    type: TargetType
    name: str
    project_id: str = ""
    description: str = ""
    asset_url: str = ""
    created_by: str = "anonymous"
    url: str = Field(default="", description="Site URL (websites only)")
    assets: list[SubAssetRequest] = Field(default_factory=list)


class ApprovalRequest(BaseModel):
    sub_asset_id: Optional[str] = Field(default=None, description="Omit for single-asset targets")


class StatusRequest(BaseModel):
    status: ReviewStatus


class VersionRequest(BaseModel):
    asset_url: str
    user_id: str = "anonymous"
    notes: str = ""


class CommentCreateRequest(BaseModel):
    """Request to submit a comment into the scope given by the viewer state."""

    text: str
    author_id: str = "anonymous"
    device_view: Optional[DeviceView] = None
    page_url: Optional[str] = None
    image_id: Optional[str] = None
    video_asset_id: Optional[str] = None
    position: Optional[PositionModel] = None
    time_range: Optional[TimeRangeModel] = None
    playback_time: Optional[float] = Field(default=None, ge=0, description="Used when time_range is omitted")
    duration: Optional[float] = Field(default=None, gt=0, description="Video duration in seconds")
    due_date: Optional[str] = Field(default=None, description="ISO date")


class CommentUpdateRequest(BaseModel):
    """Partial comment edit; only fields that are sent are changed."""

    text: Optional[str] = None
    due_date: Optional[str] = None
    status: Optional[Literal["Active", "Resolved"]] = None
    position: Optional[PositionModel] = None
    time_range: Optional[TimeRangeModel] = None


class ReplyRequest(BaseModel):
    text: str
    author_id: str = "anonymous"
    parent_reply_id: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    targets: int
    pending_writes: int


def create_app(coordinator: SyncCoordinator) -> FastAPI:
    """
    Build the API around a coordinator.

    The coordinator's state is loaded on startup and every target's
    subscription is followed, so writes from other clients show up in
    responses. Subscriptions are closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        count = await coordinator.load_all()
        await coordinator.attach_all()
        logger.info("Starting revue API v%s with %d targets", __version__, count)
        yield
        await coordinator.close()
        logger.info("Shutting down revue API")

    app = FastAPI(
        title="Revue API",
        description="Pinned, threaded review comments on websites, mockups and videos",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.coordinator = coordinator

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(InvalidCommentError)
    async def invalid_handler(request: Request, exc: InvalidCommentError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    # Health

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        return HealthResponse(
            status="healthy",
            version=__version__,
            targets=len(coordinator.targets()),
            pending_writes=coordinator.pending_count,
        )

    # Targets

    @app.get("/targets", tags=["Targets"])
    async def list_targets(project_id: Optional[str] = None):
        targets = coordinator.targets()
        if project_id is not None:
            targets = [t for t in targets if t.project_id == project_id]
        return {"targets": [t.to_dict() for t in targets]}

    @app.post("/targets", status_code=201, tags=["Targets"])
    async def add_target(request: TargetCreateRequest):
        target = create_target(
            request.type,
            request.name,
            project_id=request.project_id,
            description=request.description,
            asset_url=request.asset_url,
            created_by=request.created_by,
            assets=[a.model_dump() for a in request.assets],
            url=request.url,
        )
        target = await coordinator.create_target(target, follow=True)
        return target.to_dict()

    @app.get("/targets/{target_id}", tags=["Targets"])
    async def get_target(target_id: str):
        return coordinator.target(target_id).to_dict()

    @app.delete("/targets/{target_id}", tags=["Targets"])
    async def delete_target(target_id: str):
        deleted = await coordinator.delete_target(target_id)
        return {"deleted": deleted}

    @app.post("/targets/{target_id}/assets", status_code=201, tags=["Targets"])
    async def add_asset(target_id: str, request: SubAssetRequest):
        asset = await coordinator.add_sub_asset(target_id, request.name, request.url, request.id)
        return asset.to_dict()

    @app.delete("/targets/{target_id}/assets/{asset_id}", tags=["Targets"])
    async def remove_asset(target_id: str, asset_id: str):
        removed = await coordinator.remove_sub_asset(target_id, asset_id)
        return {"comments_deleted": removed}

    @app.put("/targets/{target_id}/status", tags=["Targets"])
    async def set_status(target_id: str, request: StatusRequest):
        target = await coordinator.set_review_status(target_id, request.status)
        return target.to_dict()

    # Approval

    @app.post("/targets/{target_id}/approval", tags=["Approval"])
    async def toggle_approval(target_id: str, request: ApprovalRequest):
        approved = await coordinator.toggle_approval(target_id, request.sub_asset_id)
        return {"sub_asset_id": request.sub_asset_id, "approved": approved}

    @app.get("/targets/{target_id}/progress", tags=["Approval"])
    async def get_progress(target_id: str):
        target = coordinator.target(target_id)
        approved, total = approval_progress(target)
        return {"approved": approved, "total": total, "percent": percent_complete(target)}

    # Versions

    @app.get("/targets/{target_id}/versions", tags=["Versions"])
    async def get_versions(target_id: str):
        target = coordinator.target(target_id)
        return {
            "current": target.version,
            "versions": [v.to_dict() for v in list_versions(target)],
        }

    @app.post("/targets/{target_id}/versions", status_code=201, tags=["Versions"])
    async def add_version(target_id: str, request: VersionRequest):
        target = await coordinator.add_version(target_id, request.asset_url, request.user_id, request.notes)
        return target.to_dict()

    @app.post("/targets/{target_id}/versions/{version_number}/activate", tags=["Versions"])
    async def activate_version(target_id: str, version_number: int):
        target = await coordinator.switch_version(target_id, version_number)
        return target.to_dict()

    # Comments

    @app.get("/targets/{target_id}/comments", tags=["Comments"])
    async def list_comments(
        target_id: str,
        device_view: Optional[DeviceView] = None,
        page_url: Optional[str] = None,
        image_id: Optional[str] = None,
        video_asset_id: Optional[str] = None,
    ):
        """Comments in the scope given by the viewer state, ordered by pin."""
        scope = resolve_scope(
            coordinator.target(target_id),
            device_view=device_view,
            page_path=page_url,
            image_id=image_id,
            video_asset_id=video_asset_id,
        )
        return {
            "scope": scope.to_dict(),
            "next_pin_number": coordinator.next_pin_number(scope),
            "comments": [c.to_dict() for c in coordinator.comments_in_scope(scope)],
        }

    @app.post("/targets/{target_id}/comments", status_code=201, tags=["Comments"])
    async def submit_comment(target_id: str, request: CommentCreateRequest):
        target = coordinator.target(target_id)
        scope = resolve_scope(
            target,
            device_view=request.device_view,
            page_path=request.page_url,
            image_id=request.image_id,
            video_asset_id=request.video_asset_id,
        )
        time_range = request.time_range.to_time_range() if request.time_range else None
        if target.target_type == TargetType.VIDEO and time_range is None:
            time_range = default_range(
                request.playback_time or 0.0, request.duration, coordinator.default_video_span
            )
        comment = await coordinator.submit_comment(
            scope,
            request.text,
            author_id=request.author_id,
            position=request.position.to_position() if request.position else None,
            time_range=time_range,
            due_date=request.due_date,
        )
        return comment.to_dict()

    @app.patch("/targets/{target_id}/comments/{comment_id}", tags=["Comments"])
    async def update_comment(target_id: str, comment_id: str, request: CommentUpdateRequest):
        changes = request.model_dump(exclude_unset=True)
        if "position" in changes:
            changes["position"] = request.position.to_position() if request.position else None
        if "time_range" in changes:
            changes["time_range"] = request.time_range.to_time_range() if request.time_range else None
        comment = await coordinator.update_comment(target_id, comment_id, **changes)
        return comment.to_dict()

    @app.post("/targets/{target_id}/comments/{comment_id}/resolve", tags=["Comments"])
    async def toggle_resolved(target_id: str, comment_id: str):
        comment = await coordinator.toggle_resolved(target_id, comment_id)
        return comment.to_dict()

    @app.delete("/targets/{target_id}/comments/{comment_id}", tags=["Comments"])
    async def delete_comment(target_id: str, comment_id: str):
        deleted = await coordinator.delete_comment(target_id, comment_id)
        return {"deleted": deleted}

    @app.get("/targets/{target_id}/comments/{comment_id}/replies", tags=["Comments"])
    async def get_thread(target_id: str, comment_id: str):
        """Flattened reply thread with each reply's nesting depth."""
        return {
            "replies": [
                {"depth": depth, "id": r.id, "author_id": r.author_id, "text": r.text, "timestamp": r.timestamp}
                for depth, r in coordinator.thread(target_id, comment_id)
            ]
        }

    @app.post("/targets/{target_id}/comments/{comment_id}/replies", status_code=201, tags=["Comments"])
    async def add_reply(target_id: str, comment_id: str, request: ReplyRequest):
        reply = await coordinator.add_reply(
            target_id, comment_id, request.author_id, request.text, request.parent_reply_id
        )
        return reply.to_dict()

    @app.delete("/targets/{target_id}/comments/{comment_id}/replies/{reply_id}", tags=["Comments"])
    async def delete_reply(target_id: str, comment_id: str, reply_id: str):
        comment = await coordinator.delete_reply(target_id, comment_id, reply_id)
        return comment.to_dict()

    # Video playback

    @app.get("/targets/{target_id}/videos/{asset_id}/active", tags=["Video"])
    async def get_active(target_id: str, asset_id: str, time: float = Query(..., ge=0)):
        """Comments whose range contains the playback time."""
        scope = resolve_scope(coordinator.target(target_id), video_asset_id=asset_id)
        active = active_comments(coordinator.comments_in_scope(scope), time)
        return {
            "time": time,
            "label": format_time(time),
            "comments": [c.to_dict() for c in active],
        }

    @app.get("/targets/{target_id}/videos/{asset_id}/timeline", tags=["Video"])
    async def get_timeline(target_id: str, asset_id: str):
        """Ranged comments with their lane row."""
        scope = resolve_scope(coordinator.target(target_id), video_asset_id=asset_id)
        comments = coordinator.comments_in_scope(scope)
        rows = assign_rows(comments)
        return {
            "rows": max(rows.values(), default=-1) + 1,
            "bars": [
                {"comment_id": c.id, "pin_number": c.pin_number, "row": rows[c.id], **c.time_range.to_dict()}
                for c in comments
                if c.id in rows
            ],
        }

    # Feed and warnings

    @app.get("/activity", tags=["Activity"])
    async def get_activity(limit: int = Query(DEFAULT_LIMIT, ge=1, le=100)):
        entries = recent_activity(coordinator.targets(), coordinator.all_comments(), limit)
        return {"activity": [e.to_dict() for e in entries]}

    @app.get("/warnings", tags=["Activity"])
    async def get_warnings():
        return {"warnings": [w.to_dict() for w in coordinator.warnings]}

    return app
