"""
Scope resolution and viewer session state.

A scope is the narrowest context comments are partitioned by: a page at
one breakpoint for websites, an image for mockups, a video asset for
videos. Pin numbers and pin visibility are per scope.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from .coordinates import clamp_zoom
from .errors import InvalidCommentError, NotFoundError
from .logging import get_logger
from .models import (
    ROOT_PAGE,
    AnnotationTarget,
    Comment,
    DeviceView,
    Position,
    ScopeKey,
    TargetType,
    normalize_page_path,
)

logger = get_logger(__name__)


def resolve_scope(
    target: AnnotationTarget,
    device_view: Optional[DeviceView] = None,
    page_path: Optional[str] = None,
    image_id: Optional[str] = None,
    video_asset_id: Optional[str] = None,
) -> ScopeKey:
    """
    Determine the scope key for a target and the viewer's current state.

    Mockups and videos fall back to their first sub-asset when none is
    selected, and to the target itself when they have no sub-assets.

    Raises:
        NotFoundError: If the selected image or video asset is not part of the target
    """
    if target.target_type == TargetType.WEBSITE:
        return ScopeKey(
            target.id,
            normalize_page_path(page_path),
            DeviceView(device_view) if device_view else DeviceView.DESKTOP,
        )

    selected = image_id if target.target_type == TargetType.MOCKUP else video_asset_id
    if selected:
        if target.sub_assets and target.find_sub_asset(selected) is None:
            raise NotFoundError(target.sub_asset_field[:-1], selected)
        return ScopeKey(target.id, selected)
    if target.sub_assets:
        return ScopeKey(target.id, target.sub_assets[0].id)
    return ScopeKey(target.id, target.id)


def in_scope(comment: Comment, scope: ScopeKey) -> bool:
    """Check if a comment belongs to a scope. Device is a hard filter."""
    return comment.scope == scope


def comments_in_scope(comments: Iterable[Comment], scope: ScopeKey) -> list[Comment]:
    """Comments of a scope ordered by pin number."""
    return sorted(
        (c for c in comments if in_scope(c, scope)),
        key=lambda c: (c.pin_number, c.created_at),
    )


def comments_for_sub_asset(
    target: AnnotationTarget,
    asset_id: str,
    comments: Iterable[Comment],
) -> list[Comment]:
    """
    All comments attached to one sub-asset of a target.

    For websites this spans every breakpoint of the page.
    """
    asset = target.find_sub_asset(asset_id)
    if asset is None:
        raise NotFoundError(target.sub_asset_field[:-1], asset_id)
    result = []
    for comment in comments:
        if comment.target_id != target.id:
            continue
        if target.target_type == TargetType.WEBSITE:
            if normalize_page_path(comment.page_url) == normalize_page_path(asset.url):
                result.append(comment)
        elif comment.scope.sub_scope_id == asset.id:
            result.append(comment)
    return result


# =============================================================================
# Review session
# =============================================================================

@dataclass(frozen=True)
class Composition:
    """A comment being composed: the pending pin and the scope it was placed in."""
    scope: ScopeKey
    position: Optional[Position] = None
    playback_time: Optional[float] = None


class ReviewSession:
    """
    One reviewer's view of a target.

    Tracks the breakpoint, page, image and video asset being viewed, the
    zoom, and any open comment composition. Any change that moves the
    session to another scope closes the composition, so a pending pin can
    never be submitted into a scope it was not placed in.
    """

    def __init__(
        self,
        target: AnnotationTarget,
        device_view: DeviceView = DeviceView.DESKTOP,
        page_path: str = ROOT_PAGE,
        image_id: Optional[str] = None,
        video_asset_id: Optional[str] = None,
    ):
        self.target = target
        self.device_view = DeviceView(device_view)
        self.page_path = normalize_page_path(page_path)
        self.image_id = image_id
        self.video_asset_id = video_asset_id
        self.zoom = 1.0
        self._composition: Optional[Composition] = None
        self._scope = self._resolve()

    def _resolve(self) -> ScopeKey:
        return resolve_scope(
            self.target,
            device_view=self.device_view,
            page_path=self.page_path,
            image_id=self.image_id,
            video_asset_id=self.video_asset_id,
        )

    @property
    def scope(self) -> ScopeKey:
        return self._scope

    @property
    def composition(self) -> Optional[Composition]:
        return self._composition

    @property
    def is_composing(self) -> bool:
        return self._composition is not None

    def _rescope(self) -> None:
        new_scope = self._resolve()
        if new_scope != self._scope:
            if self._composition is not None:
                logger.debug("Scope changed; discarding pending pin in %s", self._scope)
            self._composition = None
            self._scope = new_scope

    def switch_device(self, device_view: DeviceView) -> ScopeKey:
        self.device_view = DeviceView(device_view)
        self._rescope()
        return self._scope

    def navigate(self, page_path: str) -> ScopeKey:
        self.page_path = normalize_page_path(page_path)
        self._rescope()
        return self._scope

    def select_image(self, image_id: str) -> ScopeKey:
        self.image_id = image_id
        self._rescope()
        return self._scope

    def select_video_asset(self, video_asset_id: str) -> ScopeKey:
        self.video_asset_id = video_asset_id
        self._rescope()
        return self._scope

    def refresh_target(self, target: AnnotationTarget) -> ScopeKey:
        """Adopt a newer copy of the target, dropping selections that no longer exist."""
        self.target = target
        if self.image_id and target.find_sub_asset(self.image_id) is None:
            self.image_id = None
        if self.video_asset_id and target.find_sub_asset(self.video_asset_id) is None:
            self.video_asset_id = None
        self._rescope()
        return self._scope

    def set_zoom(self, zoom: float) -> float:
        """Zoom changes never touch stored positions or the composition."""
        self.zoom = clamp_zoom(zoom)
        return self.zoom

    def begin_composition(
        self,
        position: Optional[Position] = None,
        playback_time: Optional[float] = None,
    ) -> Composition:
        """Open the composer with a pending pin in the current scope."""
        self._composition = Composition(self._scope, position, playback_time)
        return self._composition

    def cancel_composition(self) -> None:
        self._composition = None

    def take_composition(self) -> Composition:
        """
        Hand over the open composition and close it.

        Raises:
            InvalidCommentError: If nothing is being composed
        """
        composition = self._composition
        if composition is None:
            raise InvalidCommentError("No comment is being composed")
        self._composition = None
        if composition.scope != self._scope:
            # _rescope clears compositions, so this only trips on direct state edits
            raise InvalidCommentError("Pending pin belongs to a different scope")
        return composition
