"""Tests for scope.py - scope keys and the review session."""

import pytest

from revue.errors import InvalidCommentError, NotFoundError
from revue.models import Comment, DeviceView, RelativePosition, ScopeKey, TargetType
from revue.scope import (
    ReviewSession,
    comments_for_sub_asset,
    comments_in_scope,
    resolve_scope,
)
from revue.targets import create_target


class TestResolveScope:
    """Tests for scope resolution per target type."""

    def test_website_defaults_to_root_page_on_desktop(self, website):
        assert resolve_scope(website) == ScopeKey("site-1", "/", DeviceView.DESKTOP)

    def test_website_path_is_normalized(self, website):
        scope = resolve_scope(website, device_view=DeviceView.TABLET, page_path="pricing/?ref=nav")
        assert scope == ScopeKey("site-1", "/pricing", DeviceView.TABLET)

    def test_mockup_defaults_to_first_image(self, mockup):
        assert resolve_scope(mockup) == ScopeKey("mock-1", "img-1")

    def test_mockup_selected_image(self, mockup):
        assert resolve_scope(mockup, image_id="img-7") == ScopeKey("mock-1", "img-7")

    def test_unknown_image_raises(self, mockup):
        with pytest.raises(NotFoundError):
            resolve_scope(mockup, image_id="img-99")

    def test_legacy_target_scopes_to_itself(self):
        legacy = create_target(TargetType.MOCKUP, "Single", asset_url="https://x/y.png", target_id="old-1")
        assert resolve_scope(legacy) == ScopeKey("old-1", "old-1")

    def test_video_defaults_to_first_asset(self, video):
        assert resolve_scope(video) == ScopeKey("vid-1", "clip-a")


class TestScopeFiltering:
    """Tests for scope membership."""

    def test_device_is_a_hard_filter(self):
        tablet = ScopeKey("site-1", "/pricing", DeviceView.TABLET)
        phone = ScopeKey("site-1", "/pricing", DeviceView.PHONE)
        comment = Comment.create(tablet, TargetType.WEBSITE, 1, "Too wide", position=RelativePosition(5, 5))
        assert comments_in_scope([comment], tablet) == [comment]
        assert comments_in_scope([comment], phone) == []

    def test_ordered_by_pin(self):
        scope = ScopeKey("mock-1", "img-1")
        comments = [
            Comment.create(scope, TargetType.MOCKUP, n, "x", position=RelativePosition(1, 1))
            for n in (3, 1, 2)
        ]
        assert [c.pin_number for c in comments_in_scope(comments, scope)] == [1, 2, 3]

    def test_page_comments_span_every_breakpoint(self, website):
        comments = [
            Comment.create(ScopeKey("site-1", "/pricing", device), TargetType.WEBSITE, 1, "x",
                           position=RelativePosition(1, 1))
            for device in (DeviceView.DESKTOP, DeviceView.PHONE)
        ]
        comments.append(Comment.create(ScopeKey("site-1", "/", DeviceView.PHONE), TargetType.WEBSITE, 1, "y",
                                       position=RelativePosition(1, 1)))
        attached = comments_for_sub_asset(website, "page-pricing", comments)
        assert len(attached) == 2


class TestReviewSession:
    """Tests for viewer state and composition handling."""

    def test_device_switch_discards_pending_pin(self, website):
        """A pin placed on tablet can never be submitted on phone."""
        session = ReviewSession(website, device_view=DeviceView.TABLET, page_path="/pricing")
        session.begin_composition(RelativePosition(40, 60))
        assert session.is_composing

        scope = session.switch_device(DeviceView.PHONE)

        assert scope == ScopeKey("site-1", "/pricing", DeviceView.PHONE)
        assert session.composition is None
        with pytest.raises(InvalidCommentError):
            session.take_composition()

    def test_navigation_discards_pending_pin(self, website):
        session = ReviewSession(website)
        session.begin_composition(RelativePosition(1, 1))
        session.navigate("/pricing")
        assert not session.is_composing

    def test_same_scope_keeps_pending_pin(self, website):
        session = ReviewSession(website, page_path="/pricing")
        session.begin_composition(RelativePosition(1, 1))
        session.navigate("/pricing/")
        assert session.is_composing

    def test_zoom_keeps_pending_pin(self, mockup):
        session = ReviewSession(mockup)
        session.begin_composition(RelativePosition(1, 1))
        assert session.set_zoom(9) == 5.0
        assert session.is_composing

    def test_image_switch_discards_pending_pin(self, mockup):
        session = ReviewSession(mockup)
        session.begin_composition(RelativePosition(1, 1))
        session.select_image("img-2")
        assert session.scope == ScopeKey("mock-1", "img-2")
        assert not session.is_composing

    def test_take_composition_closes_it(self, mockup):
        session = ReviewSession(mockup)
        session.begin_composition(RelativePosition(30, 70))
        composition = session.take_composition()
        assert composition.scope == ScopeKey("mock-1", "img-1")
        assert composition.position == RelativePosition(30, 70)
        assert not session.is_composing

    def test_refresh_drops_removed_selection(self, mockup):
        from revue.targets import remove_sub_asset

        session = ReviewSession(mockup, image_id="img-7")
        session.refresh_target(remove_sub_asset(mockup, "img-7"))
        assert session.scope == ScopeKey("mock-1", "img-1")
