"""Tests for api.py - the HTTP surface."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from revue import __version__
from revue.api import create_app
from revue.coordinates import Rect, render_position
from revue.models import Comment, RelativePosition, ScopeKey, TargetType, position_from_dict
from revue.sync import SyncCoordinator


@pytest.fixture
def client(store, mirror, website, mockup, video):
    """API client over an in-memory store holding the sample targets."""
    for target in (website, mockup, video):
        asyncio.run(store.save_target(target))
    coordinator = SyncCoordinator(store, mirror, rollback_on_failure=True, max_reply_depth=64, default_video_span=5.0)
    with TestClient(create_app(coordinator)) as client:
        yield client


def post_pin(client, image_id="img-1", text="Looks off", **extra):
    body = {"text": text, "image_id": image_id, "position": {"kind": "relative", "x_percent": 10, "y_percent": 20}}
    body.update(extra)
    return client.post("/targets/mock-1/comments", json=body)


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": __version__, "targets": 3, "pending_writes": 0}


class TestTargets:
    """Tests for target endpoints."""

    def test_create_and_fetch(self, client):
        response = client.post("/targets", json={
            "type": "website",
            "name": "Docs",
            "url": "https://docs.example.com",
            "assets": [{"url": "guide/", "name": "Guide"}],
        })
        assert response.status_code == 201
        created = response.json()
        assert created["pages"][0]["url"] == "/guide"

        fetched = client.get(f"/targets/{created['id']}").json()
        assert fetched["name"] == "Docs"

    def test_blank_name_is_bad_request(self, client):
        response = client.post("/targets", json={"type": "mockup", "name": " "})
        assert response.status_code == 400

    def test_unknown_target(self, client):
        response = client.get("/targets/nope")
        assert response.status_code == 404
        assert response.json() == {"error": "target 'nope' not found"}

    def test_list_by_project(self, client):
        assert len(client.get("/targets", params={"project_id": "proj-1"}).json()["targets"]) == 3
        assert client.get("/targets", params={"project_id": "other"}).json()["targets"] == []

    def test_delete(self, client):
        post_pin(client)
        assert client.delete("/targets/mock-1").json() == {"deleted": True}
        assert client.get("/targets/mock-1").status_code == 404

    def test_review_status(self, client):
        response = client.put("/targets/vid-1/status", json={"status": "in_review"})
        assert response.json()["status"] == "in_review"

    def test_versions(self, client):
        assert client.post("/targets/vid-1/versions", json={"asset_url": "https://cdn/v2.mp4"}).status_code == 201
        client.post("/targets/vid-1/versions/1/activate")
        versions = client.get("/targets/vid-1/versions").json()
        assert versions["current"] == 1
        assert [v["version_number"] for v in versions["versions"]] == [1, 2]
        assert client.post("/targets/vid-1/versions/9/activate").status_code == 404


class TestApproval:
    def test_toggle_and_progress(self, client):
        response = client.post("/targets/mock-1/approval", json={"sub_asset_id": "img-2"})
        assert response.json() == {"sub_asset_id": "img-2", "approved": True}
        assert client.get("/targets/mock-1/progress").json() == {"approved": 1, "total": 3, "percent": 33.3}

    def test_unknown_sub_asset(self, client):
        response = client.post("/targets/mock-1/approval", json={"sub_asset_id": "img-99"})
        assert response.status_code == 404

    def test_remove_asset_cascades(self, client):
        post_pin(client, image_id="img-7")
        post_pin(client, image_id="img-7")
        post_pin(client, image_id="img-1")
        response = client.delete("/targets/mock-1/assets/img-7")
        assert response.json() == {"comments_deleted": 2}
        assert client.get("/targets/mock-1").json()["comment_count"] == 1

    def test_add_asset(self, client):
        response = client.post("/targets/site-1/assets", json={"url": "/blog", "name": "Blog"})
        assert response.status_code == 201
        assert response.json()["url"] == "/blog"


class TestComments:
    """Tests for comment endpoints."""

    def test_submit_and_list_scope(self, client):
        created = post_pin(client, image_id="img-7")
        assert created.status_code == 201
        assert created.json()["pin_number"] == 1

        listing = client.get("/targets/mock-1/comments", params={"image_id": "img-7"}).json()
        assert listing["scope"] == {"target_id": "mock-1", "sub_scope_id": "img-7", "device_view": None}
        assert listing["next_pin_number"] == 2
        assert [c["id"] for c in listing["comments"]] == [created.json()["id"]]

        other = client.get("/targets/mock-1/comments", params={"image_id": "img-1"}).json()
        assert other["comments"] == []

    def test_missing_position_is_bad_request(self, client):
        response = client.post("/targets/mock-1/comments", json={"text": "No pin", "image_id": "img-1"})
        assert response.status_code == 400
        assert "position" in response.json()["error"]

    def test_website_breakpoints_are_separate(self, client):
        body = {"text": "Wraps", "page_url": "/pricing", "device_view": "tablet",
                "position": {"x_percent": 50, "y_percent": 50}}
        client.post("/targets/site-1/comments", json=body)
        phone = client.get("/targets/site-1/comments", params={"page_url": "/pricing", "device_view": "phone"})
        assert phone.json()["comments"] == []

    def test_desktop_pin_survives_breakpoint_switch(self, client):
        """A desktop pin is hidden on phone and comes back at the same spot on any window size."""
        body = {"text": "Headline too tight", "page_url": "/pricing", "device_view": "desktop",
                "position": {"x_percent": 50, "y_percent": 10}}
        assert client.post("/targets/site-1/comments", json=body).json()["pin_number"] == 1

        phone = client.get("/targets/site-1/comments", params={"page_url": "/pricing", "device_view": "phone"})
        assert phone.json()["comments"] == []

        desktop = client.get("/targets/site-1/comments", params={"page_url": "/pricing", "device_view": "desktop"})
        [pin] = desktop.json()["comments"]
        assert pin["pin_number"] == 1
        position = position_from_dict(pin["position"])
        assert position == RelativePosition(50.0, 10.0)

        assert render_position(position, Rect(0, 0, 1440, 900)) == (720.0, 90.0)
        assert render_position(position, Rect(20, 40, 1024, 600), zoom=0.5) == (276.0, 70.0)

    def test_edit_resolve_and_delete(self, client):
        comment_id = post_pin(client).json()["id"]
        edited = client.patch(f"/targets/mock-1/comments/{comment_id}", json={"text": "Looks fine now"})
        assert edited.json()["text"] == "Looks fine now"

        resolved = client.post(f"/targets/mock-1/comments/{comment_id}/resolve")
        assert resolved.json()["status"] == "Resolved"

        assert client.delete(f"/targets/mock-1/comments/{comment_id}").json() == {"deleted": True}
        assert client.delete(f"/targets/mock-1/comments/{comment_id}").status_code == 404

    def test_due_date_edit(self, client, mirror):
        comment_id = post_pin(client).json()["id"]
        client.patch(f"/targets/mock-1/comments/{comment_id}", json={"due_date": "2026-11-01"})
        assert len(mirror.entries) == 1
        client.patch(f"/targets/mock-1/comments/{comment_id}", json={"due_date": None})
        assert mirror.entries == {}

    def test_replies(self, client):
        comment_id = post_pin(client).json()["id"]
        url = f"/targets/mock-1/comments/{comment_id}/replies"
        first = client.post(url, json={"text": "Agreed", "author_id": "bob"})
        assert first.status_code == 201
        nested = client.post(url, json={"text": "Fixed", "parent_reply_id": first.json()["id"]})
        assert nested.status_code == 201

        comment = client.delete(f"{url}/{first.json()['id']}").json()
        assert comment["replies"] == []
        assert client.post(url, json={"text": "x", "parent_reply_id": "rep-gone"}).status_code == 404

    def test_thread_lists_depths(self, client):
        comment_id = post_pin(client).json()["id"]
        url = f"/targets/mock-1/comments/{comment_id}/replies"
        first = client.post(url, json={"text": "Agreed", "author_id": "bob"}).json()
        client.post(url, json={"text": "Fixed", "parent_reply_id": first["id"]})
        thread = client.get(url).json()["replies"]
        assert [(r["depth"], r["text"]) for r in thread] == [(0, "Agreed"), (1, "Fixed")]


class TestSubscriptions:
    """Tests for writes made by other clients straight to the store."""

    def test_remote_write_is_visible(self, client, store):
        remote = Comment.create(
            ScopeKey("mock-1", "img-1"), TargetType.MOCKUP, 1, "From another client",
            position=RelativePosition(5, 5),
        )
        client.portal.call(store.create, remote)

        listing = client.get("/targets/mock-1/comments", params={"image_id": "img-1"}).json()
        assert [c["text"] for c in listing["comments"]] == ["From another client"]

    def test_new_target_is_followed(self, client, store):
        created = client.post("/targets", json={
            "type": "mockup",
            "name": "Onboarding",
            "assets": [{"id": "img-a", "url": "https://cdn.example.com/a.png"}],
        }).json()
        remote = Comment.create(
            ScopeKey(created["id"], "img-a"), TargetType.MOCKUP, 1, "Seen elsewhere",
            position=RelativePosition(5, 5),
        )
        client.portal.call(store.create, remote)

        listing = client.get(f"/targets/{created['id']}/comments", params={"image_id": "img-a"}).json()
        assert [c["text"] for c in listing["comments"]] == ["Seen elsewhere"]


class TestVideo:
    """Tests for video comments and playback queries."""

    def test_default_range_and_activity_window(self, client):
        response = client.post("/targets/vid-1/comments", json={
            "text": "Audio pops",
            "playback_time": 12,
            "duration": 60,
            "position": {"kind": "absolute", "x": 100, "y": 40},
        })
        assert response.status_code == 201
        assert response.json()["time_range"] == {"start": 12.0, "end": 17.0}

        active = client.get("/targets/vid-1/videos/clip-a/active", params={"time": 14}).json()
        assert len(active["comments"]) == 1
        assert active["label"] == "0:14"
        later = client.get("/targets/vid-1/videos/clip-a/active", params={"time": 17}).json()
        assert later["comments"] == []

    def test_invalid_range_edit(self, client):
        comment_id = client.post("/targets/vid-1/comments", json={"text": "x"}).json()["id"]
        response = client.patch(
            f"/targets/vid-1/comments/{comment_id}", json={"time_range": {"start": 8, "end": 3}}
        )
        assert response.status_code == 400

    def test_timeline_rows(self, client):
        for start, end in ((0, 5), (3, 8), (5, 9)):
            client.post("/targets/vid-1/comments", json={"text": "x", "time_range": {"start": start, "end": end}})
        timeline = client.get("/targets/vid-1/videos/clip-a/timeline").json()
        assert timeline["rows"] == 2
        assert [bar["row"] for bar in timeline["bars"]] == [0, 1, 0]


class TestFeed:
    def test_activity_newest_first(self, client):
        comment_id = post_pin(client, text="First").json()["id"]
        client.post(f"/targets/mock-1/comments/{comment_id}/resolve")
        activity = client.get("/activity", params={"limit": 2}).json()["activity"]
        assert [a["kind"] for a in activity] == ["comment_resolved", "comment_added"]
        assert activity[0]["link"] == "/feedback/proj-1/mockup/mock-1"

    def test_warnings_start_empty(self, client):
        assert client.get("/warnings").json() == {"warnings": []}
