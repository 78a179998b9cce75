"""Tests for store.py - in-memory collaborators."""

import asyncio

import pytest

from revue.errors import NotFoundError
from revue.models import Comment, RelativePosition, ScopeKey, TargetType

PIN = RelativePosition(1, 1)


def make_comment(text="x"):
    return Comment.create(ScopeKey("mock-1", "img-1"), TargetType.MOCKUP, 1, text, position=PIN)


class TestMemoryDocumentStore:
    """Tests for the dictionary-backed store."""

    def test_returned_comments_are_copies(self, store):
        async def scenario():
            await store.create(make_comment("Original"))
            listed = await store.list_comments("mock-1")
            listed[0].text = "Mutated"
            return await store.list_comments("mock-1")

        assert asyncio.run(scenario())[0].text == "Original"

    def test_create_stamps_server_time(self, store):
        comment = make_comment()
        comment.created_at = "2000-01-01T00:00:00+00:00"

        async def scenario():
            await store.create(comment)
            return await store.list_comments("mock-1")

        assert asyncio.run(scenario())[0].created_at != "2000-01-01T00:00:00+00:00"

    def test_update_missing(self, store):
        with pytest.raises(NotFoundError):
            asyncio.run(store.update("com-missing", {"text": "y"}))

    def test_subscribers_get_each_write(self, store):
        async def scenario():
            stream = store.subscribe("mock-1")
            initial = await stream.__anext__()
            comment_id = await store.create(make_comment())
            after_create = await stream.__anext__()
            await store.delete(comment_id)
            after_delete = await stream.__anext__()
            await stream.aclose()
            return initial, after_create, after_delete

        initial, after_create, after_delete = asyncio.run(scenario())
        assert (len(initial), len(after_create), len(after_delete)) == (0, 1, 0)

    def test_counter_floor(self, store, mockup):
        async def scenario():
            await store.save_target(mockup)
            return await store.increment_comment_count("mock-1", -3)

        assert asyncio.run(scenario()) == 0


class TestMemoryTaskMirror:
    def test_update_maps_due_date(self, mirror):
        async def scenario():
            linked_id = await mirror.create_from_comment("com-1", "Text", "2026-11-01", "amy")
            await mirror.update_linked(linked_id, {"due_date": "2026-11-09", "title": "New"})
            return mirror.linked_to("com-1")

        entry = asyncio.run(scenario())[0]
        assert entry["start_date"] == entry["end_date"] == "2026-11-09"
        assert entry["title"] == "New"
        assert "due_date" not in entry

    def test_update_missing(self, mirror):
        with pytest.raises(NotFoundError):
            asyncio.run(mirror.update_linked("cal-missing", {"title": "x"}))
