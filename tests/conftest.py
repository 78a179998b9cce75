"""Shared fixtures for revue tests."""

import asyncio
import shutil
import tempfile
from pathlib import Path

import pytest

from revue.config import reset_config
from revue.models import TargetType
from revue.store import MemoryDocumentStore, MemoryTaskMirror
from revue.sync import SyncCoordinator
from revue.targets import create_target


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    dirpath = tempfile.mkdtemp()
    yield Path(dirpath)
    shutil.rmtree(dirpath)


@pytest.fixture(autouse=True)
def clean_config():
    """Drop cached settings between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def mirror():
    return MemoryTaskMirror()


@pytest.fixture
def coordinator(store, mirror):
    """Coordinator over in-memory collaborators with rollback enabled."""
    return SyncCoordinator(
        store,
        mirror,
        rollback_on_failure=True,
        max_reply_depth=64,
        default_video_span=5.0,
    )


@pytest.fixture
def website():
    """A website with two pages, reviewable at every breakpoint."""
    return create_target(
        TargetType.WEBSITE,
        "Marketing site",
        project_id="proj-1",
        url="https://example.com",
        assets=[
            {"id": "page-home", "name": "Home", "url": "/"},
            {"id": "page-pricing", "name": "Pricing", "url": "/pricing"},
        ],
        target_id="site-1",
    )


@pytest.fixture
def mockup():
    """A mockup with three images."""
    return create_target(
        TargetType.MOCKUP,
        "App screens",
        project_id="proj-1",
        assets=[
            {"id": "img-1", "name": "Login", "url": "https://cdn.example.com/login.png"},
            {"id": "img-2", "name": "Feed", "url": "https://cdn.example.com/feed.png"},
            {"id": "img-7", "name": "Settings", "url": "https://cdn.example.com/settings.png"},
        ],
        target_id="mock-1",
    )


@pytest.fixture
def video():
    """A video target with one asset."""
    return create_target(
        TargetType.VIDEO,
        "Launch trailer",
        project_id="proj-1",
        assets=[{"id": "clip-a", "name": "Cut A", "url": "https://cdn.example.com/a.mp4"}],
        target_id="vid-1",
    )


@pytest.fixture
def loaded(coordinator, website, mockup, video):
    """Coordinator with the three sample targets created."""
    async def seed():
        for target in (website, mockup, video):
            await coordinator.create_target(target)

    asyncio.run(seed())
    return coordinator
