"""
Integration test fixtures for icompress.

These fixtures provide a full FastAPI test client with the media engine and
object storage replaced by in-process fakes.
"""

from typing import Generator

import pytest
from fastapi.testclient import TestClient

from icompress.api.dependencies import get_storage, get_video_processor
from icompress.api.main import app
from icompress.core.config import Settings, get_settings
from icompress.services import VideoProcessor


@pytest.fixture(scope="function")
def client(test_settings: Settings, fake_engine, memory_storage) -> Generator[TestClient, None, None]:
    """Create a test client with overridden dependencies."""
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_video_processor] = lambda: VideoProcessor(engine=fake_engine, settings=test_settings)
    app.dependency_overrides[get_storage] = lambda: memory_storage

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def local_client(test_settings: Settings, fake_engine) -> Generator[TestClient, None, None]:
    """Client running in legacy local mode: outputs are served from public_dir."""
    settings = test_settings.model_copy(update={"storage_backend": "local", "serve_processed": True})
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_video_processor] = lambda: VideoProcessor(engine=fake_engine, settings=settings)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
