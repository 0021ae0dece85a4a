"""
Shared fixtures for icompress tests.
"""

import os
import tempfile
from pathlib import Path
from typing import Generator

# ============================================================================
# Set test environment BEFORE any icompress imports
# ============================================================================
_RUNTIME_DIR = Path(tempfile.mkdtemp(prefix="icompress-tests-"))
os.environ["STORAGE_ENDPOINT"] = "http://localhost:9000"
os.environ["STORAGE_ACCESS_KEY"] = "minioadmin"
os.environ["STORAGE_SECRET_KEY"] = "minioadmin"
os.environ["STORAGE_BUCKET"] = "test-bucket"
os.environ["UPLOAD_DIR"] = str(_RUNTIME_DIR / "uploads")
os.environ["PROCESSED_DIR"] = str(_RUNTIME_DIR / "processed")
os.environ["PUBLIC_DIR"] = str(_RUNTIME_DIR / "public")

# Clear cached settings before any import
import icompress.core.config
icompress.core.config.get_settings.cache_clear()

import pytest
from faker import Faker

from fakes import FakeEngine, InMemoryStorage, generate_video_bytes
from icompress.core.config import Settings
from icompress.models import UploadedAsset

fake = Faker()


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_settings(temp_dir: Path) -> Settings:
    """Settings with all transient directories inside temp_dir."""
    return Settings(
        upload_dir=str(temp_dir / "uploads"),
        processed_dir=str(temp_dir / "processed"),
        public_dir=str(temp_dir / "public"),
        public_base_url="http://testserver",
        disconnect_poll_seconds=0.05,
    )


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def make_asset(test_settings: Settings):
    """Factory writing an uploaded video into the upload dir."""

    def _make(
        content: bytes | None = None,
        content_type: str | None = "video/mp4",
        filename: str | None = None,
        size_bytes: int | None = None,
    ) -> UploadedAsset:
        content = generate_video_bytes(10) if content is None else content
        filename = filename or f"{fake.slug()}.mp4"
        upload_dir = Path(test_settings.upload_dir)
        upload_dir.mkdir(parents=True, exist_ok=True)
        asset = UploadedAsset(
            path="",
            original_filename=filename,
            content_type=content_type,
            size_bytes=len(content) if size_bytes is None else size_bytes,
        )
        path = upload_dir / f"{asset.id}-{filename}"
        path.write_bytes(content)
        return asset.model_copy(update={"path": str(path)})

    return _make
