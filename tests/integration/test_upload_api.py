"""
Integration tests for the upload endpoint.

Tests POST /api/upload end to end with a fake engine and in-memory storage.
"""

import io
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from fakes import generate_video_bytes


def video_files(content: bytes | None = None, filename: str = "clip.mp4", content_type: str = "video/mp4") -> dict:
    content = generate_video_bytes(10) if content is None else content
    return {"video": (filename, io.BytesIO(content), content_type)}


def leftover_files(settings) -> list[Path]:
    files = []
    for directory in (settings.upload_dir, settings.processed_dir):
        if Path(directory).exists():
            files.extend(Path(directory).iterdir())
    return files


class TestUploadSuccess:
    """Tests for successful uploads."""

    @pytest.mark.integration
    def test_compress_returns_url(self, client: TestClient, memory_storage, test_settings):
        """Valid upload returns 200 with a retrieval URL."""
        response = client.post("/api/upload?action=compress", files=video_files())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["url"].startswith("https://storage.test/")
        assert len(memory_storage.objects) == 1
        assert leftover_files(test_settings) == []

    @pytest.mark.integration
    def test_default_action_is_compress(self, client: TestClient, fake_engine):
        response = client.post("/api/upload", files=video_files())

        assert response.status_code == 200
        assert "-crf" in fake_engine.calls[0]

    @pytest.mark.integration
    def test_trim_query_params(self, client: TestClient, fake_engine):
        response = client.post("/api/upload?action=trim&start=5&duration=3", files=video_files())

        assert response.status_code == 200
        args = fake_engine.calls[0]
        assert args[args.index("-ss") + 1] == "5"
        assert args[args.index("-t") + 1] == "3"

    @pytest.mark.integration
    def test_uploaded_content_reaches_engine(self, client: TestClient, fake_engine, monkeypatch):
        content = generate_video_bytes(64)
        seen = {}
        original_start = fake_engine.start

        def capture(args):
            seen["bytes"] = Path(args[args.index("-i") + 1]).read_bytes()
            return original_start(args)

        monkeypatch.setattr(fake_engine, "start", capture)

        client.post("/api/upload?action=convert", files=video_files(content))

        assert seen["bytes"] == content

    @pytest.mark.integration
    @pytest.mark.parametrize("filename,content_type", [
        ("video.mp4", "video/mp4"),
        ("video.avi", "video/x-msvideo"),
        ("video.mov", "video/quicktime"),
        ("video.webm", "video/webm"),
    ])
    def test_video_types_accepted(self, client: TestClient, filename, content_type):
        response = client.post("/api/upload", files=video_files(filename=filename, content_type=content_type))

        assert response.status_code == 200


class TestUploadRejections:
    """Tests for rejected uploads."""

    @pytest.mark.integration
    def test_no_file(self, client: TestClient):
        response = client.post("/api/upload?action=compress")

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "No video file uploaded"}

    @pytest.mark.integration
    def test_text_file_renamed_to_mp4(self, client: TestClient, fake_engine, test_settings):
        files = video_files(b"plain text, not a video", filename="notes.mp4", content_type="text/plain")

        response = client.post("/api/upload", files=files)

        assert response.status_code == 400
        assert "Please upload a valid video file" in response.json()["error"]
        assert fake_engine.calls == []
        assert leftover_files(test_settings) == []

    @pytest.mark.integration
    def test_oversized_file(self, client: TestClient, fake_engine, test_settings):
        test_settings.max_video_size_mb = 1

        response = client.post("/api/upload", files=video_files(generate_video_bytes(1500)))

        assert response.status_code == 400
        assert response.json()["error"] == "File size exceeds 1MB limit"
        assert fake_engine.calls == []
        assert leftover_files(test_settings) == []

    @pytest.mark.integration
    def test_unknown_action(self, client: TestClient, fake_engine):
        response = client.post("/api/upload?action=explode", files=video_files())

        assert response.status_code == 400
        assert response.json()["error"] == "Unsupported action: explode"
        assert fake_engine.calls == []

    @pytest.mark.integration
    def test_malformed_trim_params(self, client: TestClient):
        response = client.post("/api/upload?action=trim&start=abc", files=video_files())

        assert response.status_code == 400
        assert "Invalid trim parameter" in response.json()["error"]


class TestUploadFailures:
    """Tests for engine and storage failures."""

    @pytest.mark.integration
    def test_engine_failure(self, client: TestClient, fake_engine, memory_storage, test_settings):
        fake_engine.returncode = 1

        response = client.post("/api/upload", files=video_files())

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Video processing failed"}
        assert memory_storage.objects == {}
        assert leftover_files(test_settings) == []

    @pytest.mark.integration
    def test_storage_failure(self, client: TestClient, memory_storage, test_settings):
        memory_storage.fail_put = True

        response = client.post("/api/upload", files=video_files())

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to upload processed video"
        assert leftover_files(test_settings) == []

    @pytest.mark.integration
    def test_security_headers(self, client: TestClient):
        response = client.post("/api/upload", files=video_files())

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"


class TestLocalMode:
    """Tests for the legacy local storage mode."""

    @pytest.mark.integration
    def test_round_trip_through_static_route(self, local_client: TestClient, fake_engine):
        """Uploaded output is retrievable by its URL with identical bytes."""
        response = local_client.post("/api/upload?action=convert", files=video_files())

        assert response.status_code == 200
        url = response.json()["url"]
        assert url.startswith("http://testserver/processed/")

        download = local_client.get(url)

        assert download.status_code == 200
        assert download.content == fake_engine.output_bytes
        assert download.headers["content-type"] == "video/mp4"
