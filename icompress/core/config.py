from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 5000
    debug: bool = False
    api_prefix: str = "/api"

    # Object storage (Cloudflare R2 / S3 / MinIO)
    storage_backend: Literal["s3", "local"] = "s3"
    storage_endpoint: str | None = None
    storage_public_endpoint: str | None = None  # For presigned URLs (external access)
    storage_access_key: str | None = None
    storage_secret_key: str | None = None
    storage_bucket: str | None = None
    storage_region: str = "auto"
    presigned_url_expiry_seconds: int = 3600

    # Transient files
    upload_dir: str = "uploads"
    processed_dir: str = "processed"

    # Legacy local mode
    public_dir: str = "public"
    public_base_url: str = "http://localhost:5000"
    serve_processed: bool = False

    # FFmpeg
    ffmpeg_binary: str = "ffmpeg"
    ffmpeg_timeout_seconds: int = 1800

    # Limits
    max_video_size_mb: int = 500
    lenient_trim_params: bool = False

    # Progress
    progress_queue_size: int = 100
    disconnect_poll_seconds: float = 0.5

    # CORS
    cors_origins: List[str] = ["http://64.227.183.31", "http://localhost:3000"]

    @property
    def max_video_size_bytes(self) -> int:
        return self.max_video_size_mb * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
