import shutil
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import boto3
import structlog
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from icompress.core.config import Settings, settings as default_settings
from icompress.core.errors import StorageError
from icompress.models import ProcessedAsset

logger = structlog.get_logger()


class StorageGateway(Protocol):
    def put(self, asset: ProcessedAsset, key: str) -> None: ...

    def presigned_get(self, key: str, ttl: int) -> str: ...

    def check(self) -> None: ...


def _with_scheme(endpoint: str) -> str:
    if not endpoint.startswith(("http://", "https://")):
        endpoint = f"http://{endpoint}"
    return endpoint


class S3StorageGateway:
    """S3-compatible storage service for Cloudflare R2, MinIO or S3."""

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or default_settings
        missing = [
            name
            for name in ("storage_endpoint", "storage_access_key", "storage_secret_key", "storage_bucket")
            if not getattr(settings, name)
        ]
        if missing:
            raise StorageError(f"Storage is not configured: missing {', '.join(missing)}")

        endpoint = _with_scheme(settings.storage_endpoint)
        self.bucket = settings.storage_bucket
        self.client = self._make_client(settings, endpoint)

        # Client for presigned URLs (external access)
        if settings.storage_public_endpoint:
            self.presign_client = self._make_client(settings, _with_scheme(settings.storage_public_endpoint))
        else:
            self.presign_client = self.client

    @staticmethod
    def _make_client(settings: Settings, endpoint: str):
        return boto3.client(
            "s3",
            endpoint_url=endpoint,
            region_name=settings.storage_region,
            aws_access_key_id=settings.storage_access_key,
            aws_secret_access_key=settings.storage_secret_key,
            config=Config(signature_version="s3v4"),
        )

    def put(self, asset: ProcessedAsset, key: str) -> None:
        try:
            self.client.upload_file(
                asset.path, self.bucket, key, ExtraArgs={"ContentType": asset.content_type}
            )
        except (BotoCoreError, ClientError, OSError) as e:
            logger.error("upload_failed", bucket=self.bucket, key=key, error=str(e))
            raise StorageError(f"Upload of {key} failed: {e}") from e
        logger.info("file_uploaded", bucket=self.bucket, key=key)

    def presigned_get(self, key: str, ttl: int) -> str:
        try:
            url = self.presign_client.generate_presigned_url(
                "get_object", Params={"Bucket": self.bucket, "Key": key}, ExpiresIn=ttl
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("presign_failed", bucket=self.bucket, key=key, error=str(e))
            raise StorageError(f"Could not sign URL for {key}: {e}") from e
        if not url:
            raise StorageError(f"Could not sign URL for {key}")
        return url

    def check(self) -> None:
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Bucket {self.bucket} unavailable: {e}") from e


class LocalStorageGateway:
    """Publishes outputs into a local directory served under /processed."""

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or default_settings
        self.root = Path(settings.public_dir)
        self.base_url = settings.public_base_url.rstrip("/")

    def put(self, asset: ProcessedAsset, key: str) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(asset.path, self.root / key)
        except OSError as e:
            raise StorageError(f"Upload of {key} failed: {e}") from e
        logger.info("file_uploaded", root=str(self.root), key=key)

    def presigned_get(self, key: str, ttl: int) -> str:
        if not (self.root / key).is_file():
            raise StorageError(f"No stored object for {key}")
        return f"{self.base_url}/processed/{quote(key)}"

    def check(self) -> None:
        if self.root.exists() and not self.root.is_dir():
            raise StorageError(f"{self.root} is not a directory")


def get_storage_gateway(settings: Settings | None = None) -> StorageGateway:
    settings = settings or default_settings
    if settings.storage_backend == "local":
        return LocalStorageGateway(settings)
    return S3StorageGateway(settings)
