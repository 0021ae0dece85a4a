from .actions import resolve
from .executor import JobExecutor
from .progress import ProgressHub, Subscription
from .storage import LocalStorageGateway, S3StorageGateway, StorageGateway, get_storage_gateway
from .video_processor import FFmpegEngine, MediaEngine, VideoProcessor

__all__ = [
    "resolve", "JobExecutor", "ProgressHub", "Subscription",
    "StorageGateway", "S3StorageGateway", "LocalStorageGateway", "get_storage_gateway",
    "FFmpegEngine", "MediaEngine", "VideoProcessor",
]
