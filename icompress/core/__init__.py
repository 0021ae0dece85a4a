from .config import Settings, get_settings, settings
from .errors import JobError, StorageError, TransformCancelled, TransformError, ValidationError

__all__ = [
    "Settings", "get_settings", "settings",
    "JobError", "ValidationError", "TransformError", "TransformCancelled", "StorageError",
]
