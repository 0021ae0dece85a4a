from .video import ErrorResponse, HealthResponse, UploadResponse

__all__ = ["ErrorResponse", "HealthResponse", "UploadResponse"]
