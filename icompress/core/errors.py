class JobError(Exception):
    """Base error for anything that terminates a job."""

    status_code: int = 500
    client_message: str = "Internal server error"

    def __init__(self, message: str, client_message: str | None = None) -> None:
        super().__init__(message)
        if client_message is not None:
            self.client_message = client_message


class ValidationError(JobError):
    """Rejected intake: bad MIME type, oversized file or malformed action."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message, client_message=message)


class TransformError(JobError):
    """Exception raised when FFmpeg processing fails."""

    client_message = "Video processing failed"


class TransformCancelled(TransformError):
    """The transform was stopped before FFmpeg finished."""


class StorageError(JobError):
    """Object storage upload or URL signing failed."""

    client_message = "Failed to upload processed video"
