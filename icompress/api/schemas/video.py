from datetime import datetime

from pydantic import BaseModel

from icompress.models import JobResult


class UploadResponse(BaseModel):
    success: bool = True
    url: str
    expires_at: datetime | None = None

    @classmethod
    def from_result(cls, result: JobResult) -> "UploadResponse":
        return cls(url=result.url, expires_at=result.expires_at)


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class HealthResponse(BaseModel):
    message: str
    status: str
    timestamp: datetime
