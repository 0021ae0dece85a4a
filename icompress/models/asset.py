import enum
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

VIDEO_CONTENT_TYPE = "video/mp4"


def new_asset_id() -> str:
    return uuid.uuid4().hex


def processed_key(asset_id: str) -> str:
    return f"{asset_id}-processed.mp4"


class Action(str, enum.Enum):
    COMPRESS = "compress"
    CONVERT = "convert"
    TRIM = "trim"


class UploadedAsset(BaseModel):
    """Video received at intake, stored as a transient file until the job ends."""

    id: str = Field(default_factory=new_asset_id)
    path: str
    original_filename: str
    content_type: str | None = None
    size_bytes: int = Field(ge=0)


class ProcessedAsset(BaseModel):
    id: str = Field(default_factory=new_asset_id)
    path: str
    content_type: str = VIDEO_CONTENT_TYPE

    @property
    def key(self) -> str:
        return processed_key(self.id)


class TransformSpec(BaseModel):
    """Resolved action with its parameters; start and duration are in seconds."""

    model_config = ConfigDict(frozen=True)

    action: Action
    start: float | None = None
    duration: float | None = None

    @model_validator(mode="after")
    def check_parameters(self) -> "TransformSpec":
        if self.action == Action.TRIM:
            if self.start is None or self.duration is None:
                raise ValueError("trim requires start and duration")
            if self.start < 0 or self.duration < 0:
                raise ValueError("trim parameters must be non-negative")
        elif self.start is not None or self.duration is not None:
            raise ValueError(f"{self.action.value} takes no parameters")
        return self


class ProgressEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str
    percentage: float

    @field_validator("percentage", mode="before")
    @classmethod
    def clamp_percentage(cls, v: float) -> float:
        return min(max(float(v), 0.0), 100.0)
