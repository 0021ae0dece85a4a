from .asset import VIDEO_CONTENT_TYPE, Action, ProcessedAsset, ProgressEvent, TransformSpec, UploadedAsset
from .job import Job, JobResult, JobState

__all__ = [
    "VIDEO_CONTENT_TYPE", "Action", "UploadedAsset", "ProcessedAsset", "TransformSpec", "ProgressEvent",
    "Job", "JobResult", "JobState",
]
