import enum
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from .asset import new_asset_id


class JobState(str, enum.Enum):
    RECEIVED = "RECEIVED"
    VALIDATING = "VALIDATING"
    TRANSFORMING = "TRANSFORMING"
    UPLOADING = "UPLOADING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATES = (JobState.COMPLETED, JobState.FAILED)

ALLOWED_TRANSITIONS = {
    JobState.RECEIVED: {JobState.VALIDATING, JobState.FAILED},
    JobState.VALIDATING: {JobState.TRANSFORMING, JobState.FAILED},
    JobState.TRANSFORMING: {JobState.UPLOADING, JobState.FAILED},
    JobState.UPLOADING: {JobState.COMPLETED, JobState.FAILED},
    JobState.COMPLETED: set(),
    JobState.FAILED: set(),
}


class Job(BaseModel):
    """In-memory record of a single intake-to-result lifecycle."""

    id: str = Field(default_factory=new_asset_id)
    state: JobState = JobState.RECEIVED
    history: list[JobState] = Field(default_factory=lambda: [JobState.RECEIVED])
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    def transition(self, new_state: JobState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid job transition: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)
        if new_state in TERMINAL_STATES:
            self.completed_at = datetime.now(timezone.utc)


class JobResult(BaseModel):
    job_id: str
    state: JobState
    url: str | None = None
    expires_at: datetime | None = None
    error: str | None = None
    status_code: int = 200

    @property
    def success(self) -> bool:
        return self.state == JobState.COMPLETED
