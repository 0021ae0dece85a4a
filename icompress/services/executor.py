import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Mapping

import structlog

from icompress.core.config import Settings, settings as default_settings
from icompress.core.errors import JobError, StorageError, TransformError, ValidationError
from icompress.models import Job, JobResult, JobState, TransformSpec, UploadedAsset
from icompress.services import actions
from icompress.services.storage import StorageGateway
from icompress.services.video_processor import ProgressSink, VideoProcessor

logger = structlog.get_logger()

INVALID_TYPE_MESSAGE = "Please upload a valid video file (MP4, AVI, MOV)"


class JobExecutor:
    """
    Drives one uploaded video from intake to a retrieval URL.

    Received -> Validating -> Transforming -> Uploading -> Completed, with
    Failed reachable from every non-terminal state. Every transient file
    registered during the job is removed before execute() returns.
    """

    def __init__(
        self,
        processor: VideoProcessor,
        storage: StorageGateway,
        settings: Settings | None = None,
        resolve: Callable[..., TransformSpec] = actions.resolve,
    ) -> None:
        self.processor = processor
        self.storage = storage
        self.settings = settings or default_settings
        self.resolve = resolve

    def validate(self, asset: UploadedAsset) -> None:
        if not asset.content_type or not asset.content_type.startswith("video/"):
            raise ValidationError(INVALID_TYPE_MESSAGE)
        if asset.size_bytes > self.settings.max_video_size_bytes:
            raise ValidationError(f"File size exceeds {self.settings.max_video_size_mb}MB limit")

    def execute(
        self,
        asset: UploadedAsset,
        action: str | None = None,
        params: Mapping[str, str | None] | None = None,
        progress_sink: ProgressSink | None = None,
        cancel: threading.Event | None = None,
        job: Job | None = None,
    ) -> JobResult:
        job = job or Job()
        artifacts: list[Path] = [Path(asset.path)]
        log = logger.bind(job_id=job.id, asset_id=asset.id)
        start_time = time.time()

        try:
            self._advance(job, JobState.VALIDATING, log)
            self.validate(asset)
            spec = self.resolve(action, params, lenient=self.settings.lenient_trim_params)

            self._advance(job, JobState.TRANSFORMING, log, action=spec.action.value)
            output = self.processor.new_output()
            artifacts.append(Path(output.path))
            processed = self.processor.transform(asset, spec, progress_sink, cancel, output=output)

            self._advance(job, JobState.UPLOADING, log)
            key = processed.key
            self.storage.put(processed, key)
            ttl = self.settings.presigned_url_expiry_seconds
            issued_at = datetime.now(timezone.utc)
            url = self.storage.presigned_get(key, ttl)

            self._advance(job, JobState.COMPLETED, log, key=key)
            log.info("processing_completed", processing_time=round(time.time() - start_time, 3))
            return JobResult(
                job_id=job.id,
                state=job.state,
                url=url,
                expires_at=issued_at + timedelta(seconds=ttl),
            )

        except ValidationError as e:
            log.info("job_rejected", reason=str(e))
            return self._fail(job, e, log)

        except TransformError as e:
            log.error("transform_failed", error=str(e))
            return self._fail(job, e, log)

        except StorageError as e:
            log.error("storage_failed", error=str(e))
            return self._fail(job, e, log)

        except Exception as e:
            log.exception("processing_error", error=str(e))
            return self._fail(job, JobError(str(e)), log)

        finally:
            self._cleanup(artifacts, log)

    @staticmethod
    def _advance(job: Job, state: JobState, log, **context) -> None:
        previous = job.state
        job.transition(state)
        log.info("job_state_changed", old_status=previous.value, new_status=state.value, **context)

    def _fail(self, job: Job, error: JobError, log) -> JobResult:
        if job.state not in (JobState.COMPLETED, JobState.FAILED):
            self._advance(job, JobState.FAILED, log)
        return JobResult(
            job_id=job.id,
            state=job.state,
            error=error.client_message,
            status_code=error.status_code,
        )

    @staticmethod
    def _cleanup(artifacts: list[Path], log) -> None:
        for path in dict.fromkeys(artifacts):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                log.error("cleanup_failed", path=str(path), error=str(e))
            else:
                log.debug("file_deleted", path=str(path))
