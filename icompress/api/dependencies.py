from typing import Annotated

from fastapi import Depends, Request

from icompress.core.config import Settings, get_settings
from icompress.services import JobExecutor, ProgressHub, StorageGateway, VideoProcessor, get_storage_gateway

AppSettings = Annotated[Settings, Depends(get_settings)]


def get_progress_hub(request: Request) -> ProgressHub:
    return request.app.state.progress_hub


def get_storage(settings: AppSettings) -> StorageGateway:
    return get_storage_gateway(settings)


def get_video_processor(settings: AppSettings) -> VideoProcessor:
    return VideoProcessor(settings=settings)


def get_executor(
    settings: AppSettings,
    processor: Annotated[VideoProcessor, Depends(get_video_processor)],
    storage: Annotated[StorageGateway, Depends(get_storage)],
) -> JobExecutor:
    return JobExecutor(processor, storage, settings)


Hub = Annotated[ProgressHub, Depends(get_progress_hub)]
Executor = Annotated[JobExecutor, Depends(get_executor)]
