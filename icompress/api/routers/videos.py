import asyncio
import threading
import time
from pathlib import Path
from urllib.parse import urlparse

import httpx
import structlog
from fastapi import APIRouter, File, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from icompress.api.dependencies import AppSettings, Executor, Hub
from icompress.api.schemas import ErrorResponse, UploadResponse
from icompress.core.config import Settings
from icompress.models import Job, UploadedAsset, VIDEO_CONTENT_TYPE
from icompress.models.asset import new_asset_id

logger = structlog.get_logger()
router = APIRouter(tags=["Videos"])

CHUNK_SIZE = 1024 * 1024


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


async def save_upload(file: UploadFile, settings: Settings) -> UploadedAsset:
    """
    Write the upload into upload_dir.

    Writing stops once the size limit is crossed; the asset still reports a
    size above the limit so validation rejects it.
    """
    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)

    asset_id = new_asset_id()
    path = upload_dir / f"{asset_id}-{Path(file.filename).name}"
    limit = settings.max_video_size_bytes

    total = 0
    try:
        with open(path, "wb") as dst:
            while True:
                chunk = await file.read(CHUNK_SIZE)
                if not chunk:
                    break
                total += len(chunk)
                if total > limit:
                    break
                dst.write(chunk)
    except OSError:
        path.unlink(missing_ok=True)
        raise

    return UploadedAsset(
        id=asset_id,
        path=str(path),
        original_filename=file.filename,
        content_type=file.content_type,
        size_bytes=file.size if file.size is not None else total,
    )


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Upload and process a video",
)
async def upload_video(
    request: Request,
    executor: Executor,
    hub: Hub,
    settings: AppSettings,
    video: UploadFile | None = File(None, description="Video file to process"),
    action: str | None = Query(None, description="compress, convert or trim"),
    start: str | None = Query(None, description="Trim start, seconds or HH:MM:SS"),
    duration: str | None = Query(None, description="Trim duration, seconds or HH:MM:SS"),
    client_id: str | None = Query(None, description="Progress stream connection id"),
):
    """
    Run the requested action on the uploaded video and return a retrieval URL.

    Progress is pushed to the /ws/progress connection identified by client_id.
    """
    if video is None or not video.filename:
        return error_response(400, "No video file uploaded")

    asset = await save_upload(video, settings)
    job = Job()
    cancel = threading.Event()
    sink = hub.sink_for(client_id, job.id)
    logger.info("video_received", job_id=job.id, filename=asset.original_filename, size=asset.size_bytes)

    task = asyncio.ensure_future(
        run_in_threadpool(
            executor.execute, asset, action, {"start": start, "duration": duration}, sink, cancel, job
        )
    )
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=settings.disconnect_poll_seconds)
            if done:
                break
            if not cancel.is_set() and await request.is_disconnected():
                logger.info("client_disconnected", job_id=job.id)
                cancel.set()
    finally:
        if not task.done():
            cancel.set()

    result = task.result()
    if not result.success:
        return error_response(result.status_code, result.error)
    return UploadResponse.from_result(result)


def _allowed_download_hosts(settings: Settings) -> set[str]:
    if settings.storage_backend == "local":
        endpoints = [settings.public_base_url]
    else:
        endpoints = [settings.storage_public_endpoint, settings.storage_endpoint]

    hosts = set()
    for endpoint in endpoints:
        if not endpoint:
            continue
        if "://" not in endpoint:
            endpoint = f"http://{endpoint}"
        host = urlparse(endpoint).hostname
        if host:
            hosts.add(host)
    return hosts


def is_allowed_download(url: str, settings: Settings) -> bool:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False
    host = parsed.hostname
    return any(host == allowed or host.endswith(f".{allowed}") for allowed in _allowed_download_hosts(settings))


@router.get(
    "/download",
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Download a processed video",
)
async def download_video(settings: AppSettings, url: str | None = Query(None)):
    """Stream a previously issued retrieval URL back as an attachment."""
    if not url:
        return error_response(400, "No URL provided")
    if not is_allowed_download(url, settings):
        return error_response(400, "URL does not point to video storage")

    client = httpx.AsyncClient(timeout=httpx.Timeout(30.0, read=None))
    try:
        response = await client.send(client.build_request("GET", url), stream=True)
    except httpx.HTTPError as e:
        await client.aclose()
        logger.error("download_failed", error=str(e))
        return error_response(500, f"Failed to download video: {e}")

    if response.status_code != 200:
        await response.aclose()
        await client.aclose()
        logger.error("download_failed", status=response.status_code)
        return error_response(500, "Failed to download video: Failed to fetch video from storage")

    async def close() -> None:
        await response.aclose()
        await client.aclose()

    filename = f"processed-video-{int(time.time() * 1000)}.mp4"
    return StreamingResponse(
        response.aiter_bytes(),
        media_type=VIDEO_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        background=BackgroundTask(close),
    )
