from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from icompress.api.routers import files_router, health_router, progress_router, videos_router
from icompress.api.schemas import ErrorResponse
from icompress.core.config import get_settings
from icompress.core.errors import JobError
from icompress.services import ProgressHub

logger = structlog.get_logger()

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    current = get_settings()
    for directory in (current.upload_dir, current.processed_dir):
        Path(directory).mkdir(parents=True, exist_ok=True)
    app.state.progress_hub = ProgressHub(queue_size=current.progress_queue_size)
    logger.info("app_started", storage_backend=current.storage_backend, port=current.api_port)
    yield
    logger.info("app_stopped")


app = FastAPI(
    title="iCompressVideo API",
    description="""
## Video processing service

Upload a video, compress, convert or trim it with FFmpeg, and receive a
time-limited download URL for the result.

### Flow

1. Open `/ws/progress` and keep the `client_id` from the `connect` event
2. `POST /api/upload?action=compress&client_id={client_id}` with the video in the `video` field
3. Watch `progress` events on the WebSocket
4. Download the result from the returned `url` (valid for one hour)

### Actions

* **compress** - H.264 at 1000k, CRF 28, AAC audio
* **convert** - H.264/AAC in an MP4 container
* **trim** - cut `duration` seconds starting at `start` (defaults 0 and 10)
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Health", "description": "Health check endpoints"},
        {"name": "Videos", "description": "Upload, processing and download"},
        {"name": "Progress", "description": "Real-time processing progress"},
        {"name": "Files", "description": "Local-mode file retrieval"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    return response


@app.exception_handler(JobError)
async def job_exception_handler(request: Request, exc: JobError) -> JSONResponse:
    logger.error("job_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=exc.status_code, content=ErrorResponse(error=exc.client_message).model_dump())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content=ErrorResponse(error="Internal server error").model_dump())


app.include_router(health_router)
app.include_router(videos_router, prefix=settings.api_prefix)
app.include_router(progress_router)
app.include_router(files_router)
