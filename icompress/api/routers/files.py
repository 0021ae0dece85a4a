from pathlib import Path

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from icompress.api.dependencies import AppSettings
from icompress.models import VIDEO_CONTENT_TYPE

router = APIRouter(tags=["Files"])


@router.get("/processed/{filename}", summary="Serve a processed video (local mode)")
async def get_processed_file(filename: str, settings: AppSettings):
    if not settings.serve_processed:
        raise HTTPException(status_code=404, detail="Not found")

    root = Path(settings.public_dir).resolve()
    path = (root / filename).resolve()
    if path.parent != root or not path.is_file():
        raise HTTPException(status_code=404, detail="Not found")

    return FileResponse(path, media_type=VIDEO_CONTENT_TYPE, filename=filename)
