from .files import router as files_router
from .health import router as health_router
from .progress import router as progress_router
from .videos import router as videos_router

__all__ = ["files_router", "health_router", "progress_router", "videos_router"]
