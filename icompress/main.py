"""
iCompressVideo - HTTP + WebSocket server entry point.
"""

import uvicorn

from icompress.core.config import get_settings


def main():
    settings = get_settings()
    uvicorn.run(
        "icompress.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
