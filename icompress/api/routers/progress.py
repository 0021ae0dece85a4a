import asyncio

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from icompress.services import ProgressHub, Subscription

logger = structlog.get_logger()
router = APIRouter(tags=["Progress"])


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        event = await subscription.get()
        try:
            await websocket.send_json(
                {"event": "progress", "data": {"percentage": event.percentage, "job_id": event.job_id}}
            )
        except (WebSocketDisconnect, RuntimeError):
            return


@router.websocket("/ws/progress")
async def progress_stream(websocket: WebSocket, client_id: str | None = None):
    """
    Push progress events for the jobs started with this connection's client_id.

    The first message is {"event": "connect", "data": {"client_id": ...}}; pass
    that id as the client_id query parameter of /upload.
    """
    hub: ProgressHub = websocket.app.state.progress_hub
    await websocket.accept()
    subscription = hub.subscribe(client_id)
    await websocket.send_json({"event": "connect", "data": {"client_id": subscription.client_id}})

    sender = asyncio.create_task(_forward(websocket, subscription))
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
        hub.unsubscribe(subscription)
