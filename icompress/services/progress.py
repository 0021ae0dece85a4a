import asyncio
import threading
import uuid
from typing import Callable

import structlog

from icompress.models import ProgressEvent

logger = structlog.get_logger()


class Subscription:
    """Queue of progress events for one connected client."""

    def __init__(self, client_id: str, loop: asyncio.AbstractEventLoop, maxsize: int = 100) -> None:
        self.client_id = client_id
        self.loop = loop
        self.queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize=maxsize)

    def offer(self, event: ProgressEvent) -> None:
        # Runs on the subscription's loop; oldest event is dropped when full
        if self.queue.full():
            self.queue.get_nowait()
        self.queue.put_nowait(event)

    async def get(self) -> ProgressEvent:
        return await self.queue.get()


class ProgressHub:
    """
    Routes progress events to the client that started the job.

    publish() may be called from any thread and never blocks; events for a
    client that is not (or no longer) connected are dropped.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self._subscriptions: dict[str, Subscription] = {}
        self._lock = threading.Lock()

    def subscribe(self, client_id: str | None = None) -> Subscription:
        """
        Register a connection under client_id.

        An id already held by a live connection is suffixed so the existing
        client keeps its events; callers must use the returned client_id.
        """
        loop = asyncio.get_running_loop()
        with self._lock:
            requested = client_id
            client_id = client_id or uuid.uuid4().hex
            while client_id in self._subscriptions:
                client_id = f"{requested}-{uuid.uuid4().hex[:8]}" if requested else uuid.uuid4().hex
            subscription = Subscription(client_id, loop, self.queue_size)
            self._subscriptions[client_id] = subscription
        if requested and client_id != requested:
            logger.warning("progress_client_id_taken", requested=requested, client_id=client_id)
        logger.info("progress_client_connected", client_id=client_id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if self._subscriptions.get(subscription.client_id) is subscription:
                del self._subscriptions[subscription.client_id]
        logger.info("progress_client_disconnected", client_id=subscription.client_id)

    def is_connected(self, client_id: str) -> bool:
        with self._lock:
            return client_id in self._subscriptions

    def publish(self, client_id: str, event: ProgressEvent) -> None:
        with self._lock:
            subscription = self._subscriptions.get(client_id)
        if subscription is None:
            return
        try:
            subscription.loop.call_soon_threadsafe(subscription.offer, event)
        except RuntimeError:
            # Loop already closed: the client is gone
            logger.debug("progress_dropped", client_id=client_id, job_id=event.job_id)

    def sink_for(self, client_id: str | None, job_id: str) -> Callable[[float], None]:
        if not client_id:
            return lambda percentage: None

        def sink(percentage: float) -> None:
            self.publish(client_id, ProgressEvent(job_id=job_id, percentage=percentage))

        return sink
