import asyncio
import json
import logging
from typing import AsyncIterator

logger = logging.getLogger(__name__)

# столько событий держим для отставшего подписчика, дальше старые выбрасываются
QUEUE_SIZE = 100


class _Hub:
    """
    События модерации для админки (SSE). У каждого подписчика своя очередь,
    чтобы два открытых дашборда получали одни и те же события.
    """

    def __init__(self, queue_size: int = QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._subscribers: "set[asyncio.Queue[str]]" = set()

    async def publish(self, event: str, payload: dict) -> None:
        data = json.dumps(payload, ensure_ascii=False, default=str)
        # формат SSE: event: <name>\ndata: <json>\n\n
        msg = f"event: {event}\ndata: {data}\n\n"
        for queue in list(self._subscribers):
            if queue.full():
                queue.get_nowait()
                logger.warning("SSE subscriber is lagging, dropped oldest event")
            queue.put_nowait(msg)

    async def subscribe(self) -> AsyncIterator[str]:
        queue: "asyncio.Queue[str]" = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers.discard(queue)


hub = _Hub()
