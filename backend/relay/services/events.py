from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Iterable

logger = logging.getLogger(__name__)

_CLOSE = object()


def encode_frame(event: str, data: Any = None, ack: int | None = None) -> str:
    frame: dict[str, Any] = {"event": event, "data": data}
    if ack is not None:
        frame["ack"] = ack
    return json.dumps(frame)


class ConnectionHub:
    """In-memory outbound multiplexer, one bounded queue per live connection.

    Publishing never awaits a subscriber: a full or vanished queue is skipped so
    one slow client cannot hold up delivery to the others.
    """

    def __init__(self, queue_size: int = 256) -> None:
        self._queue_size = queue_size
        self._queues: Dict[str, asyncio.Queue] = {}

    def register(self, connection_id: str) -> None:
        self._queues[connection_id] = asyncio.Queue(maxsize=self._queue_size)

    def unregister(self, connection_id: str) -> None:
        queue = self._queues.pop(connection_id, None)
        if queue is None:
            return
        try:
            queue.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            pass

    def send(self, connection_id: str, event: str, data: Any = None, ack: int | None = None) -> bool:
        queue = self._queues.get(connection_id)
        if queue is None:
            logger.debug("Dropping %s for unknown connection %s", event, connection_id)
            return False
        try:
            queue.put_nowait(encode_frame(event, data, ack))
        except asyncio.QueueFull:
            logger.warning("Outbound queue full for %s, dropping %s", connection_id, event)
            return False
        return True

    def publish(self, targets: Iterable[str], event: str, data: Any = None) -> int:
        delivered = 0
        for connection_id in targets:
            if self.send(connection_id, event, data):
                delivered += 1
        return delivered

    async def stream(self, connection_id: str) -> AsyncIterator[str]:
        queue = self._queues.get(connection_id)
        if queue is None:
            return
        while True:
            payload = await queue.get()
            if payload is _CLOSE:
                break
            yield payload

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._queues
