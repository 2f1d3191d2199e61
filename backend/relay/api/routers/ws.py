from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import AsyncIterator

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from relay.api.dependencies import event_router_for
from relay.services.notifications import EmailNotifier
from relay.services.presence import MODE_PARTICIPANT, MODES

logger = logging.getLogger(__name__)

router = APIRouter(tags=["socket"])


async def _pump(websocket: WebSocket, frames: AsyncIterator[str]) -> None:
    try:
        async for frame in frames:
            await websocket.send_text(frame)
    except (WebSocketDisconnect, RuntimeError) as exc:
        logger.debug("Stopped writing to closed socket: %s", exc)


def _notify_in_background(notifier: EmailNotifier, connection_id: str) -> None:
    if not notifier.enabled:
        return
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, notifier.notify_connected, connection_id)
    future.add_done_callback(_log_notify_failure)


def _log_notify_failure(future: asyncio.Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Connect notification crashed: %r", exc)


@router.websocket("/ws")
async def relay_socket(websocket: WebSocket, mode: str = Query(MODE_PARTICIPANT)):
    if mode not in MODES:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    events = event_router_for(websocket)
    await websocket.accept()
    connection_id = uuid.uuid4().hex
    events.connect(connection_id, mode)
    _notify_in_background(websocket.app.state.notifier, connection_id)

    writer = asyncio.create_task(_pump(websocket, events.hub.stream(connection_id)))
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                events.hub.send(connection_id, "error", {"event": None, "detail": "frame must be text"})
                continue
            try:
                frame = json.loads(raw)
            except ValueError:
                events.hub.send(connection_id, "error", {"event": None, "detail": "frame is not valid JSON"})
                continue
            if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
                events.hub.send(connection_id, "error", {"event": None, "detail": "frame needs an event name"})
                continue

            ack = frame.get("ack")
            events.submit(connection_id, frame["event"], frame.get("data"), ack if isinstance(ack, int) else None)
    except WebSocketDisconnect:
        pass
    finally:
        events.disconnect(connection_id)
        writer.cancel()
