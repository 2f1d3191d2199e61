from __future__ import annotations

import json

import pytest

from relay.core.exceptions import AttachmentError
from relay.services.events import ConnectionHub
from relay.services.presence import PresenceTracker
from relay.services.room_store import RoomStore
from relay.services.router import EventRouter


class RecordingHub(ConnectionHub):
    """ConnectionHub that also keeps every delivered frame per connection."""

    def __init__(self) -> None:
        super().__init__(queue_size=1000)
        self.frames: dict[str, list[dict]] = {}

    def send(self, connection_id, event, data=None, ack=None):
        delivered = super().send(connection_id, event, data, ack)
        if delivered:
            frame = json.loads(json.dumps({"event": event, "data": data, "ack": ack}))
            self.frames.setdefault(connection_id, []).append(frame)
        return delivered

    def events_for(self, connection_id: str, event: str | None = None) -> list[dict]:
        frames = self.frames.get(connection_id, [])
        if event is None:
            return frames
        return [frame for frame in frames if frame["event"] == event]

    def clear(self) -> None:
        self.frames.clear()


class StaticResolver:
    def __init__(self, url: str = "https://res.cloudinary.com/demo/image/upload/chat_images/a.png") -> None:
        self.url = url
        self.calls: list[str] = []

    async def upload(self, blob: str) -> str:
        self.calls.append(blob)
        return self.url


class FailingResolver:
    async def upload(self, blob: str) -> str:
        raise AttachmentError("network unreachable")


@pytest.fixture
def hub() -> RecordingHub:
    return RecordingHub()


@pytest.fixture
def make_router(hub):
    def _make(resolver=None, typing_timeout: float = 8.0, attachment_timeout: float = 1.0) -> EventRouter:
        return EventRouter(
            store=RoomStore(),
            presence=PresenceTracker(typing_timeout=typing_timeout),
            hub=hub,
            resolver=resolver or StaticResolver(),
            attachment_timeout=attachment_timeout,
        )

    return _make
