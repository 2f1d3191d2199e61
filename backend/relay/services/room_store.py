from __future__ import annotations

import secrets
import string
from datetime import datetime
from typing import Callable

from relay.models.room import (
    NO_MESSAGES_YET,
    Message,
    Room,
    RoomSummary,
    utcnow,
)

ROOM_ID_PREFIX = "room-"


def _generate_room_id(length: int = 12) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return ROOM_ID_PREFIX + "".join(secrets.choice(alphabet) for _ in range(length))


class RoomStore:
    """In-memory owner of every room and its message log.

    All operations accept ids of rooms that may not exist: joining before
    creation and dashboards looking at a just-deleted room are normal traffic.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._rooms: dict[str, Room] = {}
        self._clock = clock

    def create_room(self) -> str:
        room_id = self._unique_room_id()
        self._rooms[room_id] = Room(id=room_id, created_at=self._clock())
        return room_id

    def get_or_create(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(id=room_id, created_at=self._clock())
            self._rooms[room_id] = room
        return room

    def has_room(self, room_id: str) -> bool:
        return room_id in self._rooms

    def append_message(self, room_id: str, role: str, text: str, image: str | None = None) -> Message:
        room = self.get_or_create(room_id)
        created_at = self._clock()
        if room.messages and created_at < room.messages[-1].created_at:
            created_at = room.messages[-1].created_at

        message = Message(room_id=room_id, role=role, text=text, image=image, created_at=created_at)
        room.messages.append(message)
        room.latest_message = text
        room.latest_at = created_at
        return message

    def get_history(self, room_id: str) -> list[Message]:
        room = self._rooms.get(room_id)
        if room is None:
            return []
        return list(room.messages)

    def delete_room(self, room_id: str) -> bool:
        return self._rooms.pop(room_id, None) is not None

    def list_summaries(self) -> list[RoomSummary]:
        return [self._summarize(room) for room in self._rooms.values()]

    def set_status(self, room_id: str, status: str) -> bool:
        room = self._rooms.get(room_id)
        if room is None:
            return False
        room.status = status
        return True

    def set_priority(self, room_id: str, priority: str) -> bool:
        room = self._rooms.get(room_id)
        if room is None:
            return False
        room.priority = priority
        return True

    def get_status(self, room_id: str) -> str | None:
        room = self._rooms.get(room_id)
        return room.status if room else None

    @staticmethod
    def _summarize(room: Room) -> RoomSummary:
        # An attachment-only message has empty text; fall back like an empty room.
        latest = room.latest_message or NO_MESSAGES_YET
        return RoomSummary(
            id=room.id,
            latest_message=latest,
            status=room.status,
            priority=room.priority,
            updated_at=room.latest_at or room.created_at,
            message_count=len(room.messages),
        )

    def _unique_room_id(self) -> str:
        while True:
            room_id = _generate_room_id()
            if room_id not in self._rooms:
                return room_id

    def __len__(self) -> int:
        return len(self._rooms)
