from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

MODE_PARTICIPANT = "participant"
MODE_DASHBOARD = "dashboard"
MODES = (MODE_PARTICIPANT, MODE_DASHBOARD)


@dataclass
class Connection:
    id: str
    mode: str = MODE_PARTICIPANT
    room_id: str | None = None


@dataclass(frozen=True)
class TypingMarker:
    room_id: str
    name: str
    connection_id: str
    deadline: float


class PresenceTracker:
    """Tracks live connections, their room subscription and typing markers."""

    def __init__(self, typing_timeout: float = 8.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.typing_timeout = typing_timeout
        self._clock = clock
        self._connections: dict[str, Connection] = {}
        self._rooms: dict[str, set[str]] = {}
        self._typing: dict[tuple[str, str], TypingMarker] = {}

    # ---------------- connections ----------------

    def connect(self, connection_id: str, mode: str = MODE_PARTICIPANT) -> Connection:
        connection = Connection(id=connection_id, mode=mode)
        self._connections[connection_id] = connection
        return connection

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def unsubscribe_all(self, connection_id: str) -> list[TypingMarker]:
        """Drop every subscription and typing marker owned by the connection.

        Returns the typing markers that were still live so the caller can tell
        the room the indicator is gone.
        """
        connection = self._connections.pop(connection_id, None)
        if connection is not None and connection.room_id is not None:
            self._leave(connection_id, connection.room_id)

        dropped = [marker for marker in self._typing.values() if marker.connection_id == connection_id]
        for marker in dropped:
            self._typing.pop((marker.room_id, marker.name), None)
        return dropped

    def subscribe(self, connection_id: str, room_id: str) -> None:
        connection = self._connections.get(connection_id)
        if connection is None:
            connection = self.connect(connection_id)
        if connection.room_id == room_id:
            return
        if connection.room_id is not None:
            self._leave(connection_id, connection.room_id)
        connection.room_id = room_id
        self._rooms.setdefault(room_id, set()).add(connection_id)

    def unsubscribe(self, connection_id: str, room_id: str) -> bool:
        connection = self._connections.get(connection_id)
        if connection is None or connection.room_id != room_id:
            return False
        self._leave(connection_id, room_id)
        connection.room_id = None
        return True

    def participants(self, room_id: str) -> set[str]:
        return set(self._rooms.get(room_id, ()))

    def dashboards(self) -> set[str]:
        return {cid for cid, conn in self._connections.items() if conn.mode == MODE_DASHBOARD}

    def connections(self) -> set[str]:
        return set(self._connections)

    def _leave(self, connection_id: str, room_id: str) -> None:
        members = self._rooms.get(room_id)
        if not members:
            return
        members.discard(connection_id)
        if not members:
            self._rooms.pop(room_id, None)

    # ---------------- typing ----------------

    def mark_typing(self, room_id: str, name: str, connection_id: str) -> TypingMarker:
        marker = TypingMarker(
            room_id=room_id,
            name=name,
            connection_id=connection_id,
            deadline=self._clock() + self.typing_timeout,
        )
        self._typing[(room_id, name)] = marker
        return marker

    def clear_typing(self, room_id: str, name: str) -> bool:
        return self._typing.pop((room_id, name), None) is not None

    def superseded(self, marker: TypingMarker) -> bool:
        current = self._typing.get((marker.room_id, marker.name))
        return current is not None and current != marker

    def typing_users_for(self, room_id: str) -> set[str]:
        self.expire_typing()
        return {name for (rid, name) in self._typing if rid == room_id}

    def expire_typing(self) -> list[TypingMarker]:
        now = self._clock()
        expired = [marker for marker in self._typing.values() if marker.deadline <= now]
        for marker in expired:
            self._typing.pop((marker.room_id, marker.name), None)
        return expired

    def clear_room(self, room_id: str) -> None:
        """Forget typing markers of a deleted room. Subscriptions stay until clients leave."""
        for key in [key for key in self._typing if key[0] == room_id]:
            self._typing.pop(key, None)
