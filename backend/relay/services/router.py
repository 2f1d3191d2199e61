from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from relay.core.exceptions import AttachmentError, MalformedEventError
from relay.models.room import ROLE_ASKER, ROLE_RESPONDER, STATUS_ACTIVE, STATUS_RESOLVED
from relay.schemas.chat import (
    AdminMessage,
    ErrorNotice,
    MessageRead,
    PostMessage,
    PriorityUpdate,
    RoomNotice,
    RoomRef,
    RoomSummaryRead,
    StatusUpdate,
    TypingEvent,
)
from relay.services.attachments import AttachmentResolver
from relay.services.events import ConnectionHub
from relay.services.presence import MODE_PARTICIPANT, Connection, PresenceTracker, TypingMarker
from relay.services.room_store import RoomStore

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
Handler = Callable[[str, Any, Optional[int]], Awaitable[None]]

# inbound event -> (role, participant event, dashboard event)
POST_EVENTS = {
    "question": (ROLE_ASKER, "question", "adminQuestion"),
    "response": (ROLE_RESPONDER, "response", "adminResponse"),
}


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json")


def _display_name(marker: TypingMarker) -> str | None:
    # Anonymous typists are tracked under their connection id.
    return None if marker.name == marker.connection_id else marker.name


class EventRouter:
    """Validates inbound client events, applies them and fans the results out.

    Room posts are ordered per room by a chain of slots taken at arrival: a
    post resolves its attachment without holding anything, then waits for the
    post that arrived before it, appends, publishes and releases its slot.
    """

    def __init__(
        self,
        store: RoomStore,
        presence: PresenceTracker,
        hub: ConnectionHub,
        resolver: AttachmentResolver,
        attachment_timeout: float = 15.0,
    ) -> None:
        self.store = store
        self.presence = presence
        self.hub = hub
        self.resolver = resolver
        self.attachment_timeout = attachment_timeout

        self._room_tails: Dict[str, asyncio.Event] = {}
        self._typing_timers: Dict[tuple[str, str], asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        self._handlers: Dict[str, Handler] = {
            "joinRoom": self._on_join_room,
            "leaveRoom": self._on_leave_room,
            "createRoom": self._on_create_room,
            "getMessages": self._on_get_messages,
            "question": self._on_question,
            "response": self._on_response,
            "typing": self._on_typing,
            "stopTyping": self._on_stop_typing,
            "deleteRoom": self._on_delete_room,
            "getRooms": self._on_get_rooms,
            "setRoomStatus": self._on_set_status,
            "setRoomPriority": self._on_set_priority,
        }

    # ---------------- connection lifecycle ----------------

    def connect(self, connection_id: str, mode: str = MODE_PARTICIPANT) -> Connection:
        self.hub.register(connection_id)
        connection = self.presence.connect(connection_id, mode)
        logger.info("New client connected: %s (%s)", connection_id, mode)
        return connection

    def disconnect(self, connection_id: str) -> None:
        for marker in self.presence.unsubscribe_all(connection_id):
            self._cancel_typing_timer(marker.room_id, marker.name)
            self._publish_typing("stopTyping", marker.room_id, _display_name(marker), marker.connection_id)
        self.hub.unregister(connection_id)
        logger.info("Client disconnected: %s", connection_id)

    # ---------------- dispatch ----------------

    def submit(self, connection_id: str, event: str, data: Any = None, ack: int | None = None) -> asyncio.Task:
        """Schedule an inbound event without waiting for it.

        Tasks start in submission order, so per-room slots are taken in
        arrival order even though handling overlaps.
        """
        task = asyncio.create_task(self.dispatch(connection_id, event, data, ack))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def dispatch(self, connection_id: str, event: str, data: Any = None, ack: int | None = None) -> None:
        handler = self._handlers.get(event)
        try:
            if handler is None:
                raise MalformedEventError(event, "unknown event")
            await handler(connection_id, data, ack)
        except MalformedEventError as exc:
            logger.info("Rejected %s from %s: %s", exc.event, connection_id, exc.detail)
            self.hub.send(connection_id, "error", _dump(ErrorNotice(event=exc.event, detail=exc.detail)))
        except Exception:
            logger.exception("Unhandled error while processing %s from %s", event, connection_id)

    async def drain(self) -> None:
        """Wait for every submitted event to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @staticmethod
    def _parse(model: Type[ModelT], event: str, data: Any) -> ModelT:
        # Room-scoped events may carry the bare room id instead of an object.
        if isinstance(data, str):
            data = {"roomId": data}
        if data is None:
            data = {}
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'payload'}: {err['msg']}" for err in exc.errors()
            )
            raise MalformedEventError(event, problems) from exc

    # ---------------- room operations shared with the REST api ----------------

    def create_room(self) -> str:
        room_id = self.store.create_room()
        logger.info("Created room %s", room_id)
        return room_id

    def delete_room(self, room_id: str) -> bool:
        if not self.store.delete_room(room_id):
            logger.info("Room not found: %s", room_id)
            return False

        logger.info("Deleting room from server: %s", room_id)
        for key in [key for key in self._typing_timers if key[0] == room_id]:
            self._cancel_typing_timer(*key)
        self.presence.clear_room(room_id)

        targets = self.presence.participants(room_id) | self.presence.dashboards()
        self.hub.publish(targets, "roomDeleted", _dump(RoomNotice(roomId=room_id)))
        self.broadcast_rooms()
        return True

    def update_room(self, room_id: str, status: str | None = None, priority: str | None = None) -> bool:
        if not self.store.has_room(room_id):
            return False
        if status is not None:
            self.store.set_status(room_id, status)
        if priority is not None:
            self.store.set_priority(room_id, priority)
        self.broadcast_rooms()
        return True

    def rooms_payload(self) -> list[dict[str, Any]]:
        return [_dump(RoomSummaryRead.from_summary(summary)) for summary in self.store.list_summaries()]

    def broadcast_rooms(self) -> None:
        self.hub.publish(self.presence.connections(), "roomsList", self.rooms_payload())

    # ---------------- handlers ----------------

    async def _on_join_room(self, connection_id: str, data: Any, ack: int | None) -> None:
        ref = self._parse(RoomRef, "joinRoom", data)
        self.presence.subscribe(connection_id, ref.roomId)
        logger.info("Client %s joined room %s", connection_id, ref.roomId)
        observers = self.presence.dashboards() - {connection_id}
        self.hub.publish(observers, "userJoined", _dump(RoomNotice(roomId=ref.roomId)))

    async def _on_leave_room(self, connection_id: str, data: Any, ack: int | None) -> None:
        ref = self._parse(RoomRef, "leaveRoom", data)
        if self.presence.unsubscribe(connection_id, ref.roomId):
            logger.info("Client %s left room %s", connection_id, ref.roomId)

    async def _on_create_room(self, connection_id: str, data: Any, ack: int | None) -> None:
        room_id = self.create_room()
        if ack is not None:
            self.hub.send(connection_id, "ack", room_id, ack=ack)
        else:
            self.hub.send(connection_id, "roomCreated", _dump(RoomNotice(roomId=room_id)))

    async def _on_get_messages(self, connection_id: str, data: Any, ack: int | None) -> None:
        ref = self._parse(RoomRef, "getMessages", data)
        self.hub.send(connection_id, "chatHistory", self._history_payload(ref.roomId))

    def _history_payload(self, room_id: str) -> list[dict[str, Any]]:
        return [_dump(MessageRead.from_message(message)) for message in self.store.get_history(room_id)]

    async def _on_question(self, connection_id: str, data: Any, ack: int | None) -> None:
        await self._post("question", data)

    async def _on_response(self, connection_id: str, data: Any, ack: int | None) -> None:
        await self._post("response", data)

    async def _post(self, event: str, data: Any) -> None:
        role, room_event, admin_event = POST_EVENTS[event]
        payload = self._parse(PostMessage, event, data)
        room_id = payload.roomId

        previous = self._room_tails.get(room_id)
        slot = asyncio.Event()
        self._room_tails[room_id] = slot
        existed_on_arrival = self.store.has_room(room_id)
        try:
            image_url = await self._resolve_attachment(payload.image) if payload.image else None
            if previous is not None:
                await previous.wait()

            if existed_on_arrival and not self.store.has_room(room_id):
                logger.info("Discarding %s for room %s deleted while it was pending", event, room_id)
                return

            message = self.store.append_message(room_id, role, payload.msg, image_url)
            if role == ROLE_ASKER and self.store.get_status(room_id) == STATUS_RESOLVED:
                self.store.set_status(room_id, STATUS_ACTIVE)

            participants = self.presence.participants(room_id)
            self.hub.publish(participants, room_event, _dump(MessageRead.from_message(message)))
            # Full log so participants can re-sync after missed frames.
            self.hub.publish(participants, "chatHistory", self._history_payload(room_id))
            admin = AdminMessage(roomId=room_id, msg=payload.msg, image=image_url)
            self.hub.publish(self.presence.dashboards(), admin_event, _dump(admin))
            self.broadcast_rooms()
        finally:
            slot.set()
            if self._room_tails.get(room_id) is slot:
                self._room_tails.pop(room_id, None)

    async def _resolve_attachment(self, blob: str) -> str | None:
        try:
            return await asyncio.wait_for(self.resolver.upload(blob), timeout=self.attachment_timeout)
        except AttachmentError as exc:
            logger.warning("Error uploading image attachment: %s", exc)
        except asyncio.TimeoutError:
            logger.warning("Image upload timed out after %.1fs", self.attachment_timeout)
        except Exception:
            logger.exception("Image upload failed unexpectedly")
        return None

    async def _on_typing(self, connection_id: str, data: Any, ack: int | None) -> None:
        payload = self._parse(TypingEvent, "typing", data)
        name = payload.userName or connection_id
        marker = self.presence.mark_typing(payload.roomId, name, connection_id)
        self._schedule_typing_expiry(marker)
        self._publish_typing("typing", payload.roomId, payload.userName, connection_id)

    async def _on_stop_typing(self, connection_id: str, data: Any, ack: int | None) -> None:
        payload = self._parse(TypingEvent, "stopTyping", data)
        name = payload.userName or connection_id
        self.presence.clear_typing(payload.roomId, name)
        self._cancel_typing_timer(payload.roomId, name)
        self._publish_typing("stopTyping", payload.roomId, payload.userName, connection_id)

    async def _on_delete_room(self, connection_id: str, data: Any, ack: int | None) -> None:
        ref = self._parse(RoomRef, "deleteRoom", data)
        self.delete_room(ref.roomId)

    async def _on_get_rooms(self, connection_id: str, data: Any, ack: int | None) -> None:
        self.broadcast_rooms()

    async def _on_set_status(self, connection_id: str, data: Any, ack: int | None) -> None:
        update = self._parse(StatusUpdate, "setRoomStatus", data)
        self.update_room(update.roomId, status=update.status)

    async def _on_set_priority(self, connection_id: str, data: Any, ack: int | None) -> None:
        update = self._parse(PriorityUpdate, "setRoomPriority", data)
        self.update_room(update.roomId, priority=update.priority)

    # ---------------- typing helpers ----------------

    def _publish_typing(self, event: str, room_id: str, user_name: str | None, sender_id: str) -> None:
        targets = self.presence.participants(room_id) - {sender_id}
        self.hub.publish(targets, event, {"roomId": room_id, "userName": user_name})

    def _schedule_typing_expiry(self, marker: TypingMarker) -> None:
        self._cancel_typing_timer(marker.room_id, marker.name)
        loop = asyncio.get_running_loop()
        self._typing_timers[(marker.room_id, marker.name)] = loop.call_later(
            self.presence.typing_timeout, self._expire_typing, marker
        )

    def _cancel_typing_timer(self, room_id: str, name: str) -> None:
        handle = self._typing_timers.pop((room_id, name), None)
        if handle is not None:
            handle.cancel()

    def _expire_typing(self, marker: TypingMarker) -> None:
        self._typing_timers.pop((marker.room_id, marker.name), None)
        if self.presence.superseded(marker):
            return
        self.presence.clear_typing(marker.room_id, marker.name)
        self._publish_typing("stopTyping", marker.room_id, _display_name(marker), marker.connection_id)
