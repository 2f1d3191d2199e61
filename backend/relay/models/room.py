from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

ROLE_ASKER = "asker"
ROLE_RESPONDER = "responder"
ROLES = (ROLE_ASKER, ROLE_RESPONDER)

STATUS_ACTIVE = "active"
STATUS_PENDING = "pending"
STATUS_RESOLVED = "resolved"
STATUSES = (STATUS_ACTIVE, STATUS_PENDING, STATUS_RESOLVED)

PRIORITY_LOW = "low"
PRIORITY_NORMAL = "normal"
PRIORITY_HIGH = "high"
PRIORITIES = (PRIORITY_LOW, PRIORITY_NORMAL, PRIORITY_HIGH)

NO_MESSAGES_YET = "No messages yet"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Message:
    room_id: str
    role: str
    text: str
    created_at: datetime
    image: str | None = None


@dataclass
class Room:
    id: str
    created_at: datetime = field(default_factory=utcnow)
    status: str = STATUS_ACTIVE
    priority: str = PRIORITY_NORMAL
    messages: list[Message] = field(default_factory=list)
    latest_message: str | None = None
    latest_at: datetime | None = None


@dataclass(frozen=True)
class RoomSummary:
    id: str
    latest_message: str
    status: str
    priority: str
    updated_at: datetime
    message_count: int
