from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from relay.models.room import Message, RoomSummary

Role = Literal["asker", "responder"]
Status = Literal["active", "pending", "resolved"]
Priority = Literal["low", "normal", "high"]


# ---------------- inbound ----------------


class RoomRef(BaseModel):
    roomId: str = Field(min_length=1)


class PostMessage(RoomRef):
    msg: str = ""
    image: str | None = None

    @model_validator(mode="after")
    def _text_or_image(self) -> "PostMessage":
        if not self.msg and not self.image:
            raise ValueError("msg or image is required")
        return self


class TypingEvent(RoomRef):
    userName: str | None = Field(default=None, max_length=64)


class StatusUpdate(RoomRef):
    status: Status


class PriorityUpdate(RoomRef):
    priority: Priority


class RoomUpdate(BaseModel):
    status: Status | None = None
    priority: Priority | None = None


# ---------------- outbound ----------------


class MessageRead(BaseModel):
    roomId: str
    role: Role
    message: str
    image: str | None = None
    timestamp: datetime

    @classmethod
    def from_message(cls, message: Message) -> "MessageRead":
        return cls(
            roomId=message.room_id,
            role=message.role,
            message=message.text,
            image=message.image,
            timestamp=message.created_at,
        )


class AdminMessage(BaseModel):
    roomId: str
    msg: str
    image: str | None = None


class RoomSummaryRead(BaseModel):
    id: str
    latestMessage: str
    status: Status
    priority: Priority
    updatedAt: datetime
    messageCount: int

    @classmethod
    def from_summary(cls, summary: RoomSummary) -> "RoomSummaryRead":
        return cls(
            id=summary.id,
            latestMessage=summary.latest_message,
            status=summary.status,
            priority=summary.priority,
            updatedAt=summary.updated_at,
            messageCount=summary.message_count,
        )


class RoomCreated(BaseModel):
    id: str


class RoomNotice(BaseModel):
    roomId: str


class ErrorNotice(BaseModel):
    event: str | None = None
    detail: str
