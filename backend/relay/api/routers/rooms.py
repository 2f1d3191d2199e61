from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from relay.api.dependencies import get_event_router
from relay.schemas.chat import MessageRead, RoomCreated, RoomSummaryRead, RoomUpdate
from relay.services.router import EventRouter

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.post("", response_model=RoomCreated, status_code=status.HTTP_201_CREATED)
async def create_room(events: EventRouter = Depends(get_event_router)):
    return RoomCreated(id=events.create_room())


@router.get("", response_model=list[RoomSummaryRead])
async def list_rooms(events: EventRouter = Depends(get_event_router)):
    return [RoomSummaryRead.from_summary(summary) for summary in events.store.list_summaries()]


@router.get("/{room_id}/messages", response_model=list[MessageRead])
async def room_messages(room_id: str, events: EventRouter = Depends(get_event_router)):
    return [MessageRead.from_message(message) for message in events.store.get_history(room_id)]


@router.patch("/{room_id}", response_model=RoomSummaryRead)
async def update_room(room_id: str, payload: RoomUpdate, events: EventRouter = Depends(get_event_router)):
    if not events.update_room(room_id, status=payload.status, priority=payload.priority):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    summary = next(s for s in events.store.list_summaries() if s.id == room_id)
    return RoomSummaryRead.from_summary(summary)


@router.delete("/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_room(room_id: str, events: EventRouter = Depends(get_event_router)):
    if not events.delete_room(room_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
