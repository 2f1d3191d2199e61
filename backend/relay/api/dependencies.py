from __future__ import annotations

from fastapi import Request
from starlette.requests import HTTPConnection

from relay.services.router import EventRouter


def get_event_router(request: Request) -> EventRouter:
    return request.app.state.event_router


def event_router_for(connection: HTTPConnection) -> EventRouter:
    return connection.app.state.event_router
