from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from relay.api.routers import rooms, ws
from relay.core.config import Settings, settings as default_settings
from relay.core.logging import setup_logging
from relay.db.session import get_engine, ping_database
from relay.services.attachments import AttachmentResolver, build_resolver
from relay.services.events import ConnectionHub
from relay.services.notifications import EmailNotifier
from relay.services.presence import PresenceTracker
from relay.services.room_store import RoomStore
from relay.services.router import EventRouter

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    resolver: AttachmentResolver | None = None,
    notifier: EmailNotifier | None = None,
) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings.log_level)

    engine = get_engine(settings.database_url)
    event_router = EventRouter(
        store=RoomStore(),
        presence=PresenceTracker(typing_timeout=settings.typing_timeout_seconds),
        hub=ConnectionHub(queue_size=settings.outbound_queue_size),
        resolver=resolver or build_resolver(settings),
        attachment_timeout=settings.attachment_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if ping_database(engine):
            logger.info("Connected to database %s", engine.url.render_as_string(hide_password=True))
        yield
        await event_router.drain()
        engine.dispose()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.event_router = event_router
    app.state.notifier = notifier or EmailNotifier(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def healthcheck() -> dict[str, str]:
        database = "ok" if ping_database(engine) else "unavailable"
        return {"status": "ok", "database": database}

    app.include_router(rooms.router)
    app.include_router(ws.router)
    return app


app = create_app()
