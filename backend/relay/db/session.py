from __future__ import annotations

import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from relay.core.config import settings

logger = logging.getLogger(__name__)


def _build_engine(url: str) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(url, future=True, connect_args=connect_args, pool_pre_ping=True, pool_recycle=1800,)


def get_engine(url: str | None = None) -> Engine:
    return _build_engine(url or settings.database_url)


def ping_database(engine: Engine) -> bool:
    """Return whether the provisioned database answers a trivial query.

    Chat rooms are held in memory; the database is only provisioned, so an
    unreachable database is reported but never fatal.
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Database connection error: %s", exc)
        return False
    return True
