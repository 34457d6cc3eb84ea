"""Database layer - engine, declarative base and immutability listeners."""

from commission_kernel.db.base import UUID, Base, UTCDateTime, UUIDString
from commission_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "Base",
    "UUIDString",
    "UTCDateTime",
    "UUID",
]
