"""Database layer: declarative base, engine, sessions and immutability listeners."""

from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_read_session_factory,
    get_session,
    get_session_factory,
    init_engine_from_url,
    read_session_scope,
    reset_engine,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_read_session_factory",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "read_session_scope",
    "reset_engine",
    "session_scope",
]
