"""Persistence primitives: ORM bases, column types, engine and row guards."""

from backoffice_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from backoffice_kernel.db.engine import create_tables, get_engine, init_engine_from_url, session_scope

__all__ = [
    "Base",
    "TrackedBase",
    "UUID",
    "UUIDString",
    "UTCDateTime",
    "init_engine_from_url",
    "get_engine",
    "session_scope",
    "create_tables",
]
