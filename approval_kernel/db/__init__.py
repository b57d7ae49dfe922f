"""Database layer: declarative base, column types, engine lifecycle."""

from approval_kernel.db.base import AwareDateTime, Base, UUIDString
from approval_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    make_session_factory,
    session_scope,
)

__all__ = [
    "AwareDateTime",
    "Base",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "init_engine_from_url",
    "make_session_factory",
    "session_scope",
]
