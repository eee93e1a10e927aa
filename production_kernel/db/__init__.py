"""Database layer: declarative base and engine/session management."""

from production_kernel.db.base import Base, TrackedBase, new_id
from production_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session_factory,
    init_engine_from_config,
    init_engine_from_url,
    reset_engine,
)

__all__ = [
    "Base",
    "TrackedBase",
    "new_id",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session_factory",
    "init_engine_from_config",
    "init_engine_from_url",
    "reset_engine",
]
