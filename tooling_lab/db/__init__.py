"""Database engine and session helpers."""

from tooling_lab.db.session import (
    Base,
    close_db,
    create_engine,
    create_session_factory,
    init_db,
)

__all__ = [
    "Base",
    "close_db",
    "create_engine",
    "create_session_factory",
    "init_db",
]
