"""Database package for LearnLoop."""

from .base import (
    Base,
    close_all,
    create_engine_from_settings,
    create_session_maker,
    get_db_session,
    get_session_maker,
    init_database,
)
from .repository import Repository

__all__ = [
    "Base",
    "close_all",
    "create_engine_from_settings",
    "create_session_maker",
    "get_db_session",
    "get_session_maker",
    "init_database",
    "Repository",
]
