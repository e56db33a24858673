"""Relational query layer for session state."""

from .protocol import Row, SessionQueries
from .sqlite import SCHEMA, SessionStore, SqliteSessionQueries

__all__ = ["Row", "SCHEMA", "SessionQueries", "SessionStore", "SqliteSessionQueries"]
