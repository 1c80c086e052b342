"""Persistence - repository interface, SQLite implementation, and the audit event log."""

from lodestar.store.event_log import EventLogWriter
from lodestar.store.repository import (
    DuplicateActiveInterventionError,
    NotFoundError,
    Repository,
    RepositoryError,
)
from lodestar.store.sqlite import SQLiteRepository

__all__ = [
    "DuplicateActiveInterventionError",
    "EventLogWriter",
    "NotFoundError",
    "Repository",
    "RepositoryError",
    "SQLiteRepository",
]
