"""Snapshot persistence adapters and the activity repository."""

from .repository import ActivityRepository, ActivitySummary
from .stores import JsonFileStore, MemoryStore, PersistenceAdapter

__all__ = [
    "ActivityRepository",
    "ActivitySummary",
    "JsonFileStore",
    "MemoryStore",
    "PersistenceAdapter",
]
