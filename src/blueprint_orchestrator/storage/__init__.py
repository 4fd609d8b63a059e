"""Storage backends."""

from blueprint_orchestrator.storage.base import KeyValueStore
from blueprint_orchestrator.storage.memory import InMemoryStore
from blueprint_orchestrator.storage.postgres import PostgresStore

__all__ = [
    "InMemoryStore",
    "KeyValueStore",
    "PostgresStore",
]
