"""
Storage Services Package

Provides the graph backend interface and its implementations.
The local JSON file is the default backend; the in-memory one is for tests.
"""

from money_conversations.services.storage.interface import (
    CorruptStoreError,
    GraphBackend,
    NotFoundError,
    StorageError,
)
from money_conversations.services.storage.json_file import JsonFileBackend
from money_conversations.services.storage.memory import InMemoryBackend

__all__ = [
    # Interface
    "GraphBackend",
    # Exceptions
    "CorruptStoreError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryBackend",
    "JsonFileBackend",
]
