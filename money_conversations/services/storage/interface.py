"""
Abstract Storage Interface

DESIGN DECISION: The store persists the WHOLE entity graph on every write
and re-reads it on every reload. A backend therefore only needs two
operations: load a snapshot and save a snapshot. This allows us to:
1. Keep the graph in a local JSON file for everyday use
2. Use in-memory storage for testing
3. Swap in another backend without touching store logic

Backends are synchronous: save() must not return until the snapshot is
durable, so a load() issued right after observes it.
"""

from abc import ABC, abstractmethod

from money_conversations.errors import NotFoundError, StorageError
from money_conversations.models.entities import GraphSnapshot


class GraphBackend(ABC):
    """
    Abstract interface for entity graph persistence.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    def load(self) -> GraphSnapshot:
        """
        Read the persisted graph.

        Returns:
            The stored snapshot, or an empty one if nothing was saved yet

        Raises:
            StorageError: If the stored data cannot be read or is invalid
        """

    @abstractmethod
    def save(self, snapshot: GraphSnapshot) -> None:
        """
        Replace the persisted graph with `snapshot`.

        Either the whole snapshot is written or the previous one is kept.

        Raises:
            StorageError: If the write fails
        """

    def close(self) -> None:
        """Release any resources held by the backend."""


class CorruptStoreError(StorageError):
    """Persisted data exists but does not parse as an entity graph."""


__all__ = [
    "CorruptStoreError",
    "GraphBackend",
    "NotFoundError",
    "StorageError",
]
