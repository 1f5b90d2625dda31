"""
In-Memory Storage Implementation

Keeps the graph as serialized JSON rather than live objects, so every
load() hands out fresh records exactly like the file backend does and
callers cannot reach the stored state through a shared reference.
"""

from typing import Optional

from money_conversations.models.entities import GraphSnapshot
from money_conversations.services.storage.interface import GraphBackend


class InMemoryBackend(GraphBackend):
    """Volatile backend for tests and throwaway stores."""

    def __init__(self, initial: Optional[GraphSnapshot] = None):
        self._payload: Optional[str] = (
            initial.model_dump_json() if initial is not None else None
        )
        self.save_count = 0

    def load(self) -> GraphSnapshot:
        if self._payload is None:
            return GraphSnapshot()
        return GraphSnapshot.model_validate_json(self._payload)

    def save(self, snapshot: GraphSnapshot) -> None:
        self._payload = snapshot.model_dump_json()
        self.save_count += 1
