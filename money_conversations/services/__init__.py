"""Services package."""

from money_conversations.services.image import ImageProcessor
from money_conversations.services.remote_config import (
    ConfigRetrieval,
    ConfigRetrievalState,
    RemoteConfigClient,
)
from money_conversations.services.storage import (
    CorruptStoreError,
    GraphBackend,
    InMemoryBackend,
    JsonFileBackend,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Image services
    "ImageProcessor",
    # Remote configuration
    "ConfigRetrieval",
    "ConfigRetrievalState",
    "RemoteConfigClient",
    # Storage services
    "CorruptStoreError",
    "GraphBackend",
    "InMemoryBackend",
    "JsonFileBackend",
    "NotFoundError",
    "StorageError",
]
