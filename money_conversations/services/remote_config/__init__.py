"""Remote configuration services package."""

from money_conversations.services.remote_config.client import (
    ConfigRetrieval,
    ConfigRetrievalState,
    RateLimitedError,
    RemoteConfigClient,
)

__all__ = [
    "ConfigRetrieval",
    "ConfigRetrievalState",
    "RateLimitedError",
    "RemoteConfigClient",
]
