"""
Application Wiring

create_app_components() is the one place the runtime object graph is built
from settings:

    Settings ──► logging (structlog, level from AppSettings)
             ──► JsonFileBackend ──► EntityStore ◄── AuditLogger
                                         │
                                         ▼
                                 ConversationQueries
             ──► RemoteConfigClient

The UI layer calls it once at startup and keeps the returned components;
close the store on shutdown.
"""

from typing import NamedTuple, Optional

import structlog

from money_conversations.audit import AuditLogger, configure_logging
from money_conversations.config import Settings, get_settings
from money_conversations.notifications import ChangeNotifier
from money_conversations.queries import ConversationQueries
from money_conversations.services.remote_config import RemoteConfigClient
from money_conversations.services.storage import GraphBackend, JsonFileBackend
from money_conversations.store import EntityStore

logger = structlog.get_logger(__name__)


class AppComponents(NamedTuple):
    store: EntityStore
    queries: ConversationQueries
    remote_config: RemoteConfigClient
    audit_logger: AuditLogger


def create_app_components(
    settings: Optional[Settings] = None,
    backend: Optional[GraphBackend] = None,
    open_store: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Root settings; the cached get_settings() when omitted
        backend: Storage backend; the JSON file at store.graph_path when omitted
        open_store: Load the graph before returning

    Raises:
        StorageError: If open_store is set and the graph cannot be loaded
    """
    settings = settings or get_settings()
    app_settings = settings.app

    configure_logging("DEBUG" if app_settings.debug_mode else app_settings.log_level)

    if backend is None:
        backend = JsonFileBackend(settings.store.graph_path)

    audit_logger = AuditLogger()
    store = EntityStore(
        backend,
        notifier=ChangeNotifier(),
        audit_logger=audit_logger,
        settings=app_settings,
    )
    if open_store:
        store.open()

    logger.info(
        "app_components_created",
        environment=app_settings.app_environment,
        backend=type(backend).__name__,
        store_open=store.is_open,
    )
    return AppComponents(
        store=store,
        queries=ConversationQueries(store),
        remote_config=RemoteConfigClient(settings.remote_config),
        audit_logger=audit_logger,
    )
