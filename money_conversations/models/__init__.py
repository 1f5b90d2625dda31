"""
Data Models Package

Typed records for the persisted entities and the change events the store
publishes. All data flowing through the system conforms to these schemas.
"""

from money_conversations.models.entities import (
    DELETE_RULES,
    Category,
    Contact,
    Conversation,
    DeletePolicy,
    DeleteRule,
    EntityKind,
    GraphSnapshot,
    OutcomeBucket,
    TemplatePhrase,
)
from money_conversations.models.events import (
    ChangeEvent,
    ChangeEventBuilder,
    ChangeEventType,
    EventSeverity,
)

__all__ = [
    # Entities
    "DELETE_RULES",
    "Category",
    "Contact",
    "Conversation",
    "DeletePolicy",
    "DeleteRule",
    "EntityKind",
    "GraphSnapshot",
    "OutcomeBucket",
    "TemplatePhrase",
    # Events
    "ChangeEvent",
    "ChangeEventBuilder",
    "ChangeEventType",
    "EventSeverity",
]
