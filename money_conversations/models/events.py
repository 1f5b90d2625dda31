"""
Change Event Models for Money Conversations

Every committed mutation of the entity graph produces one ChangeEvent.
Events are published on the change channel so derived views can recompute,
and the audit logger writes each one as a structured log line.

DESIGN DECISION: Events describe what was committed, never what was
attempted. A failed write produces a WRITE_FAILED event, not a
*_CREATED event followed by a correction.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from money_conversations.models.entities import EntityKind


class ChangeEventType(str, Enum):
    """Types of changes the store reports."""
    # Entity lifecycle
    ENTITY_CREATED = "entity_created"
    ENTITY_UPDATED = "entity_updated"
    ENTITY_DELETED = "entity_deleted"

    # Whole-graph operations
    COLLECTIONS_RELOADED = "collections_reloaded"
    DATA_RESET = "data_reset"
    BACKUP_IMPORTED = "backup_imported"

    # Failures (nothing was committed)
    VALIDATION_FAILED = "validation_failed"
    WRITE_FAILED = "write_failed"


class EventSeverity(str, Enum):
    """Severity level for change events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ChangeEvent(BaseModel):
    """A single change notification."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    event_type: ChangeEventType
    severity: EventSeverity = EventSeverity.INFO

    # Which collections changed; consumers recompute views derived from them
    affected: list[EntityKind] = Field(default_factory=list)

    entity_kind: Optional[EntityKind] = None
    entity_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    # Store version after this change (0 for failures)
    version: int = Field(default=0, ge=0)

    @property
    def is_failure(self) -> bool:
        return self.event_type in (
            ChangeEventType.VALIDATION_FAILED,
            ChangeEventType.WRITE_FAILED,
        )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "affected": [kind.value for kind in self.affected],
            "entity_kind": self.entity_kind.value if self.entity_kind else None,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "version": self.version,
        }


class ChangeEventBuilder:
    """
    Helper class to build change events with common patterns.

    Usage:
        event = ChangeEventBuilder.entity_created(EntityKind.CONTACT, contact.id)
        event = ChangeEventBuilder.write_failed("create_contact", str(error))
    """

    @staticmethod
    def entity_created(
        kind: EntityKind,
        entity_id: UUID,
        version: int = 0,
    ) -> ChangeEvent:
        return ChangeEvent(
            event_type=ChangeEventType.ENTITY_CREATED,
            affected=[kind],
            entity_kind=kind,
            entity_id=entity_id,
            description=f"{kind.value} created",
            version=version,
        )

    @staticmethod
    def entity_updated(
        kind: EntityKind,
        entity_id: UUID,
        version: int = 0,
    ) -> ChangeEvent:
        return ChangeEvent(
            event_type=ChangeEventType.ENTITY_UPDATED,
            affected=[kind],
            entity_kind=kind,
            entity_id=entity_id,
            description=f"{kind.value} updated",
            version=version,
        )

    @staticmethod
    def entity_deleted(
        kind: EntityKind,
        entity_id: UUID,
        affected: list[EntityKind],
        nullified: int = 0,
        cascaded: int = 0,
        version: int = 0,
    ) -> ChangeEvent:
        return ChangeEvent(
            event_type=ChangeEventType.ENTITY_DELETED,
            affected=affected,
            entity_kind=kind,
            entity_id=entity_id,
            description=f"{kind.value} deleted",
            details={
                "nullified_references": nullified,
                "cascaded_deletes": cascaded,
            },
            version=version,
        )

    @staticmethod
    def collections_reloaded(
        counts: dict[str, int],
        version: int = 0,
    ) -> ChangeEvent:
        return ChangeEvent(
            event_type=ChangeEventType.COLLECTIONS_RELOADED,
            severity=EventSeverity.DEBUG,
            affected=list(EntityKind),
            description="All collections reloaded from storage",
            details={"counts": counts},
            version=version,
        )

    @staticmethod
    def data_reset(
        removed: dict[str, int],
        version: int = 0,
    ) -> ChangeEvent:
        return ChangeEvent(
            event_type=ChangeEventType.DATA_RESET,
            severity=EventSeverity.WARNING,
            affected=list(EntityKind),
            description="All data deleted",
            details={"removed": removed},
            version=version,
        )

    @staticmethod
    def backup_imported(
        created: dict[str, int],
        failed: int,
        version: int = 0,
    ) -> ChangeEvent:
        return ChangeEvent(
            event_type=ChangeEventType.BACKUP_IMPORTED,
            severity=EventSeverity.WARNING if failed else EventSeverity.INFO,
            affected=list(EntityKind),
            description=f"Backup imported with {failed} failed rows",
            details={"created": created, "failed_rows": failed},
            version=version,
        )

    @staticmethod
    def validation_failed(
        operation: str,
        field: str,
        reason: str,
    ) -> ChangeEvent:
        return ChangeEvent(
            event_type=ChangeEventType.VALIDATION_FAILED,
            severity=EventSeverity.WARNING,
            description=f"{operation} rejected: {field}",
            details={"operation": operation, "field": field},
            error_message=reason,
        )

    @staticmethod
    def write_failed(
        operation: str,
        error_message: str,
        affected: Optional[list[EntityKind]] = None,
    ) -> ChangeEvent:
        return ChangeEvent(
            event_type=ChangeEventType.WRITE_FAILED,
            severity=EventSeverity.ERROR,
            affected=affected or [],
            description=f"{operation} failed to persist",
            details={"operation": operation},
            error_message=error_message,
        )
