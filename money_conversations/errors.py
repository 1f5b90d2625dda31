"""
Error taxonomy for Money Conversations.

Every failure the store, serializer or image pipeline can report is one of
these. They are raised as exceptions but carry structured fields, so the
caller decides how to present them (alert, log line, import report).
"""

from typing import Any, Optional


class AppError(Exception):
    """Base class for all application errors."""

    kind: str = "unknown"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class ValidationError(AppError):
    """A field failed validation. Raised before any mutation is attempted."""

    kind = "validation"

    def __init__(self, field: str, reason: str):
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "field": self.field,
            "reason": self.reason,
            "message": self.message,
        }


class StorageError(AppError):
    """Reading or writing the backing store failed."""

    kind = "storage"


class NotFoundError(StorageError):
    """Entity not found in storage."""

    def __init__(self, entity_type: str, entity_id: Any):
        super().__init__(f"{entity_type} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ImageProcessingError(AppError):
    """A contact photo could not be accepted or re-encoded."""

    kind = "image_processing"


class ExportError(AppError):
    """A backup or report could not be produced."""

    kind = "export"


class ImportDataError(AppError):
    """A backup document could not be read at all."""

    kind = "import"

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.detail:
            data["detail"] = self.detail
        return data
