"""
JSON Backup Export and Import

The backup is one JSON object:

    {
      "categories": [...], "contacts": [...], "conversations": [...],
      "templatePhrases": [...], "exportDate": "2025-01-05T10:00:00Z",
      "version": "1.0"
    }

Keys are camelCase, written sorted and pretty-printed. Relationships are
flattened to identifier references (contactIds, categoryId) that only have
meaning inside the same file.

Import replays the rows through the store's normal create path in
dependency order (contacts, categories, template phrases, conversations),
mapping each exported id to the id of the entity just created. References
that do not resolve are dropped from the relationship.

DESIGN DECISION: Import is row-scoped. A row that fails to parse or
validate is recorded in the ImportReport and skipped; the rows after it
are still imported. Only a document that is not a backup at all raises.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union
from uuid import UUID

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from money_conversations.errors import (
    ExportError,
    ImageProcessingError,
    ImportDataError,
    ValidationError,
)
from money_conversations.models.entities import (
    Category,
    Contact,
    Conversation,
    TemplatePhrase,
    decode_photo,
    encode_photo,
)
from money_conversations.models.events import ChangeEventBuilder
from money_conversations.store import EntityStore

logger = structlog.get_logger(__name__)

SUPPORTED_MAJOR_VERSION = "1"

# Applied to imported categories that carry no styling
DEFAULT_CATEGORY_ICON = "folder"
DEFAULT_ACCENT_COLOR = "4A7C9B"

SECTIONS = ("contacts", "categories", "templatePhrases", "conversations")


def format_timestamp(value: datetime) -> str:
    """UTC, second precision, 'Z' suffix: sortable and timezone-aware."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def backup_file_name(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"MoneyConversations_{int(now.timestamp())}.json"


# =============================================================================
# ROW MODELS
# =============================================================================

class _Row(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ConversationRow(_Row):
    id: UUID
    title: str
    date: datetime
    goal: Optional[str] = None
    outcome: Optional[str] = None
    emotional_rating: int = 5
    notes: Optional[str] = None
    is_resolved: bool = False
    contact_ids: list[UUID] = Field(default_factory=list)
    category_id: Optional[UUID] = None

    @field_serializer('date')
    def serialize_date(self, v: datetime) -> str:
        return format_timestamp(v)

    @classmethod
    def from_entity(cls, conversation: Conversation) -> "ConversationRow":
        return cls(
            id=conversation.id,
            title=conversation.title,
            date=conversation.date,
            goal=conversation.goal,
            outcome=conversation.outcome,
            emotional_rating=conversation.emotional_rating,
            notes=conversation.notes,
            is_resolved=conversation.is_resolved,
            contact_ids=conversation.contact_ids,
            category_id=conversation.category_id,
        )


class ContactRow(_Row):
    id: UUID
    name: str
    relationship_tag: Optional[str] = None
    photo_data: Optional[bytes] = None

    @field_validator('photo_data', mode='before')
    @classmethod
    def decode_base64_photo(cls, v):
        return decode_photo(v)

    @field_serializer('photo_data')
    def serialize_photo(self, v: Optional[bytes]) -> Optional[str]:
        return encode_photo(v)

    @classmethod
    def from_entity(cls, contact: Contact) -> "ContactRow":
        return cls(
            id=contact.id,
            name=contact.name,
            relationship_tag=contact.relationship_tag,
            photo_data=contact.photo_data,
        )


class CategoryRow(_Row):
    id: UUID
    name: str
    icon_name: Optional[str] = None
    accent_color: Optional[str] = None

    @classmethod
    def from_entity(cls, category: Category) -> "CategoryRow":
        return cls(
            id=category.id,
            name=category.name,
            icon_name=category.icon_name,
            accent_color=category.accent_color,
        )


class TemplatePhraseRow(_Row):
    id: UUID
    text: str
    category_id: Optional[UUID] = None

    @classmethod
    def from_entity(cls, phrase: TemplatePhrase) -> "TemplatePhraseRow":
        return cls(id=phrase.id, text=phrase.text, category_id=phrase.category_id)


class BackupDocument(_Row):
    """A complete backup, as written to disk."""

    conversations: list[ConversationRow] = Field(default_factory=list)
    contacts: list[ContactRow] = Field(default_factory=list)
    categories: list[CategoryRow] = Field(default_factory=list)
    template_phrases: list[TemplatePhraseRow] = Field(default_factory=list)
    export_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = "1.0"

    @field_serializer('export_date')
    def serialize_export_date(self, v: datetime) -> str:
        return format_timestamp(v)


class _RawBackup(_Row):
    """Top-level shape check; rows are validated one at a time."""

    conversations: list[Any]
    contacts: list[Any]
    categories: list[Any]
    template_phrases: list[Any]
    export_date: Optional[datetime] = None
    version: str = "1.0"


# =============================================================================
# IMPORT REPORT
# =============================================================================

class ImportFailure(BaseModel):
    """One row that was skipped."""

    section: str
    index: int = Field(..., ge=0)
    reason: str


class ImportReport(BaseModel):
    """What an import created and what it skipped."""

    created: dict[str, int] = Field(
        default_factory=lambda: {section: 0 for section in SECTIONS}
    )
    failures: list[ImportFailure] = Field(default_factory=list)
    dropped_references: int = 0

    @property
    def total_created(self) -> int:
        return sum(self.created.values())

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def succeeded(self) -> bool:
        return not self.failures

    def record_failure(self, section: str, index: int, reason: str) -> None:
        self.failures.append(ImportFailure(section=section, index=index, reason=reason))
        logger.warning("import_row_failed", section=section, index=index, reason=reason)


def _reason(error: Exception) -> str:
    if isinstance(error, PydanticValidationError):
        first = error.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        return f"{location}: {first['msg']}" if location else first["msg"]
    return str(error)


# =============================================================================
# EXPORT
# =============================================================================

def export_backup(store: EntityStore) -> BackupDocument:
    """Snapshot the store's collections into a backup document."""
    graph = store.snapshot()
    document = BackupDocument(
        conversations=[ConversationRow.from_entity(c) for c in graph.conversations],
        contacts=[ContactRow.from_entity(c) for c in graph.contacts],
        categories=[CategoryRow.from_entity(c) for c in graph.categories],
        template_phrases=[
            TemplatePhraseRow.from_entity(p) for p in graph.template_phrases
        ],
        version=store.settings.backup_format_version,
    )
    logger.info(
        "backup_exported",
        conversations=len(document.conversations),
        contacts=len(document.contacts),
        categories=len(document.categories),
        template_phrases=len(document.template_phrases),
    )
    return document


def dumps_backup(document: BackupDocument) -> str:
    """Serialize with camelCase keys, sorted and indented."""
    payload = document.model_dump(mode="json", by_alias=True)
    return json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False)


def write_backup(store: EntityStore, path: Union[str, Path]) -> Path:
    """
    Export the store to `path`. A directory gets a timestamped file name.

    Raises:
        ExportError: If the file cannot be written
    """
    target = Path(path)
    if target.is_dir():
        target = target / backup_file_name()

    text = dumps_backup(export_backup(store))
    try:
        target.write_text(text, encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Failed to write backup: {e}") from e

    logger.info("backup_written", path=str(target), size_bytes=len(text.encode("utf-8")))
    return target


# =============================================================================
# IMPORT
# =============================================================================

def parse_backup(data: Union[str, bytes]) -> _RawBackup:
    """
    Check that `data` is a backup document of a supported version.

    Raises:
        ImportDataError: Not JSON, wrong shape, or unsupported version
    """
    try:
        payload = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ImportDataError("Backup is not valid JSON", detail=str(e)) from e

    if not isinstance(payload, dict):
        raise ImportDataError("Backup must be a JSON object")

    try:
        raw = _RawBackup.model_validate(payload)
    except PydanticValidationError as e:
        raise ImportDataError("Backup is missing required sections", detail=_reason(e)) from e

    if raw.version.split(".")[0] != SUPPORTED_MAJOR_VERSION:
        raise ImportDataError(f"Unsupported backup version: {raw.version}")
    return raw


def import_backup(store: EntityStore, data: Union[str, bytes]) -> ImportReport:
    """
    Create every importable row of a backup in `store`.

    Raises:
        ImportDataError: The document itself is unusable; nothing was created
        StorageError: A write failed; rows before it stay imported
    """
    raw = parse_backup(data)
    report = ImportReport()
    contact_map: dict[UUID, UUID] = {}
    category_map: dict[UUID, UUID] = {}

    def resolve(mapping: dict[UUID, UUID], old_id: Optional[UUID]) -> Optional[UUID]:
        if old_id is None:
            return None
        new_id = mapping.get(old_id)
        if new_id is None:
            report.dropped_references += 1
        return new_id

    for index, payload in enumerate(raw.contacts):
        try:
            row = ContactRow.model_validate(payload)
            contact = store.create_contact(
                name=row.name,
                relationship_tag=row.relationship_tag,
                photo_data=row.photo_data,
            )
        except (PydanticValidationError, ValidationError, ImageProcessingError) as e:
            report.record_failure("contacts", index, _reason(e))
            continue
        contact_map[row.id] = contact.id
        report.created["contacts"] += 1

    for index, payload in enumerate(raw.categories):
        try:
            row = CategoryRow.model_validate(payload)
            category = store.create_category(
                name=row.name,
                icon_name=row.icon_name or DEFAULT_CATEGORY_ICON,
                accent_color=row.accent_color or DEFAULT_ACCENT_COLOR,
            )
        except (PydanticValidationError, ValidationError) as e:
            report.record_failure("categories", index, _reason(e))
            continue
        category_map[row.id] = category.id
        report.created["categories"] += 1

    for index, payload in enumerate(raw.template_phrases):
        try:
            row = TemplatePhraseRow.model_validate(payload)
            store.create_template_phrase(
                text=row.text,
                category=resolve(category_map, row.category_id),
            )
        except (PydanticValidationError, ValidationError) as e:
            report.record_failure("templatePhrases", index, _reason(e))
            continue
        report.created["templatePhrases"] += 1

    for index, payload in enumerate(raw.conversations):
        try:
            row = ConversationRow.model_validate(payload)
            contact_ids = [
                new_id for new_id in (
                    resolve(contact_map, old_id) for old_id in row.contact_ids
                )
                if new_id is not None
            ]
            store.create_conversation(
                title=row.title,
                date=row.date,
                contacts=contact_ids,
                category=resolve(category_map, row.category_id),
                goal=row.goal,
                outcome=row.outcome,
                emotional_rating=row.emotional_rating,
                notes=row.notes,
                is_resolved=row.is_resolved,
            )
        except (PydanticValidationError, ValidationError) as e:
            report.record_failure("conversations", index, _reason(e))
            continue
        report.created["conversations"] += 1

    store.record_event(ChangeEventBuilder.backup_imported(
        created=dict(report.created),
        failed=report.failed_count,
    ))
    logger.info(
        "backup_imported",
        created=report.created,
        failed=report.failed_count,
        dropped_references=report.dropped_references,
    )
    return report


def read_backup(store: EntityStore, path: Union[str, Path]) -> ImportReport:
    """Import the backup file at `path`."""
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise ImportDataError(f"Failed to read backup: {e}") from e
    return import_backup(store, data)
