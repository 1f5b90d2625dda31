"""
Entity Store for Money Conversations

The store is the single owner of the four in-memory collections
(conversations, contacts, categories, template phrases) and of the backend
they are persisted to. Construct it once at startup and pass it to every
consumer; there is no global instance. Mutations are refused with
StorageError until open() has loaded the graph, and again after close().

Every mutation follows the same path:
1. Validate   - field checks and reference checks, before anything changes
2. Construct  - apply the change to a private working copy of the graph
3. Persist    - save the whole working graph through the backend
4. Reload     - re-read the graph and rebuild the affected collections
5. Notify     - publish one ChangeEvent on the change channel

DESIGN DECISION: Mutations never touch the live collections directly. If
validation or the write fails, the working copy is discarded and the
affected collections are rebuilt from the last committed graph, which also
undoes any in-place edits the caller made to a record before calling
update_*.

All mutations and reloads hold one re-entrant lock, so a concurrent reader
sees the collections either before or after a change, never halfway.
"""

import threading
from datetime import datetime
from typing import Iterable, Optional, TypeVar, Union
from uuid import UUID

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from money_conversations.audit import AuditLogger
from money_conversations.config import AppSettings, get_settings
from money_conversations.errors import (
    ImageProcessingError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from money_conversations.models.entities import (
    DEFAULT_EMOTIONAL_RATING,
    DELETE_RULES,
    Category,
    Contact,
    Conversation,
    DeletePolicy,
    EntityKind,
    GraphSnapshot,
    TemplatePhrase,
)
from money_conversations.models.events import ChangeEvent, ChangeEventBuilder
from money_conversations.notifications import ChangeNotifier
from money_conversations.services.image import ImageProcessor
from money_conversations.services.storage import GraphBackend
from money_conversations.validation import EntityValidator, ValidationResult

logger = structlog.get_logger(__name__)

EntityT = TypeVar("EntityT", bound=BaseModel)
ContactRef = Union[Contact, UUID]
CategoryRef = Union[Category, UUID]

_MODEL_FOR_KIND = {
    EntityKind.CONVERSATION: Conversation,
    EntityKind.CONTACT: Contact,
    EntityKind.CATEGORY: Category,
    EntityKind.TEMPLATE_PHRASE: TemplatePhrase,
}


def _ref_id(ref) -> Optional[UUID]:
    if ref is None:
        return None
    if isinstance(ref, UUID):
        return ref
    return ref.id


def _sort_conversations(items: list[Conversation]) -> list[Conversation]:
    return sorted(items, key=lambda c: c.date, reverse=True)


def _sort_by_name(items: list) -> list:
    return sorted(items, key=lambda e: (e.name.casefold(), e.name))


class EntityStore:
    """
    Owns the entity collections and their persistence.

    Usage:
        with EntityStore(JsonFileBackend()) as store:
            contact = store.create_contact("Alex")
            store.create_conversation("Rent split", date=now, contacts=[contact])
    """

    def __init__(
        self,
        backend: GraphBackend,
        notifier: Optional[ChangeNotifier] = None,
        validator: Optional[EntityValidator] = None,
        image_processor: Optional[ImageProcessor] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._backend = backend
        self._settings = settings or get_settings().app
        self._notifier = notifier or ChangeNotifier()
        self._validator = validator or EntityValidator(self._settings)
        self._images = image_processor or ImageProcessor(self._settings)
        self._audit = audit_logger
        self._lock = threading.RLock()

        # Last graph read back from the backend; never handed out
        self._graph = GraphSnapshot()
        self._is_open = False

        self._conversations: list[Conversation] = []
        self._contacts: list[Contact] = []
        self._categories: list[Category] = []
        self._template_phrases: list[TemplatePhrase] = []

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def open(self) -> "EntityStore":
        """Attach the audit logger and populate the collections."""
        if self._audit is not None:
            self._audit.attach(self._notifier)
        self.load_all()
        self._is_open = True
        return self

    def close(self) -> None:
        """Drop the collections and release the backend."""
        with self._lock:
            if self._audit is not None:
                self._audit.detach()
            self._graph = GraphSnapshot()
            self._refresh(set(EntityKind))
            self._backend.close()
            self._is_open = False

    def __enter__(self) -> "EntityStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def notifier(self) -> ChangeNotifier:
        return self._notifier

    @property
    def settings(self) -> AppSettings:
        return self._settings

    @property
    def version(self) -> int:
        """Increases with every committed change; poll to detect staleness."""
        return self._notifier.version

    # =========================================================================
    # COLLECTIONS
    # =========================================================================

    @property
    def conversations(self) -> list[Conversation]:
        """Conversations, newest first."""
        return list(self._conversations)

    @property
    def contacts(self) -> list[Contact]:
        """Contacts by name."""
        return list(self._contacts)

    @property
    def categories(self) -> list[Category]:
        """Categories by name."""
        return list(self._categories)

    @property
    def template_phrases(self) -> list[TemplatePhrase]:
        """Template phrases in insertion order."""
        return list(self._template_phrases)

    def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        return next((c for c in self._conversations if c.id == conversation_id), None)

    def get_contact(self, contact_id: UUID) -> Optional[Contact]:
        return next((c for c in self._contacts if c.id == contact_id), None)

    def get_category(self, category_id: UUID) -> Optional[Category]:
        return next((c for c in self._categories if c.id == category_id), None)

    def get_template_phrase(self, phrase_id: UUID) -> Optional[TemplatePhrase]:
        return next((p for p in self._template_phrases if p.id == phrase_id), None)

    def snapshot(self) -> GraphSnapshot:
        """
        All four collections, copied together under the store lock.

        Use this instead of several property reads when the results must
        agree with each other (exports, cross-collection statistics).
        """
        with self._lock:
            return GraphSnapshot(
                conversations=list(self._conversations),
                contacts=list(self._contacts),
                categories=list(self._categories),
                template_phrases=list(self._template_phrases),
            )

    def counts(self) -> dict[str, int]:
        return {
            EntityKind.CONVERSATION.value: len(self._conversations),
            EntityKind.CONTACT.value: len(self._contacts),
            EntityKind.CATEGORY.value: len(self._categories),
            EntityKind.TEMPLATE_PHRASE.value: len(self._template_phrases),
        }

    # =========================================================================
    # LOADING
    # =========================================================================

    def load_all(self) -> None:
        """
        Reload all four collections from the backend.

        Safe to call repeatedly. References to entities missing from the
        stored graph are dropped using the normal delete policies.

        Raises:
            StorageError: If the backend cannot be read; collections are kept
        """
        with self._lock:
            graph = self._backend.load()
            pruned = self._prune_dangling(graph)
            if pruned:
                logger.warning("dangling_references_pruned", count=pruned)

            self._graph = graph
            self._refresh(set(EntityKind))
            self._publish(ChangeEventBuilder.collections_reloaded(
                counts=self.counts(),
                version=self._notifier.next_version(),
            ))

    def _refresh(self, kinds: set[EntityKind]) -> None:
        """Rebuild the given collections from the committed graph."""
        graph = self._graph
        if EntityKind.CONVERSATION in kinds:
            self._conversations = _sort_conversations(
                [c.model_copy(deep=True) for c in graph.conversations]
            )
        if EntityKind.CONTACT in kinds:
            self._contacts = _sort_by_name(
                [c.model_copy(deep=True) for c in graph.contacts]
            )
        if EntityKind.CATEGORY in kinds:
            self._categories = _sort_by_name(
                [c.model_copy(deep=True) for c in graph.categories]
            )
        if EntityKind.TEMPLATE_PHRASE in kinds:
            self._template_phrases = [
                p.model_copy(deep=True) for p in graph.template_phrases
            ]

    @staticmethod
    def _prune_dangling(graph: GraphSnapshot) -> int:
        contact_ids = graph.ids(EntityKind.CONTACT)
        category_ids = graph.ids(EntityKind.CATEGORY)
        pruned = 0

        for conversation in graph.conversations:
            kept = [cid for cid in conversation.contact_ids if cid in contact_ids]
            pruned += len(conversation.contact_ids) - len(kept)
            conversation.contact_ids = kept
            if conversation.category_id and conversation.category_id not in category_ids:
                conversation.category_id = None
                pruned += 1

        for phrase in graph.template_phrases:
            if phrase.category_id and phrase.category_id not in category_ids:
                phrase.category_id = None
                pruned += 1

        return pruned

    # =========================================================================
    # COMMIT PIPELINE
    # =========================================================================

    def _publish(self, event: ChangeEvent) -> None:
        self._notifier.publish(event)

    def record_event(self, event: ChangeEvent) -> None:
        """Publish an event produced outside the store (e.g. backup import)."""
        with self._lock:
            if not event.is_failure:
                event.version = self._notifier.next_version()
            self._publish(event)

    def _require_open(self) -> None:
        if not self._is_open:
            raise StorageError("Store is not open")

    def _working_copy(self) -> GraphSnapshot:
        self._require_open()
        return self._graph.model_copy(deep=True)

    def _check(self, operation: str, result: ValidationResult) -> None:
        issue = result.first_issue
        if issue is not None:
            self._publish(ChangeEventBuilder.validation_failed(
                operation, issue.field, issue.message,
            ))
            raise ValidationError(issue.field, issue.message)

    def _reject(self, operation: str, error: ValidationError) -> None:
        self._publish(ChangeEventBuilder.validation_failed(
            operation, error.field, error.reason,
        ))
        raise error

    def _build(self, operation: str, model: type[EntityT], data: dict) -> EntityT:
        """Construct a record, reporting schema failures as ValidationError."""
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"]) or "entity"
            self._reject(operation, ValidationError(field, first["msg"]))

    def _commit(
        self,
        operation: str,
        working: GraphSnapshot,
        affected: set[EntityKind],
        event: ChangeEvent,
    ) -> None:
        try:
            self._backend.save(working)
            committed = self._backend.load()
        except StorageError as e:
            logger.error("commit_failed", operation=operation, error=str(e))
            self._refresh(affected)
            self._publish(ChangeEventBuilder.write_failed(
                operation, str(e), sorted(affected, key=lambda k: k.value),
            ))
            raise

        self._graph = committed
        self._refresh(affected)
        event.version = self._notifier.next_version()
        self._publish(event)

    def _check_references(
        self,
        operation: str,
        graph: GraphSnapshot,
        contact_ids: Iterable[UUID] = (),
        category_id: Optional[UUID] = None,
    ) -> None:
        known_contacts = graph.ids(EntityKind.CONTACT)
        for contact_id in contact_ids:
            if contact_id not in known_contacts:
                self._reject(operation, ValidationError(
                    "contact_ids", f"Unknown contact: {contact_id}",
                ))
        if category_id is not None and category_id not in graph.ids(EntityKind.CATEGORY):
            self._reject(operation, ValidationError(
                "category_id", f"Unknown category: {category_id}",
            ))

    def _replace(
        self,
        operation: str,
        kind: EntityKind,
        working: GraphSnapshot,
        entity: BaseModel,
    ) -> BaseModel:
        """Swap the stored record with a re-validated copy of `entity`."""
        collection = working.collection(kind)
        for index, stored in enumerate(collection):
            if stored.id == entity.id:
                rebuilt = self._build(operation, _MODEL_FOR_KIND[kind], entity.model_dump())
                collection[index] = rebuilt
                return stored
        raise NotFoundError(kind.value, entity.id)

    def _update(self, operation: str, kind: EntityKind, entity: BaseModel) -> None:
        """
        Re-validate and persist an entity the caller already mutated.

        On any failure the collection is rebuilt from the committed graph,
        so the caller's in-place edits do not survive in memory either.
        """
        with self._lock:
            try:
                self._check(operation, self._validator.validate_entity(entity))
                working = self._working_copy()
                if kind == EntityKind.CONVERSATION:
                    self._check_references(
                        operation, working, entity.contact_ids, entity.category_id,
                    )
                elif kind == EntityKind.TEMPLATE_PHRASE:
                    self._check_references(
                        operation, working, category_id=entity.category_id,
                    )
                previous = self._replace(operation, kind, working, entity)
                if kind == EntityKind.CONTACT:
                    self._reprocess_photo(working, entity, previous)
            except (ValidationError, NotFoundError, ImageProcessingError):
                self._refresh({kind})
                raise

            self._commit(
                operation,
                working,
                {kind},
                ChangeEventBuilder.entity_updated(kind, entity.id),
            )

    def _delete(self, operation: str, kind: EntityKind, entity_id: UUID) -> None:
        with self._lock:
            working = self._working_copy()
            if working.find(kind, entity_id) is None:
                raise NotFoundError(kind.value, entity_id)

            affected = {kind}
            stats = {"nullified": 0, "cascaded": 0}
            self._apply_delete(working, kind, entity_id, affected, stats)

            self._commit(
                operation,
                working,
                affected,
                ChangeEventBuilder.entity_deleted(
                    kind,
                    entity_id,
                    affected=sorted(affected, key=lambda k: k.value),
                    nullified=stats["nullified"],
                    cascaded=stats["cascaded"],
                ),
            )

    def _apply_delete(
        self,
        graph: GraphSnapshot,
        kind: EntityKind,
        entity_id: UUID,
        affected: set[EntityKind],
        stats: dict[str, int],
    ) -> None:
        """Remove one entity and evaluate its delete rules on `graph`."""
        collection = graph.collection(kind)
        collection[:] = [e for e in collection if e.id != entity_id]

        for rule in DELETE_RULES[kind]:
            for dependent in list(graph.collection(rule.dependent)):
                value = getattr(dependent, rule.attribute)
                if isinstance(value, list):
                    references = entity_id in value
                else:
                    references = value == entity_id
                if not references:
                    continue

                affected.add(rule.dependent)
                if rule.policy == DeletePolicy.CASCADE:
                    stats["cascaded"] += 1
                    self._apply_delete(
                        graph, rule.dependent, dependent.id, affected, stats,
                    )
                elif isinstance(value, list):
                    stats["nullified"] += 1
                    setattr(
                        dependent,
                        rule.attribute,
                        [ref for ref in value if ref != entity_id],
                    )
                else:
                    stats["nullified"] += 1
                    setattr(dependent, rule.attribute, None)

    # =========================================================================
    # CONVERSATIONS
    # =========================================================================

    def create_conversation(
        self,
        title: str,
        date: datetime,
        contacts: Iterable[ContactRef] = (),
        category: Optional[CategoryRef] = None,
        goal: Optional[str] = None,
        outcome: Optional[str] = None,
        emotional_rating: int = DEFAULT_EMOTIONAL_RATING,
        notes: Optional[str] = None,
        is_resolved: bool = False,
    ) -> Conversation:
        """
        Validate, persist and return a new conversation.

        Raises:
            ValidationError: A field or reference is invalid; nothing changed
            StorageError: The write failed; collections are unchanged
        """
        operation = "create_conversation"
        with self._lock:
            self._check(operation, self._validator.validate_conversation(
                title=title,
                date=date,
                goal=goal,
                outcome=outcome,
                emotional_rating=emotional_rating,
                notes=notes,
            ))

            contact_ids = [_ref_id(contact) for contact in contacts]
            category_id = _ref_id(category)
            working = self._working_copy()
            self._check_references(operation, working, contact_ids, category_id)

            conversation = self._build(operation, Conversation, {
                "title": title,
                "date": date,
                "goal": goal,
                "outcome": outcome,
                "emotional_rating": emotional_rating,
                "notes": notes,
                "is_resolved": is_resolved,
                "contact_ids": contact_ids,
                "category_id": category_id,
            })
            working.conversations.append(conversation)

            self._commit(
                operation,
                working,
                {EntityKind.CONVERSATION},
                ChangeEventBuilder.entity_created(
                    EntityKind.CONVERSATION, conversation.id,
                ),
            )
            return self.get_conversation(conversation.id)

    def update_conversation(self, conversation: Conversation) -> Conversation:
        """Persist a conversation the caller has edited in place."""
        self._update("update_conversation", EntityKind.CONVERSATION, conversation)
        return self.get_conversation(conversation.id)

    def delete_conversation(self, conversation: Union[Conversation, UUID]) -> None:
        self._delete(
            "delete_conversation", EntityKind.CONVERSATION, _ref_id(conversation),
        )

    # =========================================================================
    # CONTACTS
    # =========================================================================

    def create_contact(
        self,
        name: str,
        relationship_tag: Optional[str] = None,
        photo_data: Optional[bytes] = None,
    ) -> Contact:
        """
        Validate, persist and return a new contact.

        A photo is size-checked, downscaled and re-encoded before storage.

        Raises:
            ValidationError: Name or tag invalid
            ImageProcessingError: Photo too large or not an image
            StorageError: The write failed
        """
        operation = "create_contact"
        with self._lock:
            self._check(
                operation,
                self._validator.validate_contact(name, relationship_tag),
            )

            processed = None
            if photo_data is not None:
                processed = self._process_photo(operation, photo_data)

            contact = self._build(operation, Contact, {
                "name": name,
                "relationship_tag": relationship_tag,
                "photo_data": processed,
            })
            working = self._working_copy()
            working.contacts.append(contact)

            self._commit(
                operation,
                working,
                {EntityKind.CONTACT},
                ChangeEventBuilder.entity_created(EntityKind.CONTACT, contact.id),
            )
            return self.get_contact(contact.id)

    def update_contact(self, contact: Contact) -> Contact:
        """Persist a contact the caller has edited; a new photo is re-encoded."""
        self._update("update_contact", EntityKind.CONTACT, contact)
        return self.get_contact(contact.id)

    def delete_contact(self, contact: Union[Contact, UUID]) -> None:
        """Delete a contact and remove it from every conversation."""
        self._delete("delete_contact", EntityKind.CONTACT, _ref_id(contact))

    def _process_photo(self, operation: str, data: bytes) -> bytes:
        try:
            return self._images.process(data)
        except ImageProcessingError as e:
            logger.warning("photo_rejected", operation=operation, reason=e.message)
            raise

    def _reprocess_photo(
        self,
        working: GraphSnapshot,
        contact: Contact,
        previous: Contact,
    ) -> None:
        if contact.photo_data is None or contact.photo_data == previous.photo_data:
            return
        stored = working.find(EntityKind.CONTACT, contact.id)
        stored.photo_data = self._process_photo("update_contact", contact.photo_data)

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    def create_category(
        self,
        name: str,
        icon_name: Optional[str] = None,
        accent_color: Optional[str] = None,
    ) -> Category:
        operation = "create_category"
        with self._lock:
            self._check(
                operation,
                self._validator.validate_category(name, accent_color),
            )
            category = self._build(operation, Category, {
                "name": name,
                "icon_name": icon_name,
                "accent_color": accent_color,
            })
            working = self._working_copy()
            working.categories.append(category)

            self._commit(
                operation,
                working,
                {EntityKind.CATEGORY},
                ChangeEventBuilder.entity_created(EntityKind.CATEGORY, category.id),
            )
            return self.get_category(category.id)

    def update_category(self, category: Category) -> Category:
        self._update("update_category", EntityKind.CATEGORY, category)
        return self.get_category(category.id)

    def delete_category(self, category: Union[Category, UUID]) -> None:
        """
        Delete a category.

        Conversations in it lose their category; template phrases owned by
        it are deleted with it.
        """
        self._delete("delete_category", EntityKind.CATEGORY, _ref_id(category))

    # =========================================================================
    # TEMPLATE PHRASES
    # =========================================================================

    def create_template_phrase(
        self,
        text: str,
        category: Optional[CategoryRef] = None,
    ) -> TemplatePhrase:
        operation = "create_template_phrase"
        with self._lock:
            self._check(operation, self._validator.validate_template_phrase(text))

            category_id = _ref_id(category)
            working = self._working_copy()
            self._check_references(operation, working, category_id=category_id)

            phrase = self._build(operation, TemplatePhrase, {
                "text": text,
                "category_id": category_id,
            })
            working.template_phrases.append(phrase)

            self._commit(
                operation,
                working,
                {EntityKind.TEMPLATE_PHRASE},
                ChangeEventBuilder.entity_created(
                    EntityKind.TEMPLATE_PHRASE, phrase.id,
                ),
            )
            return self.get_template_phrase(phrase.id)

    def update_template_phrase(self, phrase: TemplatePhrase) -> TemplatePhrase:
        self._update("update_template_phrase", EntityKind.TEMPLATE_PHRASE, phrase)
        return self.get_template_phrase(phrase.id)

    def delete_template_phrase(self, phrase: Union[TemplatePhrase, UUID]) -> None:
        self._delete(
            "delete_template_phrase", EntityKind.TEMPLATE_PHRASE, _ref_id(phrase),
        )

    # =========================================================================
    # WHOLE GRAPH
    # =========================================================================

    def reset(self) -> None:
        """Delete every entity of every kind."""
        with self._lock:
            self._require_open()
            removed = self.counts()
            self._commit(
                "reset",
                GraphSnapshot(),
                set(EntityKind),
                ChangeEventBuilder.data_reset(removed),
            )
