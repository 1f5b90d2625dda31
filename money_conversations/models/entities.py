"""
Core Data Models for Money Conversations

These models define the typed records for the four persisted entities
and the snapshot of the whole object graph that the backends persist.

DESIGN DECISION: Relationships are stored as identifier references
(contact_ids, category_id) rather than nested objects. The store owns the
graph and resolves references; records never point at each other directly,
so a record can be copied, compared and serialized on its own.

The Field constraints repeat the limits the validators check. Validators run
first and produce readable messages; the constraints guarantee that nothing
out of range can be loaded back from disk.
"""

import base64
from datetime import datetime
from enum import Enum
from typing import NamedTuple, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)


# =============================================================================
# FIELD LIMITS
# =============================================================================

MAX_TITLE_LENGTH = 200
MAX_GOAL_LENGTH = 1000
MAX_OUTCOME_LENGTH = 1000
MAX_NOTES_LENGTH = 2000
MAX_NAME_LENGTH = 100
MAX_RELATIONSHIP_TAG_LENGTH = 50
MAX_CATEGORY_NAME_LENGTH = 50
MAX_TEMPLATE_PHRASE_LENGTH = 500

MIN_EMOTIONAL_RATING = 1
MAX_EMOTIONAL_RATING = 10
DEFAULT_EMOTIONAL_RATING = 5

# Outcome buckets
SUCCESS_RATING_THRESHOLD = 8
DIFFICULT_RATING_THRESHOLD = 5

HEX_COLOR_PATTERN = r"^#?([0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$"


# =============================================================================
# ENUMS
# =============================================================================

class EntityKind(str, Enum):
    """The four persisted entity collections."""
    CONVERSATION = "conversation"
    CONTACT = "contact"
    CATEGORY = "category"
    TEMPLATE_PHRASE = "template_phrase"


class DeletePolicy(str, Enum):
    """What happens to dependents when the entity they reference is deleted."""
    NULLIFY = "nullify"   # clear the reference, keep the dependent
    CASCADE = "cascade"   # delete the dependent too


class OutcomeBucket(str, Enum):
    """
    Timeline outcome filter derived from the emotional rating.

    successful: rating >= 8
    difficult:  rating < 5
    neutral:    5 <= rating < 8
    """
    SUCCESSFUL = "successful"
    DIFFICULT = "difficult"
    NEUTRAL = "neutral"

    @classmethod
    def for_rating(cls, rating: int) -> "OutcomeBucket":
        if rating >= SUCCESS_RATING_THRESHOLD:
            return cls.SUCCESSFUL
        if rating < DIFFICULT_RATING_THRESHOLD:
            return cls.DIFFICULT
        return cls.NEUTRAL


class DeleteRule(NamedTuple):
    """One relationship seen from the entity being deleted."""
    dependent: EntityKind
    attribute: str
    policy: DeletePolicy


# Evaluated by the store on every delete. Conversation -> Contact/Category and
# TemplatePhrase -> Category references live on the dependent record, so
# deleting a Conversation or TemplatePhrase needs no cleanup elsewhere.
DELETE_RULES: dict[EntityKind, tuple[DeleteRule, ...]] = {
    EntityKind.CONTACT: (
        DeleteRule(EntityKind.CONVERSATION, "contact_ids", DeletePolicy.NULLIFY),
    ),
    EntityKind.CATEGORY: (
        DeleteRule(EntityKind.CONVERSATION, "category_id", DeletePolicy.NULLIFY),
        DeleteRule(EntityKind.TEMPLATE_PHRASE, "category_id", DeletePolicy.CASCADE),
    ),
    EntityKind.CONVERSATION: (),
    EntityKind.TEMPLATE_PHRASE: (),
}


def ensure_aware(value: datetime) -> datetime:
    """Interpret naive datetimes as local time."""
    if value.tzinfo is None:
        return value.astimezone()
    return value


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def decode_photo(value):
    """Accept raw bytes or base64 text; empty text means no photo."""
    if isinstance(value, str):
        return base64.b64decode(value, validate=True) if value else None
    return value


def encode_photo(data: Optional[bytes]) -> Optional[str]:
    return base64.b64encode(data).decode("ascii") if data else None


# =============================================================================
# ENTITIES
# =============================================================================

class Conversation(BaseModel):
    """
    A journaled money conversation.

    Only `id` is frozen; every other field is mutated in place by the
    caller before `EntityStore.update_conversation` persists it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4, frozen=True)
    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)
    date: datetime
    goal: Optional[str] = Field(default=None, max_length=MAX_GOAL_LENGTH)
    outcome: Optional[str] = Field(default=None, max_length=MAX_OUTCOME_LENGTH)
    emotional_rating: int = Field(
        default=DEFAULT_EMOTIONAL_RATING,
        ge=MIN_EMOTIONAL_RATING,
        le=MAX_EMOTIONAL_RATING,
    )
    notes: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)
    is_resolved: bool = False

    # Relationships
    contact_ids: list[UUID] = Field(default_factory=list)
    category_id: Optional[UUID] = None

    @field_validator('date')
    @classmethod
    def validate_date_is_aware(cls, v: datetime) -> datetime:
        return ensure_aware(v)

    @field_validator('goal', 'outcome', 'notes')
    @classmethod
    def empty_text_is_absent(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)

    @field_validator('contact_ids')
    @classmethod
    def collapse_duplicate_contacts(cls, v: list[UUID]) -> list[UUID]:
        """A contact appears at most once in a conversation."""
        return list(dict.fromkeys(v))

    @property
    def outcome_bucket(self) -> OutcomeBucket:
        return OutcomeBucket.for_rating(self.emotional_rating)


class Contact(BaseModel):
    """A person money conversations are held with."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4, frozen=True)
    name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    relationship_tag: Optional[str] = Field(
        default=None,
        max_length=MAX_RELATIONSHIP_TAG_LENGTH,
    )
    photo_data: Optional[bytes] = Field(
        default=None,
        description="Re-encoded JPEG bytes; base64 in JSON",
    )

    @field_validator('relationship_tag')
    @classmethod
    def empty_tag_is_absent(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)

    @field_validator('photo_data', mode='before')
    @classmethod
    def decode_base64_photo(cls, v):
        return decode_photo(v)

    @field_serializer('photo_data', when_used='json')
    def encode_base64_photo(self, v: Optional[bytes]) -> Optional[str]:
        return encode_photo(v)


class Category(BaseModel):
    """A topic grouping conversations and template phrases."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4, frozen=True)
    name: str = Field(..., min_length=1, max_length=MAX_CATEGORY_NAME_LENGTH)
    icon_name: Optional[str] = Field(default=None, max_length=100)
    accent_color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)

    @field_validator('icon_name', 'accent_color', mode='before')
    @classmethod
    def empty_style_is_absent(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


class TemplatePhrase(BaseModel):
    """A reusable phrase for preparing a conversation."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4, frozen=True)
    text: str = Field(..., min_length=1, max_length=MAX_TEMPLATE_PHRASE_LENGTH)
    category_id: Optional[UUID] = None


# =============================================================================
# GRAPH SNAPSHOT
# =============================================================================

class GraphSnapshot(BaseModel):
    """
    The complete persisted object graph.

    This is the unit the storage backends read and write: every mutation
    re-saves the whole graph.
    """

    schema_version: int = Field(default=1, ge=1)
    saved_at: Optional[datetime] = None
    conversations: list[Conversation] = Field(default_factory=list)
    contacts: list[Contact] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    template_phrases: list[TemplatePhrase] = Field(default_factory=list)

    def collection(self, kind: EntityKind) -> list:
        """Return the mutable list holding entities of one kind."""
        return {
            EntityKind.CONVERSATION: self.conversations,
            EntityKind.CONTACT: self.contacts,
            EntityKind.CATEGORY: self.categories,
            EntityKind.TEMPLATE_PHRASE: self.template_phrases,
        }[kind]

    def find(self, kind: EntityKind, entity_id: UUID):
        for entity in self.collection(kind):
            if entity.id == entity_id:
                return entity
        return None

    def ids(self, kind: EntityKind) -> set[UUID]:
        return {entity.id for entity in self.collection(kind)}
