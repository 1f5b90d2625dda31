"""
Query Execution Engine

DESIGN DECISION: Queries are READ-ONLY views over the store's in-memory
collections. They never mutate an entity and never touch the backend, so
they can be recomputed freely whenever the change channel reports a new
version.

Results keep the store's default ordering (conversations newest first)
unless a query documents otherwise.
"""

from collections import Counter
from datetime import date, datetime
from math import ceil
from typing import Generic, Optional, TypeVar, Union
from uuid import UUID

from pydantic import BaseModel, Field

from money_conversations.models.entities import (
    SUCCESS_RATING_THRESHOLD,
    Category,
    Contact,
    Conversation,
    EntityKind,
    GraphSnapshot,
    OutcomeBucket,
    TemplatePhrase,
)
from money_conversations.store import EntityStore

T = TypeVar("T")

DEFAULT_SIMILAR_LIMIT = 5


class QueryExecutionError(Exception):
    """A query was called with arguments it cannot answer."""
    pass


# =============================================================================
# RESULT MODELS
# =============================================================================

class TimelineFilter(BaseModel):
    """Conjunctive timeline filter; an unset predicate matches everything."""

    contact_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    outcome: Optional[OutcomeBucket] = None

    def matches(self, conversation: Conversation) -> bool:
        if self.contact_id is not None and self.contact_id not in conversation.contact_ids:
            return False
        if self.category_id is not None and conversation.category_id != self.category_id:
            return False
        if self.outcome is not None and conversation.outcome_bucket != self.outcome:
            return False
        return True


class MonthCount(BaseModel):
    """Number of conversations held in one calendar month."""

    month: str = Field(..., description="YYYY-MM")
    count: int = Field(..., ge=0)


class TrendPoint(BaseModel):
    """One point of the emotional-rating trend line."""

    date: datetime
    rating: int


class Page(BaseModel, Generic[T]):
    """One page of a longer, already-ordered list."""

    items: list[T]
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    total_items: int = Field(..., ge=0)

    @property
    def total_pages(self) -> int:
        return max(1, ceil(self.total_items / self.page_size))

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


class InsightsSummary(BaseModel):
    """Dashboard statistics computed in one pass over the store."""

    total_conversations: int
    resolved_conversations: int
    average_rating: float
    success_rate: float = Field(..., description="Percent of ratings >= 8")
    most_discussed_contact: Optional[str] = None
    most_discussed_category: Optional[str] = None
    per_month: list[MonthCount] = Field(default_factory=list)


# =============================================================================
# HELPERS
# =============================================================================

def _local_day(value: Union[date, datetime]) -> date:
    """Calendar day of `value` on the local calendar."""
    if isinstance(value, datetime):
        return value.astimezone().date()
    return value


def _month_label(value: datetime) -> str:
    return value.astimezone().strftime("%Y-%m")


def outcome_bucket(rating: int) -> OutcomeBucket:
    """Timeline bucket for a rating: successful >= 8, difficult < 5."""
    return OutcomeBucket.for_rating(rating)


def paginate(items: list[T], page: int, page_size: int) -> Page[T]:
    """
    Slice an ordered list into 1-based pages.

    A page past the end returns no items rather than failing.
    """
    if page < 1:
        raise QueryExecutionError(f"page must be 1 or greater, got {page}")
    if page_size < 1:
        raise QueryExecutionError(f"page_size must be 1 or greater, got {page_size}")

    start = (page - 1) * page_size
    return Page(
        items=items[start:start + page_size],
        page=page,
        page_size=page_size,
        total_items=len(items),
    )


def _ref_id(ref) -> Optional[UUID]:
    if ref is None or isinstance(ref, UUID):
        return ref
    return ref.id


def _average_rating(conversations: list[Conversation]) -> float:
    if not conversations:
        return 0.0
    return sum(c.emotional_rating for c in conversations) / len(conversations)


def _success_rate(conversations: list[Conversation]) -> float:
    if not conversations:
        return 0.0
    successful = sum(
        1 for c in conversations
        if c.emotional_rating >= SUCCESS_RATING_THRESHOLD
    )
    return successful / len(conversations) * 100


def _per_month(conversations: list[Conversation]) -> list[MonthCount]:
    counts = Counter(_month_label(c.date) for c in conversations)
    return [
        MonthCount(month=month, count=counts[month])
        for month in sorted(counts)
    ]


def _most_discussed_contact(graph: GraphSnapshot) -> Optional[Contact]:
    counts = Counter()
    for conversation in graph.conversations:
        counts.update(conversation.contact_ids)
    if not counts:
        return None
    # Counter keeps first-insertion order, and max() keeps the first maximum
    contact_id = max(counts, key=counts.__getitem__)
    return graph.find(EntityKind.CONTACT, contact_id)


def _most_discussed_category(graph: GraphSnapshot) -> Optional[Category]:
    counts = Counter(
        c.category_id for c in graph.conversations
        if c.category_id is not None
    )
    if not counts:
        return None
    category_id = max(counts, key=counts.__getitem__)
    return graph.find(EntityKind.CATEGORY, category_id)


# =============================================================================
# QUERIES
# =============================================================================

class ConversationQueries:
    """
    Derived views over an EntityStore.

    Every call reads the store's collections as they are at that moment;
    nothing is cached between calls.
    """

    def __init__(self, store: EntityStore):
        self._store = store

    # -------------------------------------------------------------------------
    # Filters
    # -------------------------------------------------------------------------

    def conversations_with_contact(
        self,
        contact: Union[Contact, UUID],
    ) -> list[Conversation]:
        contact_id = _ref_id(contact)
        return [
            c for c in self._store.conversations if contact_id in c.contact_ids
        ]

    def conversations_in_category(
        self,
        category: Union[Category, UUID],
    ) -> list[Conversation]:
        category_id = _ref_id(category)
        return [
            c for c in self._store.conversations if c.category_id == category_id
        ]

    def conversations_on_date(
        self,
        day: Union[date, datetime],
    ) -> list[Conversation]:
        """Conversations on the same local calendar day as `day`."""
        target = _local_day(day)
        return [
            c for c in self._store.conversations if _local_day(c.date) == target
        ]

    def conversations_in_year(self, year: int) -> list[Conversation]:
        return [
            c for c in self._store.conversations if c.date.astimezone().year == year
        ]

    def filter_timeline(self, timeline_filter: TimelineFilter) -> list[Conversation]:
        """Apply person, category and outcome predicates; newest first."""
        matched = [c for c in self._store.conversations if timeline_filter.matches(c)]
        return sorted(matched, key=lambda c: c.date, reverse=True)

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def conversation_count(self) -> int:
        return len(self._store.conversations)

    def resolved_count(self) -> int:
        return sum(1 for c in self._store.conversations if c.is_resolved)

    def average_emotional_rating(self) -> float:
        """Mean rating over all conversations; 0 when there are none."""
        return _average_rating(self._store.conversations)

    def success_rate(self) -> float:
        """Percentage (0-100) of conversations rated 8 or higher."""
        return _success_rate(self._store.conversations)

    def most_discussed_contact(self) -> Optional[Contact]:
        """
        Contact appearing in the most conversations.

        Ties go to the contact encountered first while walking the
        conversations in store order.
        """
        return _most_discussed_contact(self._store.snapshot())

    def most_discussed_category(self) -> Optional[Category]:
        return _most_discussed_category(self._store.snapshot())

    def conversations_per_month(self) -> list[MonthCount]:
        """Counts per local calendar month, oldest month first."""
        return _per_month(self._store.conversations)

    def emotional_trend(self) -> list[TrendPoint]:
        """(date, rating) pairs, oldest first."""
        ordered = sorted(self._store.conversations, key=lambda c: c.date)
        return [TrendPoint(date=c.date, rating=c.emotional_rating) for c in ordered]

    def insights(self) -> InsightsSummary:
        """Dashboard statistics, all computed from one snapshot."""
        graph = self._store.snapshot()
        conversations = graph.conversations
        contact = _most_discussed_contact(graph)
        category = _most_discussed_category(graph)
        return InsightsSummary(
            total_conversations=len(conversations),
            resolved_conversations=sum(1 for c in conversations if c.is_resolved),
            average_rating=_average_rating(conversations),
            success_rate=_success_rate(conversations),
            most_discussed_contact=contact.name if contact else None,
            most_discussed_category=category.name if category else None,
            per_month=_per_month(conversations),
        )

    # -------------------------------------------------------------------------
    # Lookup helpers for the forms
    # -------------------------------------------------------------------------

    def search_contacts(self, text: str) -> list[Contact]:
        """Case-insensitive substring match on name; blank text returns all."""
        needle = (text or "").strip().casefold()
        contacts = self._store.contacts
        if not needle:
            return contacts
        return [c for c in contacts if needle in c.name.casefold()]

    def search_categories(self, text: str) -> list[Category]:
        needle = (text or "").strip().casefold()
        categories = self._store.categories
        if not needle:
            return categories
        return [c for c in categories if needle in c.name.casefold()]

    def template_phrases_for(
        self,
        category: Union[Category, UUID, None],
    ) -> list[TemplatePhrase]:
        """Phrases owned by `category`, or every phrase when it is None."""
        phrases = self._store.template_phrases
        if category is None:
            return phrases
        category_id = _ref_id(category)
        return [p for p in phrases if p.category_id == category_id]

    def similar_conversations(
        self,
        category: Union[Category, UUID],
        limit: int = DEFAULT_SIMILAR_LIMIT,
    ) -> list[Conversation]:
        """Most recent conversations in a category, for preparing a new one."""
        if limit < 0:
            raise QueryExecutionError(f"limit must not be negative, got {limit}")
        return self.conversations_in_category(category)[:limit]

    def conversations_page(
        self,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Page[Conversation]:
        size = page_size or self._store.settings.items_per_page
        return paginate(self._store.conversations, page, size)
