"""
Field Validation

Each check_* function takes one field value and returns None when the value
is acceptable or a human-readable reason when it is not. They perform no I/O
and have no side effects. String inputs are trimmed before length checks,
matching what the models store.

EntityValidator bundles the checks per entity and collects the failures
into a ValidationResult, so forms can show every problem at once while the
store raises on the first one.

IMPORTANT: Validation NEVER silently fixes values. Out-of-range ratings are
rejected, not clamped.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from money_conversations.config import AppSettings, get_settings
from money_conversations.errors import ValidationError
from money_conversations.models.entities import (
    HEX_COLOR_PATTERN,
    MAX_CATEGORY_NAME_LENGTH,
    MAX_EMOTIONAL_RATING,
    MAX_GOAL_LENGTH,
    MAX_NAME_LENGTH,
    MAX_NOTES_LENGTH,
    MAX_OUTCOME_LENGTH,
    MAX_RELATIONSHIP_TAG_LENGTH,
    MAX_TEMPLATE_PHRASE_LENGTH,
    MAX_TITLE_LENGTH,
    MIN_EMOTIONAL_RATING,
    Category,
    Contact,
    Conversation,
    TemplatePhrase,
    ensure_aware,
)

_HEX_COLOR = re.compile(HEX_COLOR_PATTERN)

DEFAULT_MAX_IMAGE_BYTES = 5 * 1024 * 1024


# =============================================================================
# FIELD CHECKS
# =============================================================================

def _trimmed(value: Optional[str]) -> str:
    return (value or "").strip()


def _check_required(value: Optional[str], label: str, max_length: int) -> Optional[str]:
    text = _trimmed(value)
    if not text:
        return f"{label} cannot be empty"
    if len(text) > max_length:
        return f"{label} must be {max_length} characters or less"
    return None


def _check_optional(value: Optional[str], label: str, max_length: int) -> Optional[str]:
    if len(_trimmed(value)) > max_length:
        return f"{label} must be {max_length} characters or less"
    return None


def check_title(value: Optional[str]) -> Optional[str]:
    return _check_required(value, "Title", MAX_TITLE_LENGTH)


def check_goal(value: Optional[str]) -> Optional[str]:
    return _check_optional(value, "Goal", MAX_GOAL_LENGTH)


def check_outcome(value: Optional[str]) -> Optional[str]:
    return _check_optional(value, "Outcome", MAX_OUTCOME_LENGTH)


def check_notes(value: Optional[str]) -> Optional[str]:
    return _check_optional(value, "Notes", MAX_NOTES_LENGTH)


def check_contact_name(value: Optional[str]) -> Optional[str]:
    return _check_required(value, "Name", MAX_NAME_LENGTH)


def check_relationship_tag(value: Optional[str]) -> Optional[str]:
    return _check_optional(value, "Relationship tag", MAX_RELATIONSHIP_TAG_LENGTH)


def check_category_name(value: Optional[str]) -> Optional[str]:
    return _check_required(value, "Category name", MAX_CATEGORY_NAME_LENGTH)


def check_template_phrase(value: Optional[str]) -> Optional[str]:
    return _check_required(value, "Template phrase", MAX_TEMPLATE_PHRASE_LENGTH)


def check_accent_color(value: Optional[str]) -> Optional[str]:
    text = _trimmed(value)
    if text and not _HEX_COLOR.match(text):
        return "Accent color must be a hex color such as 4A7C9B"
    return None


def check_emotional_rating(value: int) -> Optional[str]:
    # bool is an int subclass; True is not a rating
    if isinstance(value, bool) or not isinstance(value, int):
        return "Emotional rating must be a whole number"
    if value < MIN_EMOTIONAL_RATING or value > MAX_EMOTIONAL_RATING:
        return (
            f"Emotional rating must be between {MIN_EMOTIONAL_RATING} "
            f"and {MAX_EMOTIONAL_RATING}"
        )
    return None


def check_date(
    value: Optional[datetime],
    now: Optional[datetime] = None,
    tolerance_days: int = 365,
) -> Optional[str]:
    if value is None:
        return "Date is required"
    now = ensure_aware(now) if now else datetime.now(timezone.utc)
    if ensure_aware(value) > now + timedelta(days=tolerance_days):
        return "Date cannot be more than 1 year in the future"
    return None


def check_image_size(
    data: bytes,
    max_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
) -> Optional[str]:
    if len(data) > max_bytes:
        return f"Image size must be {max_bytes // (1024 * 1024)}MB or less"
    return None


# =============================================================================
# RESULTS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single field that failed validation."""

    field: str = Field(..., description="Field with the issue")
    message: str = Field(..., description="Human-readable reason")


class ValidationResult(BaseModel):
    """All issues found while validating one entity."""

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def first_issue(self) -> Optional[ValidationIssue]:
        return self.issues[0] if self.issues else None

    def add(self, field: str, reason: Optional[str]) -> None:
        if reason is not None:
            self.issues.append(ValidationIssue(field=field, message=reason))

    def raise_for_errors(self) -> None:
        """Raise ValidationError for the first issue, if any."""
        issue = self.first_issue
        if issue is not None:
            raise ValidationError(issue.field, issue.message)

    def summary(self) -> str:
        if self.is_valid:
            return "All fields are valid."
        return "\n".join(f"• {issue.message}" for issue in self.issues)


# =============================================================================
# ENTITY VALIDATOR
# =============================================================================

class EntityValidator:
    """
    Validates the fields of each entity kind.

    Limits that are tunable (future-date tolerance, photo size) come from
    AppSettings; the field lengths are fixed by the data model.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def validate_conversation(
        self,
        title: Optional[str],
        date: Optional[datetime],
        goal: Optional[str] = None,
        outcome: Optional[str] = None,
        emotional_rating: int = 5,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        result = ValidationResult()
        result.add("title", check_title(title))
        result.add("goal", check_goal(goal))
        result.add("outcome", check_outcome(outcome))
        result.add("notes", check_notes(notes))
        result.add("emotional_rating", check_emotional_rating(emotional_rating))
        result.add(
            "date",
            check_date(date, now, self._settings.future_date_tolerance_days),
        )
        return result

    def validate_contact(
        self,
        name: Optional[str],
        relationship_tag: Optional[str] = None,
    ) -> ValidationResult:
        result = ValidationResult()
        result.add("name", check_contact_name(name))
        result.add("relationship_tag", check_relationship_tag(relationship_tag))
        return result

    def validate_category(
        self,
        name: Optional[str],
        accent_color: Optional[str] = None,
    ) -> ValidationResult:
        result = ValidationResult()
        result.add("name", check_category_name(name))
        result.add("accent_color", check_accent_color(accent_color))
        return result

    def validate_template_phrase(self, text: Optional[str]) -> ValidationResult:
        result = ValidationResult()
        result.add("text", check_template_phrase(text))
        return result

    def check_photo_size(self, data: bytes) -> Optional[str]:
        return check_image_size(data, self._settings.max_image_size_bytes)

    def validate_entity(
        self,
        entity: Union[Conversation, Contact, Category, TemplatePhrase],
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        """Re-run the create-time checks against an existing record."""
        if isinstance(entity, Conversation):
            return self.validate_conversation(
                title=entity.title,
                date=entity.date,
                goal=entity.goal,
                outcome=entity.outcome,
                emotional_rating=entity.emotional_rating,
                notes=entity.notes,
                now=now,
            )
        if isinstance(entity, Contact):
            return self.validate_contact(entity.name, entity.relationship_tag)
        if isinstance(entity, Category):
            return self.validate_category(entity.name, entity.accent_color)
        if isinstance(entity, TemplatePhrase):
            return self.validate_template_phrase(entity.text)
        raise TypeError(f"Not an entity: {type(entity).__name__}")
