"""Validation package."""

from money_conversations.validation.validator import (
    EntityValidator,
    ValidationIssue,
    ValidationResult,
    check_accent_color,
    check_category_name,
    check_contact_name,
    check_date,
    check_emotional_rating,
    check_goal,
    check_image_size,
    check_notes,
    check_outcome,
    check_relationship_tag,
    check_template_phrase,
    check_title,
)

__all__ = [
    "EntityValidator",
    "ValidationIssue",
    "ValidationResult",
    "check_accent_color",
    "check_category_name",
    "check_contact_name",
    "check_date",
    "check_emotional_rating",
    "check_goal",
    "check_image_size",
    "check_notes",
    "check_outcome",
    "check_relationship_tag",
    "check_template_phrase",
    "check_title",
]
