"""Tests for field validation."""

import pytest
from datetime import datetime, timedelta, timezone

from money_conversations.config import AppSettings
from money_conversations.errors import ValidationError
from money_conversations.models.entities import Contact, Conversation
from money_conversations.validation import (
    EntityValidator,
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

NOW = datetime(2025, 6, 1, 12, tzinfo=timezone.utc)


class TestFieldChecks:
    """Tests for the single-field check functions."""

    def test_title(self):
        """Test title is required and at most 200 characters."""
        assert check_title("Rent split") is None
        assert check_title("x" * 200) is None
        assert check_title("") == "Title cannot be empty"
        assert check_title("   ") == "Title cannot be empty"
        assert check_title(None) == "Title cannot be empty"
        assert check_title("x" * 201) == "Title must be 200 characters or less"

    def test_title_is_trimmed_before_length_check(self):
        """Test surrounding whitespace does not count toward the limit."""
        assert check_title("  " + "x" * 200 + "  ") is None

    def test_optional_text_fields(self):
        """Test goal, outcome and notes allow empty and cap length."""
        assert check_goal(None) is None
        assert check_goal("") is None
        assert check_goal("x" * 1000) is None
        assert check_goal("x" * 1001) == "Goal must be 1000 characters or less"
        assert check_outcome("x" * 1001) == "Outcome must be 1000 characters or less"
        assert check_notes("x" * 2000) is None
        assert check_notes("x" * 2001) == "Notes must be 2000 characters or less"

    def test_contact_fields(self):
        """Test contact name and relationship tag limits."""
        assert check_contact_name("Alex") is None
        assert check_contact_name("") == "Name cannot be empty"
        assert check_contact_name("x" * 101) == "Name must be 100 characters or less"
        assert check_relationship_tag(None) is None
        assert check_relationship_tag("x" * 50) is None
        assert check_relationship_tag("x" * 51) is not None

    def test_category_and_phrase(self):
        """Test category name and template phrase limits."""
        assert check_category_name("Family") is None
        assert check_category_name("") == "Category name cannot be empty"
        assert check_category_name("x" * 51) is not None
        assert check_template_phrase("Can we talk about rent?") is None
        assert check_template_phrase(" ") == "Template phrase cannot be empty"
        assert check_template_phrase("x" * 501) is not None

    def test_accent_color(self):
        """Test accent color accepts hex with or without '#'."""
        assert check_accent_color(None) is None
        assert check_accent_color("4A7C9B") is None
        assert check_accent_color("#4a7c9bff") is None
        assert check_accent_color("teal") is not None

    @pytest.mark.parametrize("rating", [1, 5, 10])
    def test_rating_in_range(self, rating):
        """Test ratings 1-10 are accepted."""
        assert check_emotional_rating(rating) is None

    @pytest.mark.parametrize("rating", [0, 11, -3])
    def test_rating_out_of_range(self, rating):
        """Test out-of-range ratings are rejected, not clamped."""
        assert check_emotional_rating(rating) == "Emotional rating must be between 1 and 10"

    def test_rating_must_be_int(self):
        """Test non-integer ratings are rejected."""
        assert check_emotional_rating(True) is not None
        assert check_emotional_rating(7.5) is not None

    def test_date_bounds(self):
        """Test dates up to one year ahead are allowed."""
        assert check_date(NOW - timedelta(days=3000), now=NOW) is None
        assert check_date(NOW + timedelta(days=365), now=NOW) is None
        assert check_date(NOW + timedelta(days=366), now=NOW) == (
            "Date cannot be more than 1 year in the future"
        )
        assert check_date(None, now=NOW) == "Date is required"

    def test_date_tolerance_is_configurable(self):
        """Test a custom tolerance is honored."""
        assert check_date(NOW + timedelta(days=10), now=NOW, tolerance_days=7) is not None

    def test_image_size(self):
        """Test payloads above the limit are rejected."""
        assert check_image_size(b"x" * 100, max_bytes=100) is None
        assert check_image_size(b"x" * 101, max_bytes=100) is not None
        assert check_image_size(b"x" * (5 * 1024 * 1024 + 1)) == "Image size must be 5MB or less"


class TestEntityValidator:
    """Tests for per-entity validation."""

    def test_collects_every_issue(self):
        """Test all failing fields are reported in order."""
        validator = EntityValidator(AppSettings())
        result = validator.validate_conversation(
            title="",
            date=NOW,
            emotional_rating=12,
            now=NOW,
        )
        assert result.is_valid is False
        assert [issue.field for issue in result.issues] == ["title", "emotional_rating"]
        assert result.first_issue.field == "title"

    def test_valid_conversation(self):
        """Test a valid conversation yields no issues."""
        validator = EntityValidator(AppSettings())
        result = validator.validate_conversation(
            title="Rent",
            date=NOW,
            goal="Split evenly",
            emotional_rating=7,
            now=NOW,
        )
        assert result.is_valid is True
        assert result.summary() == "All fields are valid."

    def test_raise_for_errors(self):
        """Test the first issue is raised as ValidationError."""
        result = ValidationResult()
        result.add("name", None)
        result.raise_for_errors()

        result.add("name", "Name cannot be empty")
        with pytest.raises(ValidationError) as exc_info:
            result.raise_for_errors()
        assert exc_info.value.field == "name"
        assert exc_info.value.reason == "Name cannot be empty"
        assert exc_info.value.to_dict()["kind"] == "validation"

    def test_validate_entity_dispatches_by_type(self):
        """Test existing records are re-checked with the create rules."""
        validator = EntityValidator(AppSettings())
        conversation = Conversation(title="Rent", date=NOW)
        conversation.title = ""
        assert validator.validate_entity(conversation, now=NOW).first_issue.field == "title"

        contact = Contact(name="Alex")
        contact.relationship_tag = "x" * 60
        assert validator.validate_entity(contact).first_issue.field == "relationship_tag"

    def test_validate_entity_rejects_other_types(self):
        """Test non-entities are a programming error."""
        with pytest.raises(TypeError):
            EntityValidator(AppSettings()).validate_entity("not an entity")

    def test_photo_size_uses_settings(self):
        """Test the photo limit comes from AppSettings."""
        validator = EntityValidator(AppSettings(max_image_size_mb=1))
        assert validator.check_photo_size(b"x" * (1024 * 1024)) is None
        assert validator.check_photo_size(b"x" * (1024 * 1024 + 1)) == "Image size must be 1MB or less"
