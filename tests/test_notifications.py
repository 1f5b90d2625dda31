"""Tests for the change channel and audit logging."""

from uuid import uuid4

from structlog.testing import capture_logs

from money_conversations.audit import AuditLogger
from money_conversations.models.entities import EntityKind
from money_conversations.models.events import ChangeEventBuilder
from money_conversations.notifications import ChangeNotifier


class TestChangeNotifier:
    """Tests for publish/subscribe and the version counter."""

    def test_subscribers_receive_events(self):
        """Test every subscriber gets each event."""
        notifier = ChangeNotifier()
        first, second = [], []
        notifier.subscribe(first.append)
        notifier.subscribe(second.append)

        event = ChangeEventBuilder.entity_created(EntityKind.CONTACT, uuid4())
        notifier.publish(event)

        assert first == [event]
        assert second == [event]

    def test_version_counts_commits_only(self):
        """Test failure events do not move the version."""
        notifier = ChangeNotifier()
        assert notifier.next_version() == 1

        notifier.publish(ChangeEventBuilder.entity_created(EntityKind.CONTACT, uuid4()))
        notifier.publish(ChangeEventBuilder.write_failed("create_contact", "Disk full"))

        assert notifier.version == 1
        assert notifier.next_version() == 2

    def test_unsubscribe(self):
        """Test released subscriptions receive nothing."""
        notifier = ChangeNotifier()
        received = []
        subscription = notifier.subscribe(received.append)
        subscription.unsubscribe()
        subscription.unsubscribe()

        notifier.publish(ChangeEventBuilder.entity_created(EntityKind.CONTACT, uuid4()))

        assert received == []
        assert subscription.active is False
        assert notifier.subscriber_count == 0

    def test_subscription_context_manager(self):
        """Test leaving the block unsubscribes."""
        notifier = ChangeNotifier()
        with notifier.subscribe(lambda event: None):
            assert notifier.subscriber_count == 1
        assert notifier.subscriber_count == 0

    def test_failing_subscriber_does_not_block_others(self):
        """Test one raising callback does not stop delivery."""
        notifier = ChangeNotifier()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        notifier.subscribe(broken)
        notifier.subscribe(received.append)
        notifier.publish(ChangeEventBuilder.entity_created(EntityKind.CONTACT, uuid4()))

        assert len(received) == 1

    def test_clear(self):
        """Test clear drops every subscription."""
        notifier = ChangeNotifier()
        notifier.subscribe(lambda event: None)
        notifier.subscribe(lambda event: None)
        notifier.clear()
        assert notifier.subscriber_count == 0


class TestAuditLogger:
    """Tests for the audit logger."""

    def test_logs_events_at_their_severity(self):
        """Test each event becomes one log entry at its level."""
        notifier = ChangeNotifier()
        audit = AuditLogger(notifier)

        with capture_logs() as logs:
            notifier.publish(ChangeEventBuilder.entity_created(EntityKind.CONTACT, uuid4()))
            notifier.publish(ChangeEventBuilder.write_failed("create_contact", "Disk full"))

        assert audit.events_logged == 2
        assert [entry["log_level"] for entry in logs] == ["info", "error"]
        assert logs[1]["error_message"] == "Disk full"

    def test_detach(self):
        """Test a detached logger stops receiving events."""
        notifier = ChangeNotifier()
        audit = AuditLogger(notifier)
        audit.detach()
        notifier.publish(ChangeEventBuilder.entity_created(EntityKind.CONTACT, uuid4()))
        assert audit.events_logged == 0

    def test_log_error(self):
        """Test errors outside the change channel are logged."""
        audit = AuditLogger()
        with capture_logs() as logs:
            audit.log_error("ExportError", "PDF file is empty", {"year": 2025})
        assert logs[0]["event"] == "application_error"
        assert logs[0]["details"] == {"year": 2025}
