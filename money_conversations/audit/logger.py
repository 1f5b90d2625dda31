"""
Audit Logger

DESIGN DECISION: Every committed change to the entity graph, and every
rejected one, is logged as a structured event. This provides:
1. Complete traceability of what the store did
2. Debugging capability when a write or import fails
3. A place to see partial-import failures that the UI may not show

The audit logger:
- Subscribes to the store's change channel
- Never raises back into the store (the change is already committed)
- Uses the event's severity as the log level
"""

import logging
from typing import Optional

import structlog

from money_conversations.models.events import ChangeEvent, EventSeverity
from money_conversations.notifications import ChangeNotifier, Subscription


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog for local JSON logging."""
    log_level = getattr(logging, level, logging.INFO)
    logging.basicConfig(format="%(message)s", level=log_level)
    # basicConfig is a no-op once the root logger has handlers
    logging.getLogger().setLevel(log_level)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Central audit logging service.

    Attach it to a ChangeNotifier to log every store event, or call the
    log_* helpers directly from code paths outside the store.
    """

    def __init__(self, notifier: Optional[ChangeNotifier] = None):
        self._logger = structlog.get_logger("money_conversations.audit")
        self._subscription: Optional[Subscription] = None
        self.events_logged = 0
        if notifier is not None:
            self.attach(notifier)

    def attach(self, notifier: ChangeNotifier) -> Subscription:
        """Start logging events published on `notifier`."""
        self.detach()
        self._subscription = notifier.subscribe(self.log)
        return self._subscription

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def log(self, event: ChangeEvent) -> None:
        """Log one change event at the level its severity names."""
        log_dict = event.to_log_dict()

        if event.severity == EventSeverity.ERROR:
            self._logger.error("change_event", **log_dict)
        elif event.severity == EventSeverity.WARNING:
            self._logger.warning("change_event", **log_dict)
        elif event.severity == EventSeverity.DEBUG:
            self._logger.debug("change_event", **log_dict)
        else:
            self._logger.info("change_event", **log_dict)

        self.events_logged += 1

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log an error that did not come through the change channel."""
        self._logger.error(
            "application_error",
            error_type=error_type,
            error_message=error_message,
            details=details or {},
        )
