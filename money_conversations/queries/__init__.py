"""Query execution package."""

from money_conversations.queries.executor import (
    ConversationQueries,
    InsightsSummary,
    MonthCount,
    Page,
    QueryExecutionError,
    TimelineFilter,
    TrendPoint,
    outcome_bucket,
    paginate,
)

__all__ = [
    "ConversationQueries",
    "InsightsSummary",
    "MonthCount",
    "Page",
    "QueryExecutionError",
    "TimelineFilter",
    "TrendPoint",
    "outcome_bucket",
    "paginate",
]
