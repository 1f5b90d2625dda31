"""Backup and report export package."""

from money_conversations.export.backup import (
    BackupDocument,
    ImportFailure,
    ImportReport,
    dumps_backup,
    export_backup,
    import_backup,
    parse_backup,
    read_backup,
    write_backup,
)
from money_conversations.export.report import (
    ReportEntry,
    ReportPage,
    ReportRenderer,
    build_report,
    layout_report,
    render_report_pdf,
    write_report,
)

__all__ = [
    # Backup
    "BackupDocument",
    "ImportFailure",
    "ImportReport",
    "dumps_backup",
    "export_backup",
    "import_backup",
    "parse_backup",
    "read_backup",
    "write_backup",
    # Report
    "ReportEntry",
    "ReportPage",
    "ReportRenderer",
    "build_report",
    "layout_report",
    "render_report_pdf",
    "write_report",
]
