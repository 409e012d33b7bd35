"""Report export package."""

from kanemane.services.export.google_sheets import (
    REPORT_COLUMNS,
    ExportError,
    GoogleSheetsClient,
    GoogleSheetsReportExporter,
    ReportExporterInterface,
    report_to_rows,
)

__all__ = [
    "REPORT_COLUMNS",
    "ExportError",
    "GoogleSheetsClient",
    "GoogleSheetsReportExporter",
    "ReportExporterInterface",
    "report_to_rows",
]
