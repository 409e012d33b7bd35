"""
Google Sheets Report Export

DESIGN DECISION: Reports are exported to Google Sheets because:
1. Users can open the link from WhatsApp on any phone
2. No file hosting or download expiry to manage
3. The sheet stays editable for the user's own notes

Each export becomes a new worksheet in the configured spreadsheet.
Styling is out of scope; rows are written as plain values.
"""

from abc import ABC, abstractmethod
from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from kanemane.config import GoogleSheetsSettings, get_settings
from kanemane.ledger.reports import FinancialReport


REPORT_COLUMNS = [
    "Tanggal",
    "Tipe",
    "Kategori",
    "Aset",
    "Jumlah",
    "Mata Uang",
    "Catatan",
]


class ExportError(Exception):
    """Report could not be written to the export target."""
    pass


class ReportExporterInterface(ABC):
    """
    Abstract interface for report exporters.
    """

    @abstractmethod
    async def export(self, report: FinancialReport, title: Optional[str] = None) -> str:
        """
        Write a report somewhere the user can open it.

        Returns:
            URL of the exported report

        Raises:
            ExportError: If the export fails
        """
        pass


def report_to_rows(report: FinancialReport) -> list[list]:
    """
    Lay a report out as sheet rows: transactions, then totals, then assets.
    """
    period = report.period
    rows: list[list] = [
        [f"Laporan Keuangan: {period.label}"],
        [f"Periode: {period.start.isoformat()} s/d {period.end.isoformat()}"],
        [],
        list(REPORT_COLUMNS),
    ]
    for row in report.rows:
        rows.append([
            row.date.isoformat(),
            row.type,
            row.category,
            row.asset,
            str(row.amount),
            row.currency.value,
            row.note,
        ])

    rows += [[], ["Ringkasan"], ["Mata Uang", "Pemasukan", "Pengeluaran", "Selisih"]]
    for totals in report.totals:
        rows.append([
            totals.currency.value,
            str(totals.income),
            str(totals.expense),
            str(totals.net),
        ])

    rows += [[], ["Saldo Aset"], ["Aset", "Tipe", "Mata Uang", "Saldo"]]
    for asset in report.assets:
        rows.append([asset.name, asset.type, asset.currency.value, str(asset.balance)])

    return rows


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._configured = settings

    @property
    def _settings(self) -> GoogleSheetsSettings:
        # Resolved on first use so the bot can start without Sheets configured
        if self._configured is None:
            self._configured = get_settings().google_sheets
        return self._configured

    @property
    def spreadsheet_id(self) -> str:
        return self._settings.spreadsheet_id

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=["https://www.googleapis.com/auth/spreadsheets"],
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ExportError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ExportError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ExportError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def write_worksheet(self, title: str, rows: list[list]) -> gspread.Worksheet:
        """Create a worksheet and fill it from A1."""
        spreadsheet = self.get_spreadsheet()
        width = max((len(row) for row in rows), default=1)
        sheet = spreadsheet.add_worksheet(title=title, rows=len(rows) + 10, cols=width)
        sheet.update(values=rows, range_name="A1", value_input_option="USER_ENTERED")
        return sheet


class GoogleSheetsReportExporter(ReportExporterInterface):
    """Exports each report to a new worksheet."""

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        title_prefix: Optional[str] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._title_prefix = title_prefix

    def _default_title(self, report: FinancialReport) -> str:
        prefix = self._title_prefix
        if prefix is None:
            prefix = get_settings().google_sheets.report_title_prefix
        stamp = report.generated_at.strftime("%Y-%m-%d %H%M%S")
        return f"{prefix} {report.period.label} {stamp}"

    async def export(self, report: FinancialReport, title: Optional[str] = None) -> str:
        try:
            title = title or self._default_title(report)
            sheet = self._client.write_worksheet(title, report_to_rows(report))
            spreadsheet_id = self._client.spreadsheet_id
        except ExportError:
            raise
        except Exception as e:
            raise ExportError(f"Failed to write report: {e}") from e

        return f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}/edit#gid={sheet.id}"
