"""
Tests for report periods, report building, the dashboard aggregates
and the sheet layout.
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from kanemane.ledger import DashboardService, FamilyService, ReportService
from kanemane.ledger.reports import ReportPeriod, period_for_choice
from kanemane.models.ledger import AssetType, Country, Currency, TransactionMeta, User
from kanemane.services.export.google_sheets import (
    REPORT_COLUMNS,
    ExportError,
    GoogleSheetsClient,
    GoogleSheetsReportExporter,
    report_to_rows,
)


MARCH = ReportPeriod(label="Bulan ini", start=date(2026, 3, 1), end=date(2026, 3, 31))


class TestPeriods:

    def test_this_month(self):
        period = period_for_choice("1", today=date(2026, 3, 15))
        assert (period.start, period.end) == (date(2026, 3, 1), date(2026, 3, 31))
        assert period.label == "Bulan ini"

    def test_three_months_spans_new_year(self):
        period = period_for_choice("2", today=date(2026, 2, 10))
        assert (period.start, period.end) == (date(2025, 12, 1), date(2026, 2, 28))

    def test_six_months(self):
        period = period_for_choice("3", today=date(2026, 6, 30))
        assert (period.start, period.end) == (date(2026, 1, 1), date(2026, 6, 30))

    def test_this_year(self):
        period = period_for_choice("4", today=date(2028, 2, 3))
        assert (period.start, period.end) == (date(2028, 1, 1), date(2028, 2, 29))

    @pytest.mark.parametrize("choice", ["", "5", "0", "satu", None])
    def test_invalid_choice(self, choice):
        assert period_for_choice(choice, today=date(2026, 3, 15)) is None


class TestReportService:

    async def test_build_sums_per_currency(self, ledger, user, wallet):
        bca = await ledger.open_asset(
            owner=user.owner,
            name="BCA",
            asset_type=AssetType.SAVINGS,
            country=Country.ID,
            currency=Currency.IDR,
        )
        await ledger.record_income(bca.id, 500000, TransactionMeta(category="Gaji", date=date(2026, 3, 1)))
        await ledger.record_expense(bca.id, 75000, TransactionMeta(category="Transportasi", date=date(2026, 3, 2)))
        await ledger.record_expense(
            wallet.id, 1500, TransactionMeta(category="Makanan", date=date(2026, 3, 3), note="ramen")
        )
        # Outside the period
        await ledger.record_expense(wallet.id, 800, TransactionMeta(category="Makanan", date=date(2026, 4, 1)))

        report = await ReportService(ledger).build(user.owners, MARCH)

        assert report.row_count == 3
        assert [row.date for row in report.rows] == [date(2026, 3, 1), date(2026, 3, 2), date(2026, 3, 3)]
        assert report.rows[2].asset == "Yucho"
        assert report.rows[2].note == "ramen"
        assert report.rows[0].note == "-"

        idr = report.totals_for(Currency.IDR)
        assert idr.income == Decimal("500000.00")
        assert idr.expense == Decimal("75000.00")
        assert idr.net == Decimal("425000.00")

        jpy = report.totals_for(Currency.JPY)
        assert jpy.income == Decimal("0.00")
        assert jpy.expense == Decimal("1500.00")

        balances = {a.name: a.balance for a in report.assets}
        assert balances == {"Yucho": Decimal("7700.00"), "BCA": Decimal("425000.00")}

    async def test_empty_period(self, ledger, user, wallet):
        period = ReportPeriod(label="Tahun ini", start=date(2001, 1, 1), end=date(2001, 12, 31))
        report = await ReportService(ledger).build(user.owners, period)

        assert report.rows == []
        assert report.totals == []
        assert report.totals_for(Currency.JPY) is None
        assert [a.name for a in report.assets] == ["Yucho"]

    async def test_other_users_are_excluded(self, ledger, storage, user, wallet):
        other = User(name="Sari", phone="6289876543210")
        storage.save_user(other)
        paypay = await ledger.open_asset(
            owner=other.owner,
            name="PayPay",
            asset_type=AssetType.E_MONEY,
            country=Country.JP,
            currency=Currency.JPY,
            opening_balance=Decimal("3000"),
        )
        await ledger.record_expense(paypay.id, 100, TransactionMeta(category="Makanan", date=date(2026, 3, 5)))

        report = await ReportService(ledger).build(user.owners, MARCH)

        assert report.rows == []
        assert [a.name for a in report.assets] == ["Yucho"]


def on(day: date, category: str = "Makanan") -> TransactionMeta:
    return TransactionMeta(category=category, date=day)


async def open_pair(ledger, user):
    """An empty JPY and an empty IDR asset, so no opening balance is booked."""
    yucho = await ledger.open_asset(
        owner=user.owner, name="Yucho", asset_type=AssetType.SAVINGS,
        country=Country.JP, currency=Currency.JPY,
    )
    bca = await ledger.open_asset(
        owner=user.owner, name="BCA", asset_type=AssetType.SAVINGS,
        country=Country.ID, currency=Currency.IDR,
    )
    return yucho, bca


class TestDashboardService:
    """Monthly summary and chart series, with March 15th 2026 as today."""

    TODAY = date(2026, 3, 15)

    async def seed(self, ledger, user):
        yucho, bca = await open_pair(ledger, user)
        await ledger.record_income(yucho.id, 200000, on(date(2026, 3, 1), "Gaji"))
        await ledger.record_expense(yucho.id, 1500, on(date(2026, 3, 3)))
        await ledger.record_expense(yucho.id, 800, on(date(2026, 3, 10)))
        await ledger.record_expense(yucho.id, 2000, on(date(2026, 3, 12), "Transportasi"))
        await ledger.record_expense(yucho.id, 5000, on(date(2026, 1, 20), "Sewa"))
        # Before the six month window
        await ledger.record_expense(yucho.id, 100, on(date(2025, 9, 30)))
        await ledger.record_income(bca.id, 500000, on(date(2026, 2, 25), "Gaji"))
        await ledger.record_expense(bca.id, 75000, on(date(2026, 3, 5), "Belanja"))
        return yucho, bca

    async def test_summary_totals_per_currency(self, ledger, user):
        await self.seed(ledger, user)

        summary = await DashboardService(ledger).summary(user.owners, today=self.TODAY)

        assert (summary.month.start, summary.month.end) == (date(2026, 3, 1), date(2026, 3, 31))
        assert [(b.currency, b.total) for b in summary.balances] == [
            (Currency.JPY, Decimal("190600.00")),
            (Currency.IDR, Decimal("425000.00")),
        ]

        jpy = summary.monthly_for(Currency.JPY)
        assert (jpy.income, jpy.expense) == (Decimal("200000.00"), Decimal("4300.00"))
        idr = summary.monthly_for(Currency.IDR)
        assert (idr.income, idr.expense, idr.net) == (
            Decimal("0.00"), Decimal("75000.00"), Decimal("-75000.00")
        )

    async def test_top_expense_category_of_the_month(self, ledger, user):
        await self.seed(ledger, user)

        summary = await DashboardService(ledger).summary(user.owners, today=self.TODAY)

        top = summary.top_category_for(Currency.JPY)
        assert (top.category, top.amount) == ("Makanan", Decimal("2300.00"))
        assert summary.top_category_for(Currency.IDR).category == "Belanja"

    async def test_recent_transactions_newest_first(self, ledger, user):
        await self.seed(ledger, user)

        summary = await DashboardService(ledger).summary(user.owners, today=self.TODAY)

        assert len(summary.recent) == 8
        assert summary.recent[0].date == date(2026, 3, 12)
        assert summary.recent[0].category == "Transportasi"
        assert summary.recent[0].asset == "Yucho"
        assert summary.recent[-1].date == date(2025, 9, 30)

    async def test_recent_transactions_are_capped_at_ten(self, ledger, user):
        yucho, _ = await open_pair(ledger, user)
        await ledger.record_income(yucho.id, 10000, on(date(2026, 2, 1), "Gaji"))
        for day in range(1, 13):
            await ledger.record_expense(yucho.id, 100, on(date(2026, 3, day)))

        summary = await DashboardService(ledger).summary(user.owners, today=self.TODAY)

        assert [row.date.day for row in summary.recent] == list(range(12, 2, -1))

    async def test_empty_ledger(self, ledger, user):
        summary = await DashboardService(ledger).summary(user.owners, today=self.TODAY)

        assert summary.balances == []
        assert summary.recent == []
        assert summary.top_category_for(Currency.JPY) is None
        assert summary.monthly_for(Currency.JPY).net == Decimal("0.00")

    async def test_trend_covers_six_months(self, ledger, user):
        await self.seed(ledger, user)

        charts = await DashboardService(ledger).charts(user.owners, today=self.TODAY)

        assert [m.month for m in charts.trend] == [
            "2025-10", "2025-11", "2025-12", "2026-01", "2026-02", "2026-03",
        ]
        rows = charts.trend_rows(Currency.JPY)
        assert rows[3] == {"month": "2026-01", "Pemasukan": 0.0, "Pengeluaran": 5000.0}
        assert rows[5] == {"month": "2026-03", "Pemasukan": 200000.0, "Pengeluaran": 4300.0}
        assert rows[0]["Pengeluaran"] == 0.0
        assert charts.trend_rows(Currency.IDR)[4]["Pemasukan"] == 500000.0

    async def test_category_breakdown_of_the_month(self, ledger, user):
        await self.seed(ledger, user)

        charts = await DashboardService(ledger).charts(user.owners, today=self.TODAY)

        assert charts.category_rows(Currency.JPY) == [
            {"category": "Makanan", "amount": 2300.0},
            {"category": "Transportasi", "amount": 2000.0},
        ]
        assert charts.category_rows(Currency.IDR) == [{"category": "Belanja", "amount": 75000.0}]

    async def test_family_assets_are_included(self, ledger, storage, user):
        family = await FamilyService(storage).create_family(user, "Keluarga Budi")
        shared = await ledger.open_asset(
            owner=family.owner, name="Tabungan Keluarga", asset_type=AssetType.SAVINGS,
            country=Country.ID, currency=Currency.IDR,
        )
        await ledger.record_income(shared.id, 90000, on(date(2026, 3, 2), "Gaji"))

        summary = await DashboardService(ledger).summary(user.owners, today=self.TODAY)

        assert summary.monthly_for(Currency.IDR).income == Decimal("90000.00")
        assert summary.recent[0].asset == "Tabungan Keluarga"


class TestSheetLayout:

    async def test_rows(self, ledger, user, wallet):
        await ledger.record_expense(
            wallet.id, 1500, TransactionMeta(category="Makanan", date=date(2026, 3, 3), note="ramen")
        )
        report = await ReportService(ledger).build(user.owners, MARCH)

        rows = report_to_rows(report)

        assert rows[0] == ["Laporan Keuangan: Bulan ini"]
        assert rows[1] == ["Periode: 2026-03-01 s/d 2026-03-31"]
        assert rows[3] == REPORT_COLUMNS
        assert rows[4] == ["2026-03-03", "Pengeluaran", "Makanan", "Yucho", "1500.00", "JPY", "ramen"]
        assert ["JPY", "0.00", "1500.00", "-1500.00"] in rows
        assert ["Yucho", "Tabungan", "JPY", "8500.00"] in rows


class FakeSheetsClient(GoogleSheetsClient):
    def __init__(self, fail=False):
        super().__init__(settings=None)
        self.fail = fail
        self.written = []

    @property
    def spreadsheet_id(self) -> str:
        return "sheet-123"

    def write_worksheet(self, title, rows):
        if self.fail:
            raise RuntimeError("quota exceeded")
        self.written.append((title, rows))
        return SimpleNamespace(id=42)


class TestSheetsExporter:

    async def test_export_returns_worksheet_link(self, ledger, user, wallet):
        client = FakeSheetsClient()
        report = await ReportService(ledger).build(user.owners, MARCH)

        url = await GoogleSheetsReportExporter(client, title_prefix="Laporan").export(report)

        assert url == "https://docs.google.com/spreadsheets/d/sheet-123/edit#gid=42"
        title, rows = client.written[0]
        assert title.startswith("Laporan Bulan ini ")
        assert rows == report_to_rows(report)

    async def test_failure_becomes_export_error(self, ledger, user, wallet):
        report = await ReportService(ledger).build(user.owners, MARCH)
        exporter = GoogleSheetsReportExporter(FakeSheetsClient(fail=True), title_prefix="Laporan")

        with pytest.raises(ExportError, match="quota exceeded"):
            await exporter.export(report, title="Maret")
