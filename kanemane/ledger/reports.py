"""
Financial Reports

Builds the per-period summary that the bot exports to Google Sheets:
every transaction in the period, income/expense totals per currency,
and a snapshot of current asset balances. Also builds the dashboard
summary and chart series shown in the web app.

Amounts in different currencies are never added together.
"""

import datetime as dt
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from kanemane.ledger.engine import LedgerEngine
from kanemane.models.ledger import Currency, Transaction, TransactionKind
from kanemane.services.storage.interface import AnyOwner


RECENT_TRANSACTION_LIMIT = 10
TREND_MONTHS = 6

# Menu shown by the export flow: choice -> (label, months covered, None = calendar year)
EXPORT_PERIODS: dict[str, tuple[str, Optional[int]]] = {
    "1": ("Bulan ini", 1),
    "2": ("3 bulan terakhir", 3),
    "3": ("6 bulan terakhir", 6),
    "4": ("Tahun ini", None),
}


class ReportPeriod(BaseModel):
    """Inclusive date range of a report."""

    label: str
    start: dt.date
    end: dt.date


def _first_of_month(day: dt.date, months_back: int = 0) -> dt.date:
    index = day.year * 12 + (day.month - 1) - months_back
    return dt.date(index // 12, index % 12 + 1, 1)


def _last_of_month(day: dt.date) -> dt.date:
    next_month = day.replace(day=28) + dt.timedelta(days=4)
    return next_month - dt.timedelta(days=next_month.day)


def period_for_choice(choice: str, today: Optional[dt.date] = None) -> Optional[ReportPeriod]:
    """
    Translate an export menu answer into a date range.

    "3 bulan terakhir" is the current month plus the two before it.
    Returns None for anything that is not a menu choice.
    """
    option = EXPORT_PERIODS.get((choice or "").strip())
    if option is None:
        return None

    today = today or dt.date.today()
    label, months = option
    if months is None:
        start = dt.date(today.year, 1, 1)
    else:
        start = _first_of_month(today, months - 1)
    return ReportPeriod(label=label, start=start, end=_last_of_month(today))


class ReportRow(BaseModel):
    """One transaction as it appears in an exported report."""

    date: dt.date
    type: str
    category: str
    asset: str
    amount: Decimal
    currency: Currency
    note: str = "-"


class CurrencyTotals(BaseModel):
    currency: Currency
    income: Decimal = Decimal("0.00")
    expense: Decimal = Decimal("0.00")

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class AssetSnapshot(BaseModel):
    name: str
    type: str
    currency: Currency
    balance: Decimal


class FinancialReport(BaseModel):
    """Everything an exporter needs to render a report."""

    period: ReportPeriod
    rows: list[ReportRow] = Field(default_factory=list)
    totals: list[CurrencyTotals] = Field(default_factory=list)
    assets: list[AssetSnapshot] = Field(default_factory=list)
    generated_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def totals_for(self, currency: Currency) -> Optional[CurrencyTotals]:
        for totals in self.totals:
            if totals.currency == currency:
                return totals
        return None


def _report_row(tx: Transaction, asset_names: dict) -> ReportRow:
    return ReportRow(
        date=tx.date,
        type=tx.kind.label,
        category=tx.category,
        asset=asset_names.get(tx.asset_id, "-"),
        amount=tx.amount,
        currency=tx.currency,
        note=tx.note or "-",
    )


def _totals_by_currency(transactions: Iterable[Transaction]) -> list[CurrencyTotals]:
    """Income and expense per currency, in Currency order."""
    totals: dict[Currency, CurrencyTotals] = {}
    for tx in transactions:
        bucket = totals.setdefault(tx.currency, CurrencyTotals(currency=tx.currency))
        if tx.kind is TransactionKind.INCOME:
            bucket.income += tx.amount
        else:
            bucket.expense += tx.amount
    return [totals[c] for c in Currency if c in totals]


class ReportService:
    """Builds FinancialReports from the ledger."""

    def __init__(self, ledger: LedgerEngine):
        self._ledger = ledger

    async def build(self, owners: Iterable[AnyOwner], period: ReportPeriod) -> FinancialReport:
        owners = list(owners)
        assets = await self._ledger.list_assets(owners)
        transactions = await self._ledger.list_transactions(
            owners, date_from=period.start, date_to=period.end
        )
        asset_names = {asset.id: asset.name for asset in assets}

        return FinancialReport(
            period=period,
            rows=[_report_row(tx, asset_names) for tx in transactions],
            totals=_totals_by_currency(transactions),
            assets=[
                AssetSnapshot(
                    name=asset.name,
                    type=asset.type.label,
                    currency=asset.currency,
                    balance=asset.balance,
                )
                for asset in assets
            ],
        )


# =============================================================================
# DASHBOARD
# =============================================================================

class CurrencyBalance(BaseModel):
    currency: Currency
    total: Decimal


class CategoryTotal(BaseModel):
    category: str
    currency: Currency
    amount: Decimal


class MonthTotals(BaseModel):
    """Income and expense of one calendar month."""

    month: str = Field(..., description="YYYY-MM")
    totals: list[CurrencyTotals] = Field(default_factory=list)

    def totals_for(self, currency: Currency) -> CurrencyTotals:
        for totals in self.totals:
            if totals.currency == currency:
                return totals
        return CurrencyTotals(currency=currency)


class DashboardSummary(BaseModel):
    """
    The headline numbers of the dashboard.

    `monthly` covers the calendar month containing the reference day.
    `top_categories` holds the largest expense category of that month
    for each currency that had expenses.
    """

    month: ReportPeriod
    balances: list[CurrencyBalance] = Field(default_factory=list)
    monthly: list[CurrencyTotals] = Field(default_factory=list)
    top_categories: list[CategoryTotal] = Field(default_factory=list)
    recent: list[ReportRow] = Field(default_factory=list)

    def monthly_for(self, currency: Currency) -> CurrencyTotals:
        for totals in self.monthly:
            if totals.currency == currency:
                return totals
        return CurrencyTotals(currency=currency)

    def top_category_for(self, currency: Currency) -> Optional[CategoryTotal]:
        for top in self.top_categories:
            if top.currency == currency:
                return top
        return None


class DashboardCharts(BaseModel):
    """Series behind the dashboard charts."""

    trend: list[MonthTotals] = Field(default_factory=list)
    categories: list[CategoryTotal] = Field(default_factory=list)

    def trend_rows(self, currency: Currency) -> list[dict]:
        """Chart rows for one currency, oldest month first."""
        return [
            {
                "month": month.month,
                "Pemasukan": float(month.totals_for(currency).income),
                "Pengeluaran": float(month.totals_for(currency).expense),
            }
            for month in self.trend
        ]

    def category_rows(self, currency: Currency) -> list[dict]:
        return [
            {"category": c.category, "amount": float(c.amount)}
            for c in self.categories
            if c.currency == currency
        ]


def _expense_by_category(transactions: Iterable[Transaction]) -> list[CategoryTotal]:
    """Expense totals per (currency, category), largest first within a currency."""
    sums: dict[tuple[Currency, str], Decimal] = {}
    for tx in transactions:
        if tx.kind is TransactionKind.EXPENSE:
            key = (tx.currency, tx.category)
            sums[key] = sums.get(key, Decimal("0.00")) + tx.amount

    order = list(Currency)
    ranked = sorted(sums.items(), key=lambda item: (order.index(item[0][0]), -item[1], item[0][1]))
    return [
        CategoryTotal(category=category, currency=currency, amount=amount)
        for (currency, category), amount in ranked
    ]


class DashboardService:
    """
    Aggregates the ledger for the web dashboard.

    Usage:
        dashboard = DashboardService(ledger)
        summary = await dashboard.summary(user.owners)
        charts = await dashboard.charts(user.owners)
    """

    def __init__(self, ledger: LedgerEngine):
        self._ledger = ledger

    async def summary(
        self,
        owners: Iterable[AnyOwner],
        today: Optional[dt.date] = None,
    ) -> DashboardSummary:
        owners = list(owners)
        today = today or dt.date.today()
        month = ReportPeriod(
            label="Bulan ini",
            start=_first_of_month(today),
            end=_last_of_month(today),
        )

        assets = await self._ledger.list_assets(owners)
        balances: dict[Currency, Decimal] = {}
        for asset in assets:
            balances[asset.currency] = balances.get(asset.currency, Decimal("0.00")) + asset.balance

        in_month = await self._ledger.list_transactions(
            owners, date_from=month.start, date_to=month.end
        )
        top: dict[Currency, CategoryTotal] = {}
        for category in _expense_by_category(in_month):
            top.setdefault(category.currency, category)

        # Newest first: latest date, then latest booking on that date
        everything = await self._ledger.list_transactions(owners)
        asset_names = {asset.id: asset.name for asset in assets}
        recent = [
            _report_row(tx, asset_names)
            for tx in reversed(everything[-RECENT_TRANSACTION_LIMIT:])
        ]

        return DashboardSummary(
            month=month,
            balances=[CurrencyBalance(currency=c, total=balances[c]) for c in Currency if c in balances],
            monthly=_totals_by_currency(in_month),
            top_categories=list(top.values()),
            recent=recent,
        )

    async def charts(
        self,
        owners: Iterable[AnyOwner],
        today: Optional[dt.date] = None,
    ) -> DashboardCharts:
        owners = list(owners)
        today = today or dt.date.today()

        start = _first_of_month(today, TREND_MONTHS - 1)
        transactions = await self._ledger.list_transactions(
            owners, date_from=start, date_to=_last_of_month(today)
        )

        by_month: dict[str, list[Transaction]] = {}
        for tx in transactions:
            by_month.setdefault(tx.date.strftime("%Y-%m"), []).append(tx)

        trend = []
        for months_back in range(TREND_MONTHS - 1, -1, -1):
            key = _first_of_month(today, months_back).strftime("%Y-%m")
            trend.append(MonthTotals(month=key, totals=_totals_by_currency(by_month.get(key, []))))

        this_month = by_month.get(today.strftime("%Y-%m"), [])
        return DashboardCharts(trend=trend, categories=_expense_by_category(this_month))
