"""Ledger package: balance-consistent bookkeeping and reports."""

from kanemane.ledger.engine import (
    AssetNotFoundError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidAssetNameError,
    LedgerEngine,
    LedgerError,
    TransactionNotFoundError,
)
from kanemane.ledger.families import (
    FamilyNotFoundError,
    FamilyService,
    InvalidFamilyNameError,
)
from kanemane.ledger.reports import (
    EXPORT_PERIODS,
    AssetSnapshot,
    CategoryTotal,
    CurrencyBalance,
    CurrencyTotals,
    DashboardCharts,
    DashboardService,
    DashboardSummary,
    FinancialReport,
    MonthTotals,
    ReportPeriod,
    ReportRow,
    ReportService,
    period_for_choice,
)

__all__ = [
    # Engine
    "AssetNotFoundError",
    "InsufficientBalanceError",
    "InvalidAmountError",
    "InvalidAssetNameError",
    "LedgerEngine",
    "LedgerError",
    "TransactionNotFoundError",
    # Families
    "FamilyNotFoundError",
    "FamilyService",
    "InvalidFamilyNameError",
    # Reports
    "EXPORT_PERIODS",
    "AssetSnapshot",
    "CurrencyTotals",
    "FinancialReport",
    "ReportPeriod",
    "ReportRow",
    "ReportService",
    "period_for_choice",
    # Dashboard
    "CategoryTotal",
    "CurrencyBalance",
    "DashboardCharts",
    "DashboardService",
    "DashboardSummary",
    "MonthTotals",
]
