"""
Shared fixtures.

Every test gets a fresh in-memory SQLite database. External services
(Gemini, WAHA, Google Sheets) are replaced by the fakes below; no test
makes a network call.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Sequence

import pytest

from kanemane.audit import AuditLogger
from kanemane.conversation import ConversationEngine, ConversationFlows
from kanemane.ledger import LedgerEngine, ReportService
from kanemane.models.ledger import AssetType, Country, Currency, User
from kanemane.models.parsing import KnownAsset, ParsedTransaction, ReceiptScan
from kanemane.services.export import ExportError, ReportExporterInterface
from kanemane.services.messaging import MessagingError, MessengerInterface
from kanemane.services.parser import ParserUnavailableError, TransactionParserInterface
from kanemane.services.storage import (
    Database,
    SqlAuditStorage,
    SqlConversationStore,
    SqlLedgerStorage,
)


START = datetime(2026, 3, 15, 9, 0, 0)


class FakeClock:
    """Clock the tests move by hand."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMessenger(MessengerInterface):
    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.button_messages: list[tuple[str, str, list]] = []
        self.media: dict[str, bytes] = {}
        self.lids: dict[str, str] = {}

    async def send_text(self, chat_id: str, text: str) -> bool:
        self.sent.append((chat_id, text))
        return True

    async def send_buttons(self, chat_id: str, text: str, buttons) -> bool:
        self.button_messages.append((chat_id, text, list(buttons)))
        return True

    async def download_media(self, media_url: str) -> bytes:
        if media_url not in self.media:
            raise MessagingError(f"No media at {media_url}")
        return self.media[media_url]

    async def resolve_lid(self, lid: str) -> Optional[str]:
        return self.lids.get(lid)


class FakeExporter(ReportExporterInterface):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.reports = []

    async def export(self, report, title=None) -> str:
        if self.fail:
            raise ExportError("Sheets is down")
        self.reports.append(report)
        return f"https://sheets.example/report/{len(self.reports)}"


class FakeParser(TransactionParserInterface):
    """Returns canned results, or raises ParserUnavailableError when unset."""

    def __init__(
        self,
        parsed: Optional[ParsedTransaction] = None,
        receipt: Optional[ReceiptScan] = None,
    ):
        self.parsed = parsed
        self.receipt = receipt
        self.calls: list[str] = []

    async def parse_text(self, text: str, assets: Sequence[KnownAsset] = ()) -> ParsedTransaction:
        self.calls.append(text)
        if self.parsed is None:
            raise ParserUnavailableError("Gemini request timed out")
        return self.parsed

    async def scan_receipt(self, image: bytes, mime_type: str = "image/jpeg") -> ReceiptScan:
        if self.receipt is None:
            raise ParserUnavailableError("Gemini request failed")
        return self.receipt


@pytest.fixture
def database():
    db = Database("sqlite://", echo=False)
    db.init_schema()
    yield db
    db.dispose()


@pytest.fixture
def storage(database):
    return SqlLedgerStorage(database)


@pytest.fixture
def audit_storage(database):
    return SqlAuditStorage(database)


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def ledger(storage, audit_logger):
    return LedgerEngine(storage, audit_logger, strict_update_check=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def conversation_store(database):
    return SqlConversationStore(database)


@pytest.fixture
def exporter():
    return FakeExporter()


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def flows(ledger, exporter, storage, audit_logger):
    return ConversationFlows(
        ledger=ledger,
        report_service=ReportService(ledger),
        exporter=exporter,
        storage=storage,
        audit_logger=audit_logger,
    )


@pytest.fixture
def engine(conversation_store, flows, clock, audit_logger):
    return ConversationEngine(
        conversation_store,
        flows.handlers(),
        flows.triggers(),
        ttl_seconds=600,
        clock=clock,
        audit_logger=audit_logger,
    )


@pytest.fixture
def user(storage):
    user = User(name="Budi", phone="6281234567890")
    storage.save_user(user)
    return user


@pytest.fixture
async def wallet(ledger, storage, user):
    """A JPY asset with ¥10.000, set as the user's primary asset."""
    asset = await ledger.open_asset(
        owner=user.owner,
        name="Yucho",
        asset_type=AssetType.SAVINGS,
        country=Country.JP,
        currency=Currency.JPY,
        opening_balance=Decimal("10000"),
        created_by=user.id,
    )
    user.primary_asset_id = asset.id
    storage.save_user(user)
    return asset
