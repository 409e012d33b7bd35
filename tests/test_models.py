"""
Tests for Kanemane models

Test strategy:
1. Unit tests for the pydantic models and their validators
2. Flow tests live in the other modules, with fakes for external services
3. No real API calls in tests
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import TypeAdapter, ValidationError

from kanemane.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from kanemane.models.conversation import ConversationState, ConversationStep
from kanemane.models.ledger import (
    Asset,
    AssetType,
    Country,
    Currency,
    Family,
    FamilyOwner,
    IndividualOwner,
    Owner,
    Transaction,
    TransactionKind,
    TransactionUpdate,
    User,
    owner_from_key,
    owner_key,
    to_amount,
)
from kanemane.models.parsing import ParsedTransaction, ReceiptScan


class TestAmounts:
    """Tests for money rounding."""

    def test_rounds_to_cents(self):
        assert to_amount("1500") == Decimal("1500.00")
        assert to_amount(12.345) == Decimal("12.35")
        assert to_amount(0.1) == Decimal("0.10")

    @pytest.mark.parametrize("value", ["abc", "", None, "NaN", "Infinity"])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(ValueError):
            to_amount(value)

    def test_update_amount_is_rounded(self):
        assert TransactionUpdate(amount="10.005").amount == Decimal("10.01")


class TestOwnership:
    """Tests for the individual/family owner union."""

    def test_discriminated_union(self):
        adapter = TypeAdapter(Owner)
        family_id = uuid4()

        owner = adapter.validate_python({"kind": "family", "family_id": str(family_id)})

        assert owner == FamilyOwner(family_id=family_id)

    def test_key_round_trip(self):
        owner = IndividualOwner(user_id=uuid4())
        assert owner_from_key(*owner_key(owner)) == owner

    def test_unknown_owner_kind(self):
        with pytest.raises(ValueError):
            owner_from_key("company", uuid4())

    def test_user_owners_include_family(self):
        family_id = uuid4()
        user = User(name="Budi", family_id=family_id)

        assert user.owners == [user.owner, FamilyOwner(family_id=family_id)]
        assert user.can_access(FamilyOwner(family_id=family_id))
        assert not user.can_access(IndividualOwner(user_id=uuid4()))

    def test_family_owner(self):
        family = Family(name="Keluarga Budi")
        user = User(name="Budi", family_id=family.id)

        assert family.owner == FamilyOwner(family_id=family.id)
        assert user.can_access(family.owner)

    def test_user_without_family(self):
        user = User(name="  Budi  ")
        assert user.name == "Budi"
        assert user.owners == [user.owner]


class TestLedgerModels:

    def test_asset_name_required(self):
        with pytest.raises(ValidationError):
            Asset(
                owner=IndividualOwner(user_id=uuid4()),
                country=Country.JP,
                name="",
                type=AssetType.CASH,
                currency=Currency.JPY,
            )

    def test_signed_amount(self):
        common = dict(
            owner=IndividualOwner(user_id=uuid4()),
            asset_id=uuid4(),
            category="Makanan",
            amount=Decimal("500.00"),
            currency=Currency.JPY,
            date=date(2026, 3, 15),
        )
        assert Transaction(kind=TransactionKind.INCOME, **common).signed_amount == Decimal("500.00")
        assert Transaction(kind=TransactionKind.EXPENSE, **common).signed_amount == Decimal("-500.00")

    def test_negative_transaction_amount_rejected(self):
        with pytest.raises(ValidationError):
            Transaction(
                kind=TransactionKind.EXPENSE,
                owner=IndividualOwner(user_id=uuid4()),
                asset_id=uuid4(),
                category="Makanan",
                amount=Decimal("-1.00"),
                currency=Currency.JPY,
                date=date(2026, 3, 15),
            )

    def test_labels(self):
        assert TransactionKind.INCOME.label == "Pemasukan"
        assert TransactionKind.EXPENSE.label == "Pengeluaran"
        assert AssetType.E_MONEY.label == "E-Money"
        assert Currency.IDR.symbol == "Rp"


class TestParsingModels:

    def test_has_amount(self):
        assert ParsedTransaction(amount=Decimal("1")).has_amount
        assert not ParsedTransaction().has_amount

    def test_receipt_amount_required(self):
        with pytest.raises(ValidationError):
            ReceiptScan()


class TestConversationState:

    def setup_method(self):
        self.now = datetime(2026, 3, 15, 9, 0, 0)
        self.state = ConversationState(
            actor="6281234567890",
            step=ConversationStep.ASSET_CREATION_TYPE,
            expires_at=self.now + timedelta(seconds=600),
        )

    def test_expiry_is_inclusive(self):
        assert not self.state.is_expired(self.now + timedelta(seconds=599))
        assert self.state.is_expired(self.now + timedelta(seconds=600))

    def test_refreshed_bumps_version(self):
        later = self.now + timedelta(seconds=300)
        successor = self.state.refreshed(
            ConversationStep.ASSET_CREATION_COUNTRY, {"type": "cash"}, later, 600
        )

        assert successor.version == 2
        assert successor.expires_at == later + timedelta(seconds=600)
        assert successor.data == {"type": "cash"}
        assert self.state.version == 1

    def test_empty_actor_rejected(self):
        with pytest.raises(ValidationError):
            ConversationState(
                actor="",
                step=ConversationStep.EXPORT_PERIOD,
                expires_at=self.now,
            )


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_RECORDED,
            description="Test event",
        )
        assert event.event_type == AuditEventType.TRANSACTION_RECORDED
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        event = AuditEvent(
            event_type=AuditEventType.ASSET_OPENED,
            entity_type="asset",
            entity_id="123",
            description="Test",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "asset_opened"
        assert log_dict["entity_id"] == "123"
        assert "timestamp" in log_dict

    def test_asset_opened_builder(self):
        asset_id = uuid4()
        event = AuditEventBuilder.asset_opened(asset_id, "Yucho", "JPY", Decimal("10000.00"))

        assert event.entity_id == str(asset_id)
        assert event.details["opening_balance"] == "10000.00"
        assert event.is_user_action

    def test_parser_fallback_builder(self):
        event = AuditEventBuilder.parser_fallback("Gemini request timed out")
        assert event.event_type == AuditEventType.PARSER_FALLBACK
        assert event.severity == AuditSeverity.WARNING
        assert event.error_message == "Gemini request timed out"

    def test_details_json(self):
        event = AuditEventBuilder.external_service_error("google_sheets", "quota")
        assert event.details_json() == '{"service": "google_sheets"}'
