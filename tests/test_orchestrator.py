"""
Tests for the WhatsApp bot: routing, commands, and the text and photo
paths up to the confirmation step.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from kanemane.config import Settings
from kanemane.conversation import messages
from kanemane.models.audit import AuditEventType
from kanemane.models.ledger import (
    Asset,
    AssetType,
    Country,
    Currency,
    IndividualOwner,
)
from kanemane.models.parsing import ParsedTransaction, ReceiptScan
from kanemane.orchestrator import (
    RECEIPT_BUTTONS,
    TRANSACTION_BUTTONS,
    InboundMessage,
    WhatsAppBot,
    normalize_phone,
    resolve_transaction_asset,
)
from kanemane.services.parser import TransactionParsingService

from tests.conftest import FakeParser


CHAT = "6281234567890@c.us"
PHOTO_URL = "http://localhost:3000/api/files/receipt.jpg"


class BrokenParser(FakeParser):
    async def parse_text(self, text, assets=()):
        raise RuntimeError("boom")


@pytest.fixture
def parser():
    return FakeParser()


@pytest.fixture
def bot(ledger, parser, messenger, engine, storage, audit_logger):
    return WhatsAppBot(
        ledger=ledger,
        parsing=TransactionParsingService(primary=parser, audit_logger=audit_logger),
        messenger=messenger,
        engine=engine,
        storage=storage,
        audit_logger=audit_logger,
        settings=Settings(),
    )


def text(body, chat_id=CHAT):
    return InboundMessage(chat_id=chat_id, text=body)


def button(button_id, chat_id=CHAT):
    return InboundMessage(chat_id=chat_id, button_id=button_id)


def photo(url=PHOTO_URL, chat_id=CHAT):
    return InboundMessage(chat_id=chat_id, has_media=True, media_url=url, mime_type="image/jpeg")


def make_asset(name, currency=Currency.JPY):
    return Asset(
        owner=IndividualOwner(user_id=uuid4()),
        country=Country.JP if currency is Currency.JPY else Country.ID,
        name=name,
        type=AssetType.SAVINGS,
        currency=currency,
    )


async def open_bca(ledger, user):
    return await ledger.open_asset(
        owner=user.owner,
        name="BCA",
        asset_type=AssetType.SAVINGS,
        country=Country.ID,
        currency=Currency.IDR,
        opening_balance=Decimal("1000000"),
        created_by=user.id,
    )


class TestHelpers:

    def test_normalize_phone(self):
        assert normalize_phone("0812-3456-7890") == "6281234567890"
        assert normalize_phone("+62 812 3456 7890") == "6281234567890"
        assert normalize_phone("6281234567890") == "6281234567890"

    def test_inbound_from_waha(self):
        message = InboundMessage.from_waha({
            "from": CHAT,
            "body": "makan 500",
            "hasMedia": True,
            "media": {"url": PHOTO_URL, "mimetype": "image/png"},
            "selectedButtonId": "confirm_receipt",
            "fromMe": False,
        })
        assert message.chat_id == CHAT
        assert message.text == "makan 500"
        assert message.has_media is True
        assert message.media_url == PHOTO_URL
        assert message.mime_type == "image/png"
        assert message.button_id == "confirm_receipt"

    def test_inbound_from_plain_text_payload(self):
        message = InboundMessage.from_waha({"from": CHAT, "body": "saldo"})
        assert message.has_media is False
        assert message.button_id is None
        assert message.from_me is False

    def test_asset_named_in_message_wins(self):
        yucho, bca = make_asset("Yucho"), make_asset("BCA", Currency.IDR)
        chosen = resolve_transaction_asset([yucho, bca], yucho.id, "bca", Currency.JPY)
        assert chosen is bca

    def test_primary_used_when_currency_matches(self):
        paypay, yucho = make_asset("PayPay"), make_asset("Yucho")
        assert resolve_transaction_asset([paypay, yucho], yucho.id, None, Currency.JPY) is yucho

    def test_currency_match_beats_primary(self):
        yucho, bca = make_asset("Yucho"), make_asset("BCA", Currency.IDR)
        assert resolve_transaction_asset([yucho, bca], yucho.id, None, Currency.IDR) is bca

    def test_primary_when_no_asset_in_currency(self):
        paypay, yucho = make_asset("PayPay"), make_asset("Yucho")
        assert resolve_transaction_asset([paypay, yucho], yucho.id, None, Currency.IDR) is yucho

    def test_first_asset_without_primary(self):
        paypay, yucho = make_asset("PayPay"), make_asset("Yucho")
        assert resolve_transaction_asset([paypay, yucho], None, None, Currency.IDR) is paypay
        assert resolve_transaction_asset([], None, None, Currency.JPY) is None


class TestIdentity:

    async def test_unregistered_sender_gets_signup_link(self, bot, messenger):
        replies = await bot.handle(text("halo", chat_id="6289999999999@c.us"))

        assert len(replies) == 1
        assert "/register?phone=6289999999999" in replies[0].text
        assert messenger.sent == [("6289999999999@c.us", replies[0].text)]

    async def test_user_without_assets_gets_onboarding_link(self, bot, user):
        replies = await bot.handle(text("saldo"))
        assert "Halo Budi!" in replies[0].text
        assert "/onboarding" in replies[0].text

    async def test_own_messages_are_ignored(self, bot, messenger, wallet):
        message = InboundMessage(chat_id=CHAT, text="saldo", from_me=True)
        assert await bot.handle(message) == []
        assert messenger.sent == []

    async def test_lid_is_resolved_to_phone(self, bot, messenger, wallet):
        messenger.lids["123456789"] = "6281234567890"
        replies = await bot.handle(text("saldo", chat_id="123456789@lid"))
        assert "Yucho" in replies[0].text

    async def test_unresolved_lid_is_treated_as_unknown(self, bot, wallet):
        replies = await bot.handle(text("saldo", chat_id="123456789@lid"))
        assert "/register?phone=123456789" in replies[0].text


class TestCommands:

    async def test_balance_overview(self, bot, wallet):
        replies = await bot.handle(text("saldo"))
        assert "• Yucho 🌟: ¥10.000" in replies[0].text
        assert "Total: ¥10.000" in replies[0].text

    async def test_balance_by_currency(self, bot, ledger, user, wallet):
        await open_bca(ledger, user)

        reply = (await bot.handle(text("saldo rupiah")))[0].text
        assert "BCA: Rp1.000.000" in reply
        assert "Yucho" not in reply

    async def test_balance_of_one_asset(self, bot, wallet):
        replies = await bot.handle(text("saldo yucho"))
        assert replies[0].text == "💰 Saldo *Yucho*: ¥10.000"

    async def test_balance_of_unknown_asset(self, bot, wallet):
        replies = await bot.handle(text("saldo Mandiri"))
        assert replies[0].text == messages.ASSET_NOT_FOUND.format(name="Mandiri")

    async def test_wallet_list(self, bot, wallet):
        replies = await bot.handle(text("/dompet"))
        assert "1. Yucho 🌟 (Tabungan, JPY) - ¥10.000" in replies[0].text

    async def test_help(self, bot, wallet):
        assert (await bot.handle(text("help")))[0].text == messages.HELP

    async def test_text_without_numbers_gets_greeting(self, bot, parser, wallet):
        replies = await bot.handle(text("halo"))
        assert "Budi" in replies[0].text
        assert parser.calls == []


class TestTransactionText:

    async def test_parsed_text_asks_for_confirmation(self, bot, messenger, ledger, wallet):
        replies = await bot.handle(text("makan siang 1500 yen"))

        assert replies[0].buttons == TRANSACTION_BUTTONS
        assert "Jumlah: ¥1.500" in replies[0].text
        assert "Kategori: Makanan" in replies[0].text
        assert "Aset: Yucho" in replies[0].text
        assert messenger.button_messages == [(CHAT, replies[0].text, TRANSACTION_BUTTONS)]
        # Nothing is booked before the user confirms
        assert (await ledger.get_asset(wallet.id)).balance == Decimal("10000.00")

    async def test_confirm_button_books(self, bot, ledger, wallet):
        await bot.handle(text("makan siang 1500 yen"))
        replies = await bot.handle(button("confirm_transaction"))

        assert replies[0].text.startswith("✅ *Pengeluaran tercatat!*")
        assert "💰 Saldo: ¥8.500" in replies[0].text
        assert (await ledger.get_asset(wallet.id)).balance == Decimal("8500.00")

    async def test_typed_yes_books(self, bot, ledger, wallet):
        await bot.handle(text("gaji 250000 yen"))
        await bot.handle(text("ya"))
        assert (await ledger.get_asset(wallet.id)).balance == Decimal("260000.00")

    async def test_cancel_button(self, bot, ledger, wallet):
        await bot.handle(text("makan siang 1500 yen"))
        replies = await bot.handle(button("cancel_transaction"))

        assert replies[0].text == messages.TRANSACTION_CANCELLED
        assert (await ledger.get_asset(wallet.id)).balance == Decimal("10000.00")

    async def test_button_without_pending_confirmation(self, bot, wallet):
        replies = await bot.handle(button("confirm_transaction"))
        assert replies[0].text == messages.EXPIRED

    async def test_button_for_other_step_is_expired(self, bot, wallet):
        await bot.handle(text("makan siang 1500 yen"))
        replies = await bot.handle(button("confirm_receipt"))
        assert replies[0].text == messages.EXPIRED

    async def test_ai_parse_is_preferred(self, bot, parser, wallet):
        parser.parsed = ParsedTransaction(
            amount=Decimal("980"), category="食費", description="ramen"
        )
        replies = await bot.handle(text("ramen 980"))

        assert parser.calls == ["ramen 980"]
        assert "Note: ramen" in replies[0].text

    async def test_zero_amount_is_unclear(self, bot, wallet):
        replies = await bot.handle(text("makan 0 yen"))
        assert replies[0].text == messages.AMOUNT_UNCLEAR

    async def test_currency_mismatch_warns(self, bot, wallet):
        replies = await bot.handle(text("bensin Rp 75.000"))
        assert "Mata uang terdeteksi IDR" in replies[0].text
        assert "Jumlah: ¥75.000" in replies[0].text

    async def test_asset_named_in_text(self, bot, ledger, user, wallet):
        await open_bca(ledger, user)
        replies = await bot.handle(text("bayar listrik 50rb pakai BCA"))

        assert "Aset: BCA" in replies[0].text
        assert "Jumlah: Rp50.000" in replies[0].text
        assert "Kategori: Utilitas" in replies[0].text

    async def test_unexpected_error_is_answered_and_audited(
        self, ledger, messenger, engine, storage, audit_logger, audit_storage, wallet
    ):
        bot = WhatsAppBot(
            ledger=ledger,
            parsing=TransactionParsingService(primary=BrokenParser()),
            messenger=messenger,
            engine=engine,
            storage=storage,
            audit_logger=audit_logger,
            settings=Settings(),
        )

        replies = await bot.handle(text("makan 500"))

        assert replies[0].text == messages.GENERIC_ERROR
        assert messenger.sent == [(CHAT, messages.GENERIC_ERROR)]
        events = await audit_storage.get_recent_events()
        assert AuditEventType.SYSTEM_ERROR in [e.event_type for e in events]


class TestReceipts:

    async def test_receipt_asks_for_confirmation(self, bot, parser, messenger, wallet):
        messenger.media[PHOTO_URL] = b"jpeg"
        parser.receipt = ReceiptScan(
            amount=Decimal("780"), merchant="Lawson", date=date(2026, 3, 14), category="食費"
        )

        replies = await bot.handle(photo())

        assert replies[0].buttons == RECEIPT_BUTTONS
        assert "Toko: Lawson" in replies[0].text
        assert "Tanggal: 2026-03-14" in replies[0].text
        assert "Jumlah: ¥780" in replies[0].text
        assert "Aset: Yucho" in replies[0].text

    async def test_confirmed_receipt_is_booked(self, bot, parser, messenger, ledger, user, wallet):
        messenger.media[PHOTO_URL] = b"jpeg"
        parser.receipt = ReceiptScan(amount=Decimal("780"), merchant="Lawson", date=date(2026, 3, 14))

        await bot.handle(photo())
        await bot.handle(button("confirm_receipt"))

        assert (await ledger.get_asset(wallet.id)).balance == Decimal("9220.00")
        booked = await ledger.list_transactions(user.owners, asset_id=wallet.id)
        receipt_tx = [t for t in booked if t.note == "Receipt from Lawson"]
        assert len(receipt_tx) == 1
        assert receipt_tx[0].date == date(2026, 3, 14)

    async def test_download_failure(self, bot, wallet):
        replies = await bot.handle(photo())
        assert replies[0].text == messages.RECEIPT_FAILED

    async def test_scan_failure(self, bot, messenger, wallet):
        messenger.media[PHOTO_URL] = b"jpeg"
        replies = await bot.handle(photo())
        assert replies[0].text == messages.RECEIPT_FAILED

    async def test_no_asset_in_receipt_currency(self, bot, parser, messenger, wallet):
        messenger.media[PHOTO_URL] = b"jpeg"
        parser.receipt = ReceiptScan(amount=Decimal("25000"), currency=Currency.IDR)

        replies = await bot.handle(photo())
        assert replies[0].text == messages.RECEIPT_NO_ASSET.format(currency="IDR")

    async def test_photo_during_running_flow(self, bot, parser, messenger, wallet):
        messenger.media[PHOTO_URL] = b"jpeg"
        parser.receipt = ReceiptScan(amount=Decimal("780"))

        await bot.handle(text("makan siang 1500 yen"))
        replies = await bot.handle(photo())

        assert replies[0].text == messages.FLOW_IN_PROGRESS
