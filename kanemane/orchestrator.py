"""
Main Orchestrator for Kanemane

This module ties together all the components and defines the
end-to-end flow for one inbound WhatsApp message:

1. Identify the sender (LID -> phone -> user)
2. Photo -> download -> scan -> RECEIPT_CONFIRM
3. Text  -> running conversation -> commands -> transaction parsing
4. Send the replies back through WAHA

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing parsed from text or a photo is booked without a "yes"
- The user can only see and use assets of their own owners
- Every unexpected failure is audited and answered, never dropped silently
"""

import datetime as dt
import re
from typing import Any, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from kanemane.audit import AuditLogger, create_correlation_id, get_logger
from kanemane.config import Settings, get_settings
from kanemane.conversation import messages
from kanemane.conversation.engine import ConversationEngine
from kanemane.conversation.flows import (
    ConversationFlows,
    find_asset,
    pending_transaction_data,
)
from kanemane.conversation.store import normalize_actor
from kanemane.ledger import DashboardService, FamilyService, LedgerEngine, ReportService
from kanemane.models.conversation import ConversationStep
from kanemane.models.ledger import Asset, Currency, TransactionKind, User
from kanemane.models.parsing import KnownAsset
from kanemane.services.export import GoogleSheetsReportExporter, ReportExporterInterface
from kanemane.services.messaging import (
    Button,
    MessagingError,
    MessengerInterface,
    WahaClient,
)
from kanemane.services.parser import (
    GeminiTransactionParser,
    ParserUnavailableError,
    TransactionParsingService,
    normalize_category,
)
from kanemane.services.storage import (
    Database,
    LedgerStorageInterface,
    SqlAuditStorage,
    SqlConversationStore,
    SqlLedgerStorage,
)


logger = get_logger(__name__)


BALANCE_COMMANDS = frozenset({"saldo", "balance", "/saldo", "/balance"})
BALANCE_QUERY_PATTERN = re.compile(r"^(?:saldo|balance)\s+(.+)$", re.IGNORECASE)
WALLET_COMMANDS = frozenset({"/dompet", "/wallet", "dompet", "wallet"})
HELP_COMMANDS = frozenset({"help", "bantuan", "/help", "/bantuan", "menu"})

CURRENCY_ALIASES = {
    "jpy": Currency.JPY,
    "yen": Currency.JPY,
    "¥": Currency.JPY,
    "idr": Currency.IDR,
    "rupiah": Currency.IDR,
    "rp": Currency.IDR,
}

TRANSACTION_BUTTONS: list[Button] = [
    ("confirm_transaction", "✅ Simpan"),
    ("cancel_transaction", "❌ Batal"),
]
RECEIPT_BUTTONS: list[Button] = [
    ("confirm_receipt", "✅ Simpan"),
    ("cancel_receipt", "❌ Batal"),
]

# Button id -> (step it answers, text it stands for)
BUTTON_ANSWERS = {
    "confirm_transaction": (ConversationStep.TRANSACTION_CONFIRM, "ya"),
    "cancel_transaction": (ConversationStep.TRANSACTION_CONFIRM, "tidak"),
    "confirm_receipt": (ConversationStep.RECEIPT_CONFIRM, "ya"),
    "cancel_receipt": (ConversationStep.RECEIPT_CONFIRM, "tidak"),
}


def normalize_phone(raw: str) -> str:
    """
    Digits only, with Indonesian local numbers moved to country code 62.

    "0812-3456-7890" -> "6281234567890"
    """
    digits = re.sub(r"\D", "", raw or "")
    if digits.startswith("08"):
        digits = "62" + digits[1:]
    return digits


def resolve_transaction_asset(
    assets: Sequence[Asset],
    primary_asset_id: Optional[UUID],
    name_hint: Optional[str],
    currency: Optional[Currency],
) -> Optional[Asset]:
    """
    Pick the asset a parsed transaction goes to.

    Order: the asset named in the message, then an asset in the detected
    currency (primary first), then the primary asset, then the first asset.
    """
    if not assets:
        return None
    if name_hint:
        named = find_asset(assets, name_hint)
        if named is not None:
            return named

    primary = next((a for a in assets if a.id == primary_asset_id), None)
    if currency is not None:
        if primary is not None and primary.currency is currency:
            return primary
        same_currency = next((a for a in assets if a.currency is currency), None)
        if same_currency is not None:
            return same_currency
    return primary or assets[0]


# =============================================================================
# INBOUND MESSAGES AND REPLIES
# =============================================================================

class InboundMessage(BaseModel):
    """A WhatsApp message as delivered by the WAHA webhook."""

    chat_id: str = Field(..., min_length=1)
    text: str = ""
    has_media: bool = False
    media_url: Optional[str] = None
    mime_type: Optional[str] = None
    button_id: Optional[str] = None
    from_me: bool = False

    @classmethod
    def from_waha(cls, payload: dict[str, Any]) -> "InboundMessage":
        """Build from the `payload` object of a WAHA `message` event."""
        media = payload.get("media") or {}
        media_url = media.get("url") or payload.get("mediaUrl")
        return cls(
            chat_id=payload.get("from") or "",
            text=payload.get("body") or "",
            has_media=bool(payload.get("hasMedia")) or bool(media_url),
            media_url=media_url,
            mime_type=media.get("mimetype") or payload.get("mimetype"),
            button_id=payload.get("selectedButtonId") or payload.get("selectedButtonID"),
            from_me=bool(payload.get("fromMe")),
        )


class BotReply(BaseModel):
    """One outgoing message; sent with buttons when any are set."""

    text: str
    buttons: list[Button] = Field(default_factory=list)


# =============================================================================
# BOT
# =============================================================================

class WhatsAppBot:
    """
    Routes inbound WhatsApp messages.

    Flow:
    1. Identify → unknown phone gets the registration link
    2. Setup check → a user with no assets gets the onboarding link
    3. Photo → receipt scan → confirmation
    4. Text → conversation engine → commands → parse → confirmation
    5. Reply → send through the messenger

    Parsed transactions are NEVER booked here. They only start a
    confirmation step; the booking happens when the user says yes.
    """

    def __init__(
        self,
        ledger: LedgerEngine,
        parsing: TransactionParsingService,
        messenger: MessengerInterface,
        engine: ConversationEngine,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
    ):
        self._ledger = ledger
        self._parsing = parsing
        self._messenger = messenger
        self._engine = engine
        self._storage = storage
        self._audit = audit_logger
        self._frontend_url = (settings or get_settings()).app.frontend_url.rstrip("/")

    async def handle(self, message: InboundMessage) -> list[BotReply]:
        """
        Process one inbound message and send the replies.

        Returns:
            The replies that were sent
        """
        if message.from_me:
            return []

        correlation_id = create_correlation_id()
        try:
            replies = await self._route(message, correlation_id)
        except Exception as e:
            logger.exception("message_handling_failed", chat_id=message.chat_id)
            if self._audit:
                await self._audit.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"chat_id": message.chat_id},
                    correlation_id=correlation_id,
                )
            replies = [BotReply(text=messages.GENERIC_ERROR)]

        for reply in replies:
            if reply.buttons:
                await self._messenger.send_buttons(message.chat_id, reply.text, reply.buttons)
            else:
                await self._messenger.send_text(message.chat_id, reply.text)
        return replies

    async def _route(self, message: InboundMessage, correlation_id: UUID) -> list[BotReply]:
        actor = normalize_actor(message.chat_id)
        phone = await self._phone_for(message.chat_id, actor)

        user = self._storage.find_user_by_phone(phone)
        if user is None:
            logger.info("unregistered_sender", phone=phone)
            return [BotReply(text=messages.UNREGISTERED.format(
                frontend_url=self._frontend_url, phone=phone,
            ))]

        assets = await self._ledger.list_assets(user.owners)
        if not assets:
            return [BotReply(text=messages.SETUP_REQUIRED.format(
                name=user.name, frontend_url=self._frontend_url,
            ))]

        if message.has_media:
            return await self._handle_receipt(actor, message, user, assets, correlation_id)

        text = message.text.strip()
        if message.button_id in BUTTON_ANSWERS:
            step, text = BUTTON_ANSWERS[message.button_id]
            state = await self._engine.active_state(actor)
            if state is None or state.step is not step:
                return [BotReply(text=messages.EXPIRED)]

        result = await self._engine.handle(actor, text, user, correlation_id)
        if result.consumed:
            return [BotReply(text=reply) for reply in result.replies]

        command_reply = self._command(text, user, assets)
        if command_reply is not None:
            return [BotReply(text=command_reply)]

        if not re.search(r"\d", text):
            return [BotReply(text=messages.greeting(user.name))]

        return await self._handle_transaction_text(actor, text, user, assets, correlation_id)

    async def _phone_for(self, chat_id: str, actor: str) -> str:
        """Phone number of the sender; privacy LIDs are looked up in WAHA."""
        if chat_id.endswith("@lid"):
            phone = await self._messenger.resolve_lid(actor)
            if phone:
                return normalize_phone(phone)
            logger.warning("lid_unresolved", lid=actor)
        return normalize_phone(actor)

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def _command(self, text: str, user: User, assets: list[Asset]) -> Optional[str]:
        lowered = text.lower()

        if lowered in BALANCE_COMMANDS:
            return messages.balance_overview(assets, user.primary_asset_id)

        match = BALANCE_QUERY_PATTERN.match(text)
        if match:
            query = match.group(1).strip()
            currency = CURRENCY_ALIASES.get(query.lower())
            if currency is not None:
                return messages.balance_overview(
                    [a for a in assets if a.currency is currency], user.primary_asset_id
                )
            asset = find_asset(assets, query)
            if asset is None:
                return messages.ASSET_NOT_FOUND.format(name=query)
            return messages.single_balance(asset)

        if lowered in WALLET_COMMANDS:
            return messages.wallet_list(assets, user.primary_asset_id)

        if lowered in HELP_COMMANDS:
            return messages.HELP

        return None

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def _handle_transaction_text(
        self,
        actor: str,
        text: str,
        user: User,
        assets: list[Asset],
        correlation_id: UUID,
    ) -> list[BotReply]:
        known = [KnownAsset(id=a.id, name=a.name, currency=a.currency) for a in assets]
        parsed = await self._parsing.parse_text(text, known, correlation_id)
        if not parsed.has_amount:
            return [BotReply(text=messages.AMOUNT_UNCLEAR)]

        asset = resolve_transaction_asset(
            assets, user.primary_asset_id, parsed.asset_name_hint, parsed.currency
        )
        if asset is None:
            return [BotReply(text=messages.NO_ASSET)]

        warning = None
        if asset.currency is not parsed.currency:
            warning = messages.CURRENCY_MISMATCH.format(
                detected=parsed.currency.value,
                asset=asset.name,
                currency=asset.currency.value,
            )

        category = normalize_category(parsed.category)
        note = parsed.description or text
        summary = messages.transaction_summary(
            parsed.kind.label, parsed.amount, asset.currency, category, asset, note, warning
        )
        data = pending_transaction_data(
            kind=parsed.kind,
            amount=parsed.amount,
            category=category,
            note=note,
            asset=asset,
            date=dt.date.today(),
        )
        return await self._start_confirmation(
            actor, ConversationStep.TRANSACTION_CONFIRM, data, summary, TRANSACTION_BUTTONS
        )

    async def _handle_receipt(
        self,
        actor: str,
        message: InboundMessage,
        user: User,
        assets: list[Asset],
        correlation_id: UUID,
    ) -> list[BotReply]:
        if not message.media_url:
            return [BotReply(text=messages.RECEIPT_FAILED)]
        if await self._engine.active_state(actor) is not None:
            return [BotReply(text=messages.FLOW_IN_PROGRESS)]

        try:
            image = await self._messenger.download_media(message.media_url)
            scan = await self._parsing.scan_receipt(
                image, message.mime_type or "image/jpeg", correlation_id
            )
        except (MessagingError, ParserUnavailableError) as e:
            logger.warning("receipt_scan_failed", error=str(e), actor=actor)
            return [BotReply(text=messages.RECEIPT_FAILED)]

        if scan.amount <= 0:
            return [BotReply(text=messages.RECEIPT_FAILED)]

        primary = next((a for a in assets if a.id == user.primary_asset_id), None)
        if primary is not None and primary.currency is scan.currency:
            asset = primary
        else:
            asset = next((a for a in assets if a.currency is scan.currency), None)
        if asset is None:
            return [BotReply(text=messages.RECEIPT_NO_ASSET.format(currency=scan.currency.value))]

        category = normalize_category(scan.category)
        summary = messages.receipt_summary(
            scan.merchant, scan.amount, asset.currency, category, scan.date.isoformat(), asset
        )
        data = pending_transaction_data(
            kind=TransactionKind.EXPENSE,
            amount=scan.amount,
            category=category,
            note=None,
            asset=asset,
            date=scan.date,
            merchant=scan.merchant,
        )
        return await self._start_confirmation(
            actor, ConversationStep.RECEIPT_CONFIRM, data, summary, RECEIPT_BUTTONS
        )

    async def _start_confirmation(
        self,
        actor: str,
        step: ConversationStep,
        data: dict,
        summary: str,
        buttons: list[Button],
    ) -> list[BotReply]:
        result = await self._engine.start(actor, step, data, summary)
        return [BotReply(text=reply, buttons=buttons) for reply in result.replies]


# =============================================================================
# WIRING
# =============================================================================

class AppComponents(BaseModel):
    """Everything the HTTP and UI entry points need."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    database: Database
    storage: SqlLedgerStorage
    ledger: LedgerEngine
    families: FamilyService
    dashboard: DashboardService
    audit_logger: AuditLogger
    bot: WhatsAppBot


def create_app_components(
    database_url: Optional[str] = None,
    use_gemini: bool = True,
    messenger: Optional[MessengerInterface] = None,
    exporter: Optional[ReportExporterInterface] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        database_url: Overrides DATABASE_URL
        use_gemini: Set to False to parse with keywords only
        messenger: Chat gateway (defaults to WAHA)
        exporter: Report exporter (defaults to Google Sheets)
    """
    settings = get_settings()
    database = Database(database_url)
    database.init_schema()

    audit_logger = AuditLogger(SqlAuditStorage(database))
    storage = SqlLedgerStorage(database)
    ledger = LedgerEngine(storage, audit_logger)

    primary = None
    if use_gemini:
        try:
            primary = GeminiTransactionParser()
        except Exception as e:
            # Gemini not configured - continue with the keyword parser
            logger.warning("gemini_unavailable", error=str(e))
    parsing = TransactionParsingService(primary=primary, audit_logger=audit_logger)

    flows = ConversationFlows(
        ledger=ledger,
        report_service=ReportService(ledger),
        exporter=exporter or GoogleSheetsReportExporter(),
        storage=storage,
        audit_logger=audit_logger,
    )
    engine = ConversationEngine(
        SqlConversationStore(database),
        flows.handlers(),
        flows.triggers(),
        ttl_seconds=settings.app.conversation_ttl_seconds,
        audit_logger=audit_logger,
    )
    bot = WhatsAppBot(
        ledger=ledger,
        parsing=parsing,
        messenger=messenger or WahaClient(),
        engine=engine,
        storage=storage,
        audit_logger=audit_logger,
        settings=settings,
    )

    return AppComponents(
        database=database,
        storage=storage,
        ledger=ledger,
        families=FamilyService(storage, audit_logger),
        dashboard=DashboardService(ledger),
        audit_logger=audit_logger,
        bot=bot,
    )
