"""
Conversation Flows

The step handlers and trigger commands behind the bot's multi-turn
conversations:

- Export:       laporan -> period -> Google Sheets link
- Add asset:    tambah aset -> [owner] -> type -> country -> name -> opening balance
                (owner is asked only of family members)
- Edit asset:   edit aset <nama> -> rename | set balance
- Delete asset: hapus aset <nama> -> confirm
- Confirm:      parsed text / scanned receipt -> yes | no

Handlers only decide. Every ledger write is wrapped in a Finish action,
so the engine runs it after the state has been claimed.

CRITICAL: Step data is stored as JSON. Amounts, ids and dates go in as
strings and are parsed back when the step completes.
"""

import datetime as dt
import re
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

from kanemane.audit.logger import AuditLogger, get_logger
from kanemane.conversation import messages
from kanemane.conversation.engine import (
    Advance,
    Finish,
    Outcome,
    Reprompt,
    StepHandler,
    Trigger,
    TurnContext,
)
from kanemane.ledger.engine import (
    AssetNotFoundError,
    InsufficientBalanceError,
    LedgerEngine,
)
from kanemane.ledger.reports import ReportService, period_for_choice
from kanemane.models.conversation import ConversationState, ConversationStep
from kanemane.models.ledger import (
    Asset,
    AssetType,
    Country,
    Currency,
    FamilyOwner,
    TransactionKind,
    TransactionMeta,
    User,
)
from kanemane.services.export.google_sheets import ExportError, ReportExporterInterface
from kanemane.services.storage.interface import LedgerStorageInterface


logger = get_logger(__name__)


YES_WORDS = frozenset({"1", "ya", "yes", "y", "benar", "simpan"})
NO_WORDS = frozenset({"2", "tidak", "no", "n", "gak", "nggak"})
DELETE_YES_WORDS = frozenset({"ya", "yes", "y"})

EXPORT_COMMANDS = frozenset({"export", "laporan", "/export", "/laporan"})
ADD_ASSET_COMMANDS = frozenset({"tambah aset", "add asset", "/tambah"})
EDIT_ASSET_PATTERN = re.compile(r"^edit\s+(?:aset|asset)\s+(.+)$", re.IGNORECASE)
DELETE_ASSET_PATTERN = re.compile(r"^(?:hapus|delete)\s+(?:aset|asset)\s+(.+)$", re.IGNORECASE)

ASSET_TYPE_CHOICES = {
    "1": AssetType.SAVINGS,
    "2": AssetType.E_MONEY,
    "3": AssetType.INVESTMENT,
    "4": AssetType.CASH,
}
OWNER_CHOICES = {
    "1": "individual",
    "2": "family",
}
COUNTRY_CHOICES = {
    "1": (Country.JP, Currency.JPY),
    "2": (Country.ID, Currency.IDR),
}

BALANCE_PATTERN = re.compile(r"^(?:\d{1,3}(?:[.,]\d{3})+|\d+)$")


def parse_balance(text: str) -> Optional[Decimal]:
    """
    Whole-number balance typed by a user: "50000", "50.000" or "50,000".

    Returns None for anything else.
    """
    text = (text or "").strip().replace(" ", "")
    if not BALANCE_PATTERN.match(text):
        return None
    return Decimal(re.sub(r"[.,]", "", text))


def find_asset(assets: Sequence[Asset], name: str) -> Optional[Asset]:
    """Exact name match first (case-insensitive), then the first partial match."""
    query = (name or "").strip().lower()
    if not query:
        return None
    for asset in assets:
        if asset.name.lower() == query:
            return asset
    for asset in assets:
        if query in asset.name.lower():
            return asset
    return None


def pending_transaction_data(
    kind: TransactionKind,
    amount: Decimal,
    category: str,
    note: Optional[str],
    asset: Asset,
    date: dt.date,
    merchant: Optional[str] = None,
) -> dict:
    """JSON-safe step data for TRANSACTION_CONFIRM and RECEIPT_CONFIRM."""
    data = {
        "kind": kind.value,
        "amount": str(amount),
        "category": category,
        "note": note,
        "asset_id": str(asset.id),
        "asset_name": asset.name,
        "date": date.isoformat(),
    }
    if merchant is not None:
        data["merchant"] = merchant
    return data


class ConversationFlows:
    """
    Handlers for every ConversationStep plus the commands that start flows.

    Usage:
        flows = ConversationFlows(ledger, reports, exporter, storage, audit)
        engine = ConversationEngine(store, flows.handlers(), flows.triggers())
    """

    def __init__(
        self,
        ledger: LedgerEngine,
        report_service: ReportService,
        exporter: ReportExporterInterface,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger
        self._reports = report_service
        self._exporter = exporter
        self._storage = storage
        self._audit = audit_logger

    def handlers(self) -> dict[ConversationStep, StepHandler]:
        return {
            ConversationStep.EXPORT_PERIOD: self.export_period,
            ConversationStep.ASSET_CREATION_OWNER: self.asset_creation_owner,
            ConversationStep.ASSET_CREATION_TYPE: self.asset_creation_type,
            ConversationStep.ASSET_CREATION_COUNTRY: self.asset_creation_country,
            ConversationStep.ASSET_CREATION_NAME: self.asset_creation_name,
            ConversationStep.ASSET_CREATION_BALANCE: self.asset_creation_balance,
            ConversationStep.ASSET_EDIT_CHOICE: self.asset_edit_choice,
            ConversationStep.ASSET_EDIT_NAME: self.asset_edit_name,
            ConversationStep.ASSET_EDIT_BALANCE: self.asset_edit_balance,
            ConversationStep.ASSET_DELETE_CONFIRM: self.asset_delete_confirm,
            ConversationStep.TRANSACTION_CONFIRM: self.transaction_confirm,
            ConversationStep.RECEIPT_CONFIRM: self.receipt_confirm,
        }

    def triggers(self) -> list[Trigger]:
        return [
            self.start_export,
            self.start_asset_creation,
            self.start_asset_edit,
            self.start_asset_delete,
        ]

    # =========================================================================
    # TRIGGERS
    # =========================================================================

    async def start_export(self, ctx: TurnContext) -> Optional[Advance]:
        if ctx.answer not in EXPORT_COMMANDS:
            return None
        return Advance(step=ConversationStep.EXPORT_PERIOD, reply=messages.EXPORT_MENU)

    async def start_asset_creation(self, ctx: TurnContext) -> Optional[Advance]:
        if ctx.answer not in ADD_ASSET_COMMANDS:
            return None
        if ctx.user.family_id:
            return Advance(step=ConversationStep.ASSET_CREATION_OWNER, reply=messages.ASSET_OWNER_MENU)
        return Advance(step=ConversationStep.ASSET_CREATION_TYPE, reply=messages.ASSET_TYPE_MENU)

    async def start_asset_edit(self, ctx: TurnContext):
        match = EDIT_ASSET_PATTERN.match(ctx.text.strip())
        if not match:
            return None
        asset = await self._lookup_asset(ctx.user, match.group(1))
        if asset is None:
            return Reprompt(reply=messages.ASSET_NOT_FOUND.format(name=match.group(1).strip()))
        return Advance(
            step=ConversationStep.ASSET_EDIT_CHOICE,
            data={"asset_id": str(asset.id), "asset_name": asset.name},
            reply=messages.ASSET_EDIT_MENU.format(
                name=asset.name,
                balance=messages.format_money(asset.balance, asset.currency),
            ),
        )

    async def start_asset_delete(self, ctx: TurnContext):
        match = DELETE_ASSET_PATTERN.match(ctx.text.strip())
        if not match:
            return None
        asset = await self._lookup_asset(ctx.user, match.group(1))
        if asset is None:
            return Reprompt(reply=messages.ASSET_NOT_FOUND.format(name=match.group(1).strip()))
        return Advance(
            step=ConversationStep.ASSET_DELETE_CONFIRM,
            data={"asset_id": str(asset.id), "asset_name": asset.name},
            reply=messages.ASSET_DELETE_PROMPT.format(
                name=asset.name,
                balance=messages.format_money(asset.balance, asset.currency),
            ),
        )

    async def _lookup_asset(self, user: User, name: str) -> Optional[Asset]:
        return find_asset(await self._ledger.list_assets(user.owners), name)

    # =========================================================================
    # EXPORT
    # =========================================================================

    async def export_period(self, state: ConversationState, ctx: TurnContext) -> Outcome:
        period = period_for_choice(ctx.answer)
        if period is None:
            return Reprompt(reply=messages.INVALID_CHOICE.format(max=4))

        async def export() -> str:
            report = await self._reports.build(ctx.user.owners, period)
            try:
                url = await self._exporter.export(report)
            except ExportError as e:
                logger.error("report_export_failed", error=str(e), actor=ctx.actor)
                if self._audit:
                    await self._audit.log_external_service_error(
                        service="google_sheets",
                        error_message=str(e),
                        correlation_id=ctx.correlation_id,
                    )
                return messages.EXPORT_FAILED
            if self._audit:
                await self._audit.log_report_exported(
                    url=url,
                    row_count=report.row_count,
                    period_label=period.label,
                    correlation_id=ctx.correlation_id,
                )
            return messages.EXPORT_READY.format(label=period.label, url=url)

        return Finish(action=export)

    # =========================================================================
    # ASSET CREATION
    # =========================================================================

    async def asset_creation_owner(self, state: ConversationState, ctx: TurnContext) -> Outcome:
        owner = OWNER_CHOICES.get(ctx.answer)
        if owner is None:
            return Reprompt(reply=messages.INVALID_CHOICE.format(max=2))
        return Advance(
            step=ConversationStep.ASSET_CREATION_TYPE,
            data={"owner": owner},
            reply=messages.ASSET_TYPE_MENU,
        )

    async def asset_creation_type(self, state: ConversationState, ctx: TurnContext) -> Outcome:
        asset_type = ASSET_TYPE_CHOICES.get(ctx.answer)
        if asset_type is None:
            return Reprompt(reply=messages.INVALID_CHOICE.format(max=4))
        return Advance(
            step=ConversationStep.ASSET_CREATION_COUNTRY,
            data={**state.data, "type": asset_type.value},
            reply=messages.ASSET_COUNTRY_MENU,
        )

    async def asset_creation_country(self, state: ConversationState, ctx: TurnContext) -> Outcome:
        choice = COUNTRY_CHOICES.get(ctx.answer)
        if choice is None:
            return Reprompt(reply=messages.INVALID_CHOICE.format(max=2))
        country, currency = choice
        return Advance(
            step=ConversationStep.ASSET_CREATION_NAME,
            data={**state.data, "country": country.value, "currency": currency.value},
            reply=messages.ASSET_NAME_PROMPT,
        )

    async def asset_creation_name(self, state: ConversationState, ctx: TurnContext) -> Outcome:
        name = ctx.text.strip()
        if not name or len(name) > 255:
            return Reprompt(reply=messages.ASSET_NAME_PROMPT)
        return Advance(
            step=ConversationStep.ASSET_CREATION_BALANCE,
            data={**state.data, "name": name},
            reply=messages.ASSET_BALANCE_PROMPT,
        )

    async def asset_creation_balance(self, state: ConversationState, ctx: TurnContext) -> Outcome:
        balance = parse_balance(ctx.text)
        if balance is None:
            return Reprompt(reply=messages.INVALID_BALANCE)
        data = state.data
        owner = ctx.user.owner
        if data.get("owner") == "family" and ctx.user.family_id:
            owner = FamilyOwner(family_id=ctx.user.family_id)

        async def create() -> str:
            asset = await self._ledger.open_asset(
                owner=owner,
                name=data["name"],
                asset_type=AssetType(data["type"]),
                country=Country(data["country"]),
                currency=Currency(data["currency"]),
                opening_balance=balance,
                created_by=ctx.user.id,
                correlation_id=ctx.correlation_id,
            )
            await self._set_primary_if_missing(ctx.user.id, asset.id)
            return messages.ASSET_CREATED.format(
                name=asset.name,
                balance=messages.format_money(asset.balance, asset.currency),
            )

        return Finish(action=create)

    async def _set_primary_if_missing(self, user_id: UUID, asset_id: UUID) -> None:
        user = self._storage.get_user(user_id)
        if user is not None and user.primary_asset_id is None:
            user.primary_asset_id = asset_id
            self._storage.save_user(user)

    # =========================================================================
    # ASSET EDIT / DELETE
    # =========================================================================

    async def asset_edit_choice(self, state: ConversationState, ctx: TurnContext) -> Outcome:
        name = state.data["asset_name"]
        if ctx.answer == "1":
            return Advance(
                step=ConversationStep.ASSET_EDIT_NAME,
                data=state.data,
                reply=messages.ASSET_EDIT_NAME_PROMPT.format(name=name),
            )
        if ctx.answer == "2":
            return Advance(
                step=ConversationStep.ASSET_EDIT_BALANCE,
                data=state.data,
                reply=messages.ASSET_EDIT_BALANCE_PROMPT.format(name=name),
            )
        if ctx.answer == "3":
            return Finish(reply=messages.CANCELLED)
        return Reprompt(reply=messages.INVALID_CHOICE.format(max=3))

    async def asset_edit_name(self, state: ConversationState, ctx: TurnContext) -> Outcome:
        new_name = ctx.text.strip()
        if not new_name or len(new_name) > 255:
            return Reprompt(reply=messages.ASSET_EDIT_NAME_PROMPT.format(name=state.data["asset_name"]))
        asset_id = UUID(state.data["asset_id"])

        async def rename() -> str:
            try:
                asset = await self._ledger.rename_asset(
                    asset_id, new_name, correlation_id=ctx.correlation_id
                )
            except AssetNotFoundError:
                return messages.ASSET_NOT_FOUND.format(name=state.data["asset_name"])
            return messages.ASSET_RENAMED.format(name=asset.name)

        return Finish(action=rename)

    async def asset_edit_balance(self, state: ConversationState, ctx: TurnContext) -> Outcome:
        balance = parse_balance(ctx.text)
        if balance is None:
            return Reprompt(reply=messages.INVALID_BALANCE)
        asset_id = UUID(state.data["asset_id"])

        async def correct() -> str:
            try:
                asset = await self._ledger.correct_balance(
                    asset_id,
                    balance,
                    created_by=ctx.user.id,
                    correlation_id=ctx.correlation_id,
                )
            except AssetNotFoundError:
                return messages.ASSET_NOT_FOUND.format(name=state.data["asset_name"])
            return messages.ASSET_BALANCE_CHANGED.format(
                name=asset.name,
                balance=messages.format_money(asset.balance, asset.currency),
            )

        return Finish(action=correct)

    async def asset_delete_confirm(self, state: ConversationState, ctx: TurnContext) -> Outcome:
        if ctx.answer not in DELETE_YES_WORDS:
            return Finish(reply=messages.CANCELLED)
        asset_id = UUID(state.data["asset_id"])
        name = state.data["asset_name"]

        async def delete() -> str:
            try:
                await self._ledger.delete_asset(asset_id, correlation_id=ctx.correlation_id)
            except AssetNotFoundError:
                return messages.ASSET_NOT_FOUND.format(name=name)
            user = self._storage.get_user(ctx.user.id)
            if user is not None and user.primary_asset_id == asset_id:
                user.primary_asset_id = None
                self._storage.save_user(user)
            return messages.ASSET_DELETED.format(name=name)

        return Finish(action=delete)

    # =========================================================================
    # TRANSACTION CONFIRMATION
    # =========================================================================

    async def transaction_confirm(self, state: ConversationState, ctx: TurnContext) -> Outcome:
        return self._confirm(state, ctx, note=state.data.get("note"),
                             cancelled_reply=messages.TRANSACTION_CANCELLED)

    async def receipt_confirm(self, state: ConversationState, ctx: TurnContext) -> Outcome:
        merchant = state.data.get("merchant") or "Unknown"
        return self._confirm(state, ctx, note=f"Receipt from {merchant}",
                             cancelled_reply=messages.RECEIPT_CANCELLED)

    def _confirm(
        self,
        state: ConversationState,
        ctx: TurnContext,
        note: Optional[str],
        cancelled_reply: str,
    ) -> Outcome:
        if ctx.answer in NO_WORDS:
            return Finish(reply=cancelled_reply)
        if ctx.answer not in YES_WORDS:
            return Reprompt(reply=messages.CONFIRM_HINT)

        data = state.data

        async def book() -> str:
            return await self._book(data, note, ctx)

        return Finish(action=book)

    async def _book(self, data: dict, note: Optional[str], ctx: TurnContext) -> str:
        asset_id = UUID(data["asset_id"])
        kind = TransactionKind(data["kind"])
        amount = Decimal(data["amount"])
        meta = TransactionMeta(
            category=data["category"],
            date=dt.date.fromisoformat(data["date"]),
            note=note,
            created_by=ctx.user.id,
        )

        try:
            asset = await self._ledger.get_asset(asset_id)
            if not ctx.user.can_access(asset.owner):
                return messages.ASSET_NOT_FOUND.format(name=data["asset_name"])
            _, booked = await self._ledger.book(kind, asset_id, amount, meta, ctx.correlation_id)
        except AssetNotFoundError:
            return messages.ASSET_NOT_FOUND.format(name=data["asset_name"])
        except InsufficientBalanceError as e:
            return messages.insufficient_balance(
                data["asset_name"], e.balance, e.requested, asset.currency
            )

        return messages.transaction_booked(kind.label, booked, meta.category, amount, note)
