"""
Gemini Transaction Parser

Sends the message (or receipt photo) to Gemini with a prompt that asks
for one JSON object, then validates that object into our models.

Anything that goes wrong - network error, timeout, prose instead of
JSON, a missing field, a negative amount - becomes ParserUnavailableError.
Callers decide what to fall back to.
"""

import asyncio
import datetime as dt
import json
from typing import Any, Optional, Sequence

import google.generativeai as genai
from pydantic import ValidationError

from kanemane.config import GeminiSettings, get_settings
from kanemane.models.ledger import Currency, TransactionKind, to_amount
from kanemane.models.parsing import (
    KnownAsset,
    ParsedTransaction,
    ParseSource,
    ReceiptItem,
    ReceiptScan,
)
from kanemane.services.parser.interface import (
    CATEGORY_LABELS,
    DEFAULT_CATEGORY,
    ParserUnavailableError,
    TransactionParserInterface,
)


TEXT_PROMPT = """Parse this transaction text into JSON format. Identify:
1. Transaction type: 'income' or 'expense'
2. Category (must be one of: {categories})
3. Amount (number only)
4. Currency: 'JPY' or 'IDR' (detect from keywords: yen/円/jpy = JPY, rupiah/rp/idr = IDR)
5. Asset name (if mentioned, must match one from user's assets)
6. Description

Rules:
- Transaction Type Detection:
  * INCOME keywords: gaji, gajian, salary, beasiswa, scholarship, bonus, dapat, terima, masuk, income, pendapatan
  * EXPENSE keywords: jajan, beli, belanja, bayar, shopping, makan, transport, sewa, pay, spend
  * Default to 'expense' if unclear

- Category Rules:
  * 食費 (Food): makan, jajan, food, meal, breakfast, lunch, dinner, snack, restaurant, cafe, grocery
  * 交通費 (Transport): transport, train, bus, taxi, kereta, grab, gojek, bensin, parking
  * 家賃 (Rent): rent, sewa, housing, apartment
  * 光熱費 (Utilities): electric, listrik, water, air, internet, wifi, gas, utility
  * その他 (Others): everything else

- Currency Detection:
  * JPY: yen, 円, jpy (case insensitive)
  * IDR: rupiah, rp, idr (case insensitive)
  * Default to JPY if not specified

- Asset Matching:
  * User's assets: {assets}
  * Match case-insensitively
  * Return null if not mentioned or no match

Input text: "{text}"

Return ONLY valid JSON in this exact format:
{{"type": "expense", "category": "食費", "amount": 500, "currency": "JPY", "asset_name": "PayPay", "description": "jajan crepes"}}"""


RECEIPT_PROMPT = """Analyze this receipt image and extract information in JSON format.

Extract:
- total_amount: Total purchase amount (number only)
- date: Transaction date (YYYY-MM-DD format, use null if not visible)
- merchant: Store/merchant name
- currency: 'JPY' or 'IDR'
- items: Array of purchased items with name and price
- category: Best matching category ({categories})

Return ONLY valid JSON in this exact format:
{{
  "total_amount": 1250,
  "date": "2026-01-11",
  "merchant": "Lawson",
  "currency": "JPY",
  "category": "食費",
  "items": [
    {{"name": "Onigiri", "price": 150}},
    {{"name": "Drink", "price": 100}}
  ]
}}"""


def extract_json(text: str) -> dict[str, Any]:
    """
    Pull the JSON object out of a model answer.

    Handles ```json fences and leading/trailing prose.
    """
    text = (text or "").strip()
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise ParserUnavailableError("Model answer contains no JSON object")
    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError as e:
        raise ParserUnavailableError(f"Model answer is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParserUnavailableError("Model answer is not a JSON object")
    return data


def _currency(value: Optional[str]) -> Currency:
    try:
        return Currency(str(value or "").strip().upper())
    except ValueError:
        return Currency.JPY


def _category(value: Optional[str]) -> str:
    value = str(value or "").strip()
    return value if value in CATEGORY_LABELS else DEFAULT_CATEGORY


def match_asset_name(name: Optional[str], assets: Sequence[KnownAsset]) -> Optional[str]:
    """Return the canonical name of the asset `name` refers to, if any."""
    if not name:
        return None
    wanted = str(name).strip().lower()
    for asset in assets:
        if asset.name.lower() == wanted:
            return asset.name
    return None


def parsed_transaction_from_json(
    data: dict[str, Any],
    assets: Sequence[KnownAsset] = (),
) -> ParsedTransaction:
    """Validate a model answer for a text message."""
    missing = [key for key in ("type", "category", "amount") if key not in data]
    if missing:
        raise ParserUnavailableError(f"Model answer is missing {', '.join(missing)}")

    try:
        kind = TransactionKind(str(data["type"]).strip().lower())
        amount = to_amount(data["amount"])
        return ParsedTransaction(
            kind=kind,
            category=_category(data.get("category")),
            amount=amount,
            currency=_currency(data.get("currency")),
            asset_name_hint=match_asset_name(data.get("asset_name"), assets),
            description=str(data.get("description") or "")[:1000],
            source=ParseSource.AI,
        )
    except (ValueError, ValidationError) as e:
        raise ParserUnavailableError(f"Model answer failed validation: {e}") from e


def receipt_from_json(data: dict[str, Any]) -> ReceiptScan:
    """Validate a model answer for a receipt photo."""
    if "total_amount" not in data:
        raise ParserUnavailableError("Model answer is missing total_amount")

    try:
        receipt_date = dt.date.today()
        if data.get("date"):
            receipt_date = dt.date.fromisoformat(str(data["date"])[:10])

        items = []
        for item in data.get("items") or []:
            if isinstance(item, dict) and item.get("name"):
                items.append(ReceiptItem(
                    name=str(item["name"])[:200],
                    price=to_amount(item.get("price") or 0),
                ))

        return ReceiptScan(
            amount=to_amount(data["total_amount"]),
            date=receipt_date,
            merchant=str(data.get("merchant") or "Unknown")[:200],
            category=_category(data.get("category")),
            currency=_currency(data.get("currency")),
            items=items,
        )
    except (ValueError, ValidationError) as e:
        raise ParserUnavailableError(f"Model answer failed validation: {e}") from e


class GeminiTransactionParser(TransactionParserInterface):
    """
    Gemini-backed parser for messages and receipt photos.

    BOUNDARIES:
    - NEVER books anything
    - NEVER invents an asset the user does not have
    - Every call is bounded by GeminiSettings.timeout_seconds
    """

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    async def parse_text(
        self,
        text: str,
        assets: Sequence[KnownAsset] = (),
    ) -> ParsedTransaction:
        asset_names = ", ".join(asset.name for asset in assets) or "None"
        prompt = TEXT_PROMPT.format(
            categories=", ".join(CATEGORY_LABELS),
            assets=asset_names,
            text=text.replace('"', "'"),
        )
        data = await self._generate(prompt)
        return parsed_transaction_from_json(data, assets)

    async def scan_receipt(
        self,
        image: bytes,
        mime_type: str = "image/jpeg",
    ) -> ReceiptScan:
        prompt = RECEIPT_PROMPT.format(categories=", ".join(CATEGORY_LABELS))
        data = await self._generate([prompt, {"mime_type": mime_type, "data": image}])
        return receipt_from_json(data)

    async def _generate(self, contents) -> dict[str, Any]:
        try:
            response = await asyncio.wait_for(
                self._model.generate_content_async(contents),
                timeout=self._settings.timeout_seconds,
            )
            answer = response.text
        except asyncio.TimeoutError as e:
            raise ParserUnavailableError("Gemini request timed out") from e
        except Exception as e:
            raise ParserUnavailableError(f"Gemini request failed: {e}") from e
        return extract_json(answer)
