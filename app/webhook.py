"""
WhatsApp Webhook Endpoint

WAHA posts every WhatsApp event here. Only `message` events reach the bot;
everything else is acknowledged and ignored.

Run:
    uvicorn app.webhook:app --port 8000

When WAHA_WEBHOOK_SECRET is set, the body must carry a matching
HMAC-SHA256 hex digest in the X-Webhook-Signature header.
"""

import hashlib
import hmac
import json
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from kanemane.audit import get_logger
from kanemane.config import WhatsAppSettings, get_settings
from kanemane.orchestrator import InboundMessage, WhatsAppBot, create_app_components


logger = get_logger(__name__)

app = FastAPI(title="Kanemane WhatsApp Webhook")

_bot: Optional[WhatsAppBot] = None


def get_bot() -> WhatsAppBot:
    """Dependency to get the bot, built on first use."""
    global _bot
    if _bot is None:
        _bot = create_app_components().bot
    return _bot


def get_whatsapp_settings() -> WhatsAppSettings:
    return get_settings().whatsapp


def signature_is_valid(body: bytes, signature: str, secret: str) -> bool:
    """Check an HMAC-SHA256 hex digest; a "sha256=" prefix is accepted."""
    if signature.startswith("sha256="):
        signature = signature[len("sha256="):]
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


@app.get("/api/webhook/whatsapp", response_class=PlainTextResponse)
def verify_webhook(
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
    token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
    settings: WhatsAppSettings = Depends(get_whatsapp_settings),
):
    """Subscription handshake: echo the challenge when the token matches."""
    if mode == "subscribe" and settings.verify_token and token == settings.verify_token:
        return challenge or ""
    raise HTTPException(status_code=403, detail="Verification failed")


@app.post("/api/webhook/whatsapp")
async def receive_webhook(
    request: Request,
    bot: WhatsAppBot = Depends(get_bot),
    settings: WhatsAppSettings = Depends(get_whatsapp_settings),
):
    body = await request.body()

    if settings.webhook_secret:
        signature = request.headers.get("X-Webhook-Signature", "")
        if not signature_is_valid(body, signature, settings.webhook_secret):
            logger.warning("webhook_signature_invalid")
            raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        event = json.loads(body or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Body is not valid JSON")
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")

    if event.get("event") != "message":
        return {"status": "ignored"}

    payload = event.get("payload") or {}
    if not payload.get("from"):
        return {"status": "ignored"}

    message = InboundMessage.from_waha(payload)
    await bot.handle(message)
    return {"status": "ok"}
