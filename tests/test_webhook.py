"""
Tests for the WAHA webhook endpoint.

The bot is replaced by a recorder; these tests only cover HTTP handling.
"""

import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient

from app.webhook import app, get_bot, get_whatsapp_settings, signature_is_valid
from kanemane.config import WhatsAppSettings


SECRET = "webhook-secret"
URL = "/api/webhook/whatsapp"


class RecordingBot:
    def __init__(self):
        self.messages = []

    async def handle(self, message):
        self.messages.append(message)
        return []


def sign(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def message_event(**payload) -> bytes:
    payload.setdefault("from", "6281234567890@c.us")
    payload.setdefault("body", "saldo")
    return json.dumps({"event": "message", "session": "default", "payload": payload}).encode()


@pytest.fixture
def bot():
    return RecordingBot()


@pytest.fixture
def client_for(bot):
    def build(**settings):
        app.dependency_overrides[get_bot] = lambda: bot
        app.dependency_overrides[get_whatsapp_settings] = lambda: WhatsAppSettings(**settings)
        return TestClient(app)

    yield build
    app.dependency_overrides.clear()


class TestSignature:

    def test_valid_signature(self):
        body = b'{"event": "message"}'
        assert signature_is_valid(body, sign(body), SECRET)
        assert signature_is_valid(body, "sha256=" + sign(body), SECRET)

    def test_invalid_signature(self):
        body = b'{"event": "message"}'
        assert not signature_is_valid(body, sign(body, "other"), SECRET)
        assert not signature_is_valid(body, "", SECRET)


class TestVerification:

    def test_challenge_echoed(self, client_for):
        client = client_for(verify_token="kanemane-verify")
        response = client.get(URL, params={
            "hub.mode": "subscribe",
            "hub.verify_token": "kanemane-verify",
            "hub.challenge": "12345",
        })
        assert response.status_code == 200
        assert response.text == "12345"

    def test_wrong_token(self, client_for):
        client = client_for(verify_token="kanemane-verify")
        response = client.get(URL, params={
            "hub.mode": "subscribe",
            "hub.verify_token": "guess",
            "hub.challenge": "12345",
        })
        assert response.status_code == 403

    def test_no_token_configured(self, client_for):
        client = client_for(verify_token=None)
        response = client.get(URL, params={"hub.mode": "subscribe", "hub.challenge": "1"})
        assert response.status_code == 403


class TestReceive:

    def test_message_is_handled(self, client_for, bot):
        client = client_for(webhook_secret=None)
        response = client.post(URL, content=message_event(body="makan 500"))

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert len(bot.messages) == 1
        assert bot.messages[0].chat_id == "6281234567890@c.us"
        assert bot.messages[0].text == "makan 500"

    def test_signed_message(self, client_for, bot):
        client = client_for(webhook_secret=SECRET)
        body = message_event()
        response = client.post(URL, content=body, headers={"X-Webhook-Signature": sign(body)})

        assert response.status_code == 200
        assert len(bot.messages) == 1

    def test_bad_signature_rejected(self, client_for, bot):
        client = client_for(webhook_secret=SECRET)
        response = client.post(URL, content=message_event(), headers={"X-Webhook-Signature": "bad"})

        assert response.status_code == 401
        assert bot.messages == []

    def test_other_events_ignored(self, client_for, bot):
        client = client_for(webhook_secret=None)
        body = json.dumps({"event": "session.status", "payload": {"status": "WORKING"}}).encode()

        response = client.post(URL, content=body)

        assert response.json() == {"status": "ignored"}
        assert bot.messages == []

    def test_message_without_sender_ignored(self, client_for, bot):
        client = client_for(webhook_secret=None)
        body = json.dumps({"event": "message", "payload": {"body": "hi"}}).encode()

        assert client.post(URL, content=body).json() == {"status": "ignored"}
        assert bot.messages == []

    def test_invalid_json(self, client_for):
        client = client_for(webhook_secret=None)
        assert client.post(URL, content=b"not json").status_code == 400

    def test_non_object_body(self, client_for):
        client = client_for(webhook_secret=None)
        assert client.post(URL, content=b"[1, 2]").status_code == 400
