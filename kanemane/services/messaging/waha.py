"""
WhatsApp Messaging via WAHA

WAHA (WhatsApp HTTP API) runs next to the app and exposes the WhatsApp
session over HTTP. This module is the only place that talks to it.

DESIGN DECISION: Sending a reply never raises. A reply that fails to
send is logged; the ledger write that preceded it already happened and
must not be reported as failed. Downloads are different: without the
photo there is nothing to scan, so download_media raises.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence
from urllib.parse import urlsplit

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from kanemane.audit.logger import get_logger
from kanemane.config import WhatsAppSettings, get_settings


logger = get_logger(__name__)

# (button id, button title)
Button = tuple[str, str]


class MessagingError(Exception):
    """Base exception for gateway operations."""
    pass


class MediaTooLargeError(MessagingError):
    pass


def format_chat_id(recipient: str) -> str:
    """
    Turn a phone number into a WhatsApp chat id.

    Existing chat ids (@c.us, @lid, @g.us) are returned unchanged.
    """
    if "@" in recipient:
        return recipient
    return "".join(ch for ch in recipient if ch.isdigit()) + "@c.us"


class MessengerInterface(ABC):
    """
    Abstract interface for the chat gateway.
    """

    @abstractmethod
    async def send_text(self, chat_id: str, text: str) -> bool:
        """Send a text message. Returns False on failure, never raises."""
        pass

    @abstractmethod
    async def send_buttons(self, chat_id: str, text: str, buttons: Sequence[Button]) -> bool:
        """
        Send a message with reply buttons.

        Falls back to a numbered text menu when the gateway engine
        has no button support.
        """
        pass

    @abstractmethod
    async def download_media(self, media_url: str) -> bytes:
        """
        Raises:
            MessagingError: If the media cannot be fetched
        """
        pass

    @abstractmethod
    async def resolve_lid(self, lid: str) -> Optional[str]:
        """Phone number behind a privacy LID, or None if WAHA doesn't know it."""
        pass


class WahaClient(MessengerInterface):
    """
    httpx client for a WAHA server.
    """

    def __init__(
        self,
        settings: Optional[WhatsAppSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        max_media_bytes: Optional[int] = None,
    ):
        self._settings = settings or get_settings().whatsapp
        headers = {"X-Api-Key": self._settings.api_key} if self._settings.api_key else {}
        self._client = http_client or httpx.AsyncClient(
            base_url=self._settings.url,
            headers=headers,
            timeout=httpx.Timeout(timeout=self._settings.timeout_seconds, connect=10.0),
        )
        if max_media_bytes is None:
            max_media_bytes = get_settings().app.max_upload_size_bytes
        self._max_media_bytes = max_media_bytes

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send_text(self, chat_id: str, text: str) -> bool:
        try:
            response = await self._client.post("/api/sendText", json={
                "chatId": format_chat_id(chat_id),
                "text": text,
                "session": self._settings.session,
            })
        except httpx.HTTPError as e:
            logger.error("waha_send_failed", chat_id=chat_id, error=str(e))
            return False

        if response.is_error:
            logger.error(
                "waha_send_rejected",
                chat_id=chat_id,
                status_code=response.status_code,
                body=response.text[:500],
            )
            return False
        return True

    async def send_buttons(self, chat_id: str, text: str, buttons: Sequence[Button]) -> bool:
        try:
            response = await self._client.post("/api/sendButtons", json={
                "chatId": format_chat_id(chat_id),
                "text": text,
                "buttons": [{"id": button_id, "text": title} for button_id, title in buttons],
                "session": self._settings.session,
            })
        except httpx.HTTPError as e:
            logger.error("waha_send_failed", chat_id=chat_id, error=str(e))
            return False

        if response.status_code == 501:
            # Engine without button support (e.g. WEBJS)
            menu = [text, ""]
            menu += [f"{i}. {title}" for i, (_, title) in enumerate(buttons, start=1)]
            menu += ["", "Ketik angka pilihan (contoh: 1)"]
            return await self.send_text(chat_id, "\n".join(menu))

        if response.is_error:
            logger.error(
                "waha_send_rejected",
                chat_id=chat_id,
                status_code=response.status_code,
                body=response.text[:500],
            )
            return False
        return True

    def _local_media_url(self, media_url: str) -> str:
        # WAHA reports its container-internal address; keep only path and query
        parts = urlsplit(media_url)
        url = self._settings.url.rstrip("/") + parts.path
        if parts.query:
            url += "?" + parts.query
        return url

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    async def _fetch(self, url: str) -> httpx.Response:
        return await self._client.get(url)

    async def download_media(self, media_url: str) -> bytes:
        url = self._local_media_url(media_url)
        try:
            response = await self._fetch(url)
        except httpx.HTTPError as e:
            raise MessagingError(f"Media download failed: {e}") from e

        if response.is_error:
            raise MessagingError(
                f"Media download failed with status {response.status_code}"
            )
        if len(response.content) > self._max_media_bytes:
            raise MediaTooLargeError(
                f"Media is {len(response.content)} bytes, limit is {self._max_media_bytes}"
            )
        return response.content

    async def resolve_lid(self, lid: str) -> Optional[str]:
        lid = lid.split("@")[0]
        try:
            response = await self._client.get(f"/api/{self._settings.session}/lids/{lid}")
        except httpx.HTTPError as e:
            logger.error("waha_lid_lookup_failed", lid=lid, error=str(e))
            return None

        if response.is_error:
            logger.warning("waha_lid_unknown", lid=lid, status_code=response.status_code)
            return None

        phone = (response.json() or {}).get("pn")
        if not phone:
            return None
        return phone.split("@")[0]
