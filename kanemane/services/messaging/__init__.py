"""Chat gateway package."""

from kanemane.services.messaging.waha import (
    Button,
    MediaTooLargeError,
    MessagingError,
    MessengerInterface,
    WahaClient,
    format_chat_id,
)

__all__ = [
    "Button",
    "MediaTooLargeError",
    "MessagingError",
    "MessengerInterface",
    "WahaClient",
    "format_chat_id",
]
