"""Customer notifications for no-show tier changes."""

from .backend import (
    EmailBackend,
    InMemoryNotificationBackend,
    OutboundMessage,
    PushBackend,
    SMSBackend,
    SMTPEmailBackend,
)
from .service import NoShowNotificationService, NotificationEvent

__all__ = [
    "EmailBackend",
    "InMemoryNotificationBackend",
    "NoShowNotificationService",
    "NotificationEvent",
    "OutboundMessage",
    "PushBackend",
    "SMSBackend",
    "SMTPEmailBackend",
]
