"""Webhook delivery logging."""

from .alerts import WebhookHealthAlertNotifier
from .retry import RETRYABLE_ERROR_CODES, error_code, is_retryable
from .service import (
    WebhookEvent,
    WebhookHealthMetrics,
    WebhookHealthReport,
    WebhookLogNotFoundError,
    WebhookLogPage,
    WebhookLoggingService,
    WebhookProcessOutcome,
    WebhookProcessResult,
)

__all__ = [
    "RETRYABLE_ERROR_CODES",
    "WebhookEvent",
    "WebhookHealthAlertNotifier",
    "WebhookHealthMetrics",
    "WebhookHealthReport",
    "WebhookLogNotFoundError",
    "WebhookLogPage",
    "WebhookLoggingService",
    "WebhookProcessOutcome",
    "WebhookProcessResult",
    "error_code",
    "is_retryable",
]
