"""Operator email alerts for failed webhook health checks."""

from __future__ import annotations

from loguru import logger

from repaircoin_api.core.settings import Settings
from repaircoin_api.services.notifications import EmailBackend, SMTPEmailBackend

from .service import WebhookHealthReport


class WebhookHealthAlertNotifier:
    """Email health check issues to the configured operator recipients."""

    def __init__(self, settings: Settings, *, email_backend: EmailBackend | None = None) -> None:
        self._settings = settings
        self._email_backend = email_backend or self._build_email_backend(settings)

    async def notify(self, report: WebhookHealthReport) -> int:
        """Send one email per recipient for an unhealthy report; return how many were delivered."""

        recipients = self._settings.operator_alert_recipients
        backend = self._email_backend
        if report.healthy or not recipients or backend is None:
            return 0

        subject = "Webhook health alert"
        lines = ["The webhook health check found the following issues:", ""]
        lines.extend(f"* {issue}" for issue in report.issues)
        if report.metrics:
            lines.append("")
            for metric in report.metrics:
                lines.append(
                    f"{metric.source}: {metric.total_count} received, "
                    f"{metric.success_rate:.1f}% succeeded, {metric.retry_count} retries"
                )
        body_text = "\n".join(lines)

        delivered = 0
        for recipient in recipients:
            try:
                await backend.send_email(recipient, subject, body_text)
            except Exception as exc:
                logger.exception("Webhook health alert dispatch failed", recipient=recipient, error=str(exc))
                continue
            delivered += 1
        return delivered

    @staticmethod
    def _build_email_backend(settings: Settings) -> EmailBackend | None:
        if not settings.smtp_host or not settings.smtp_sender_email:
            return None
        return SMTPEmailBackend(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender_email=settings.smtp_sender_email,
        )


__all__ = ["WebhookHealthAlertNotifier"]
