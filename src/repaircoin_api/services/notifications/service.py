"""Customer notifications for no-show tier escalations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from loguru import logger

from repaircoin_api.core.settings import get_settings
from repaircoin_api.models.customer import Customer, NoShowTierEnum

from .backend import EmailBackend, PushBackend, SMSBackend, SMTPEmailBackend


@dataclass
class NotificationEvent:
    """Representation of a notification that was sent."""

    channel: str
    recipient: str
    subject: str
    body_text: str
    metadata: dict[str, Any] = field(default_factory=dict)


_TIER_COPY: dict[NoShowTierEnum, tuple[str, str]] = {
    NoShowTierEnum.WARNING: (
        "Missed appointment recorded",
        "We noticed you missed a scheduled appointment. Please cancel ahead of time if your plans change.",
    ),
    NoShowTierEnum.CAUTION: (
        "Booking restrictions now apply",
        "After repeated missed appointments, bookings now need to be made further in advance.",
    ),
    NoShowTierEnum.DEPOSIT_REQUIRED: (
        "A refundable deposit is now required",
        "Future bookings require a refundable deposit until you complete more appointments.",
    ),
    NoShowTierEnum.SUSPENDED: (
        "Booking privileges suspended",
        "Booking privileges are temporarily suspended after repeated missed appointments.",
    ),
}


class NoShowNotificationService:
    """Select channels from the shop's policy toggles and dispatch tier notices."""

    def __init__(
        self,
        *,
        email_backend: Optional[EmailBackend] = None,
        sms_backend: Optional[SMSBackend] = None,
        push_backend: Optional[PushBackend] = None,
        enabled: bool | None = None,
    ) -> None:
        settings = get_settings()
        self._email_backend = email_backend if email_backend is not None else self._build_default_backend()
        self._sms_backend = sms_backend
        self._push_backend = push_backend
        self._enabled = settings.no_show_notifications_enabled if enabled is None else enabled
        self._events: list[NotificationEvent] = []

    @property
    def sent_events(self) -> list[NotificationEvent]:
        """Notices delivered by this instance, oldest first."""
        return self._events

    @staticmethod
    def select_channels(tier: NoShowTierEnum, policy: Any) -> list[str]:
        """Return the channels the policy enables for a tier."""

        channels: list[str] = []
        if tier == NoShowTierEnum.WARNING:
            if policy.send_email_tier1:
                channels.append("email")
        elif tier == NoShowTierEnum.CAUTION:
            if policy.send_email_tier2:
                channels.append("email")
            if policy.send_sms_tier2:
                channels.append("sms")
        elif tier == NoShowTierEnum.DEPOSIT_REQUIRED:
            if policy.send_email_tier3:
                channels.append("email")
            if policy.send_sms_tier3:
                channels.append("sms")
        elif tier == NoShowTierEnum.SUSPENDED:
            if policy.send_email_tier4:
                channels.append("email")
            if policy.send_sms_tier4:
                channels.append("sms")
        else:
            return channels

        if policy.send_push_notifications:
            channels.append("push")
        return channels

    async def notify_tier_change(self, customer: Customer, tier: NoShowTierEnum, policy: Any) -> list[NotificationEvent]:
        """Dispatch tier notices; delivery failures are logged and never raised."""

        if not self._enabled or tier not in _TIER_COPY:
            return []

        subject, body = _TIER_COPY[tier]
        metadata = {"tier": tier.value, "shop_id": str(getattr(policy, "shop_id", ""))}
        dispatched: list[NotificationEvent] = []

        for channel in self.select_channels(tier, policy):
            recipient = self._recipient_for(channel, customer)
            if recipient is None:
                logger.debug(
                    "No-show notification skipped",
                    channel=channel,
                    customer_address=customer.address,
                    reason="no backend or contact",
                )
                continue
            try:
                if channel == "email":
                    await self._email_backend.send_email(recipient, subject, body)
                elif channel == "sms":
                    await self._sms_backend.send_sms(recipient, f"{subject}: {body}")
                else:
                    await self._push_backend.send_push(recipient, subject, body, metadata=metadata)
            except Exception as exc:
                logger.exception(
                    "No-show notification delivery failed",
                    channel=channel,
                    customer_address=customer.address,
                    error=str(exc),
                )
                continue

            event = NotificationEvent(
                channel=channel,
                recipient=recipient,
                subject=subject,
                body_text=body,
                metadata=metadata,
            )
            self._events.append(event)
            dispatched.append(event)

        if dispatched:
            logger.info(
                "No-show tier notification sent",
                customer_address=customer.address,
                tier=tier.value,
                channels=[event.channel for event in dispatched],
            )
        return dispatched

    def _recipient_for(self, channel: str, customer: Customer) -> str | None:
        if channel == "email":
            return customer.email if self._email_backend is not None else None
        if channel == "sms":
            return customer.phone if self._sms_backend is not None else None
        return customer.address if self._push_backend is not None else None

    def _build_default_backend(self) -> Optional[EmailBackend]:
        settings = get_settings()
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


__all__ = ["NoShowNotificationService", "NotificationEvent"]
