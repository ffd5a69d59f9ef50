"""Channel transports for no-show notices."""

from __future__ import annotations

import asyncio
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Dict, List, Optional, Protocol


class EmailBackend(Protocol):
    async def send_email(self, recipient: str, subject: str, body_text: str) -> None:
        ...


class SMSBackend(Protocol):
    async def send_sms(self, recipient: str, body_text: str) -> None:
        ...


class PushBackend(Protocol):
    async def send_push(
        self,
        recipient: str,
        title: str,
        body: str,
        *,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        ...


@dataclass(slots=True)
class OutboundMessage:
    channel: str
    recipient: str
    subject: str | None
    body: str
    metadata: Dict[str, str] = field(default_factory=dict)


class SMTPEmailBackend:
    """Delivers customer notices through an SMTP relay on a worker thread."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: Optional[str],
        password: Optional[str],
        use_tls: bool,
        sender_email: str,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._credentials = (username, password) if username and password else None
        self._use_tls = use_tls
        self._sender_email = sender_email
        self._timeout = timeout_seconds

    def build_message(self, recipient: str, subject: str, body_text: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._sender_email
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body_text)
        return message

    async def send_email(self, recipient: str, subject: str, body_text: str) -> None:
        await asyncio.to_thread(self._deliver, self.build_message(recipient, subject, body_text))

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as relay:
            if self._use_tls:
                relay.starttls()
            if self._credentials:
                relay.login(*self._credentials)
            relay.send_message(message)


class InMemoryNotificationBackend:
    """Collects every channel's messages in one outbox; satisfies all three protocols."""

    def __init__(self) -> None:
        self.outbox: List[OutboundMessage] = []

    def for_channel(self, channel: str) -> List[OutboundMessage]:
        return [message for message in self.outbox if message.channel == channel]

    async def send_email(self, recipient: str, subject: str, body_text: str) -> None:
        self.outbox.append(OutboundMessage("email", recipient, subject, body_text))

    async def send_sms(self, recipient: str, body_text: str) -> None:
        self.outbox.append(OutboundMessage("sms", recipient, None, body_text))

    async def send_push(
        self,
        recipient: str,
        title: str,
        body: str,
        *,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        self.outbox.append(OutboundMessage("push", recipient, title, body, dict(metadata or {})))
