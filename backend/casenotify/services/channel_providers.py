"""Channel provider abstraction layer.

Each external channel (email, SMS, push) is served by a provider that takes
one recipient and the rendered content and reports whether the transport
accepted the message.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from casenotify.core.config import settings
from casenotify.models.notification import ChannelName
from casenotify.services.email_service import EmailService, render_notification_html

if TYPE_CHECKING:
    from casenotify.models.notification import Notification
    from casenotify.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class ChannelContent:
    """Rendered notification content handed to a provider."""

    title: str
    message: str
    action_url: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_notification(cls, notification: Notification) -> ChannelContent:
        return cls(
            title=str(notification.title),
            message=str(notification.message),
            action_url=notification.action_url,  # type: ignore[arg-type]
            data={
                "notification_id": str(notification.id),
                "notification_number": notification.notification_number,
                "type": notification.type,
                "priority": notification.priority,
            },
        )


@dataclass
class DeliveryResult:
    """Outcome of one provider send."""

    success: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> DeliveryResult:
        return cls(success=True)

    @classmethod
    def failed(cls, error: str) -> DeliveryResult:
        return cls(success=False, error=error)


class ChannelProvider(ABC):
    """Abstract base class for channel providers."""

    @property
    @abstractmethod
    def channel(self) -> ChannelName:
        """Return the channel this provider serves."""
        pass  # pragma: no cover

    @abstractmethod
    async def send(self, recipient: User, content: ChannelContent) -> DeliveryResult:
        """Send ``content`` to ``recipient``."""
        pass  # pragma: no cover


class SmtpEmailProvider(ChannelProvider):
    """Email channel over SMTP."""

    def __init__(self, email_service: EmailService | None = None):
        self.email_service = email_service or EmailService()

    @property
    def channel(self) -> ChannelName:
        return ChannelName.EMAIL

    async def send(self, recipient: User, content: ChannelContent) -> DeliveryResult:
        if not recipient.email:
            return DeliveryResult.failed("Recipient has no email address")
        sent = await self.email_service.send_email(
            to=str(recipient.email),
            subject=content.title,
            html_body=render_notification_html(content.title, content.message, content.action_url),
        )
        if not sent:
            return DeliveryResult.failed("SMTP is not configured")
        return DeliveryResult.ok()


class _HttpGatewayProvider(ChannelProvider):
    """Shared POST-to-gateway behavior for HTTP channel providers."""

    def __init__(self, url: str, token: str = "", timeout: float = 10.0):
        self.url = url
        self.token = token
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _post(self, payload: dict[str, Any]) -> DeliveryResult:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.url, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("%s gateway request failed: %s", self.channel.value, exc)
            return DeliveryResult.failed(str(exc)[:1000] or exc.__class__.__name__)

        if 200 <= resp.status_code < 300:
            return DeliveryResult.ok()
        body = resp.text[:500] if resp.text else ""
        return DeliveryResult.failed(f"Gateway returned HTTP {resp.status_code} {body}".strip())


class HttpSmsProvider(_HttpGatewayProvider):
    """SMS channel through an HTTP gateway accepting ``{to, message}``."""

    @property
    def channel(self) -> ChannelName:
        return ChannelName.SMS

    async def send(self, recipient: User, content: ChannelContent) -> DeliveryResult:
        if not recipient.phone_number:
            return DeliveryResult.failed("Recipient has no phone number")
        return await self._post({"to": recipient.phone_number, "message": content.message})


class HttpPushProvider(_HttpGatewayProvider):
    """Push channel through an HTTP gateway accepting ``{tokens, title, body, data}``."""

    @property
    def channel(self) -> ChannelName:
        return ChannelName.PUSH

    async def send(self, recipient: User, content: ChannelContent) -> DeliveryResult:
        tokens = list(recipient.device_tokens or [])
        if not tokens:
            return DeliveryResult.failed("Recipient has no registered devices")
        return await self._post(
            {
                "tokens": tokens,
                "title": content.title,
                "body": content.message,
                "data": content.data,
            }
        )


def build_default_providers() -> dict[ChannelName, ChannelProvider]:
    """Providers configured from settings. Gateways without a URL are left out."""
    providers: dict[ChannelName, ChannelProvider] = {
        ChannelName.EMAIL: SmtpEmailProvider(),
    }
    if settings.SMS_GATEWAY_URL:
        providers[ChannelName.SMS] = HttpSmsProvider(
            settings.SMS_GATEWAY_URL,
            settings.SMS_GATEWAY_TOKEN,
            settings.CHANNEL_TIMEOUT_SECONDS,
        )
    if settings.PUSH_GATEWAY_URL:
        providers[ChannelName.PUSH] = HttpPushProvider(
            settings.PUSH_GATEWAY_URL,
            settings.PUSH_GATEWAY_TOKEN,
            settings.CHANNEL_TIMEOUT_SECONDS,
        )
    return providers
