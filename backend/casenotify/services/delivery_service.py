"""Delivery of one notification across its enabled channels."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime

from sqlalchemy.orm import Session

from casenotify.models.notification import (
    ChannelName,
    Notification,
    NotificationChannel,
    NotificationStatus,
)
from casenotify.models.shared import ensure_utc, utc_now
from casenotify.repositories.notification_repository import NotificationRepository
from casenotify.services.channel_providers import (
    ChannelContent,
    ChannelProvider,
    DeliveryResult,
    build_default_providers,
)

logger = logging.getLogger(__name__)

NO_PROVIDER_ERROR = "No provider configured for channel"


class DeliveryService:
    """Attempts delivery on each enabled channel and folds the outcome into status.

    A notification counts as sent when at least one enabled channel delivered.
    Provider failures are recorded on the channel row; they never propagate.
    """

    def __init__(
        self,
        db: Session,
        providers: Mapping[ChannelName, ChannelProvider] | None = None,
    ):
        self.db = db
        self.repo = NotificationRepository(db)
        self.providers = dict(build_default_providers() if providers is None else providers)

    async def deliver(self, notification: Notification, now: datetime | None = None) -> bool:
        """Deliver ``notification`` and persist the result.

        Returns:
            True if any enabled channel was delivered.
        """
        content = ChannelContent.from_notification(notification)
        delivered_any = False

        for record in notification.channels:
            if not record.enabled:
                continue
            if record.delivered:
                delivered_any = True
                continue

            if record.channel == ChannelName.IN_APP.value:
                result = DeliveryResult.ok()
            else:
                result = await self._send_external(notification, record, content)

            attempted_at = now or utc_now()
            if result.success:
                record.delivered = True  # type: ignore[assignment]
                record.delivered_at = attempted_at  # type: ignore[assignment]
                record.error_message = None  # type: ignore[assignment]
                delivered_any = True
            else:
                record.attempts = int(record.attempts or 0) + 1  # type: ignore[assignment]
                record.last_attempt = attempted_at  # type: ignore[assignment]
                record.error_message = result.error  # type: ignore[assignment]
                logger.warning(
                    "Delivery of notification %s via %s failed: %s",
                    notification.notification_number,
                    record.channel,
                    result.error,
                )

        if delivered_any:
            sent_at = now or utc_now()
            notification.status = NotificationStatus.SENT.value  # type: ignore[assignment]
            notification.sent_at = sent_at  # type: ignore[assignment]
            notification.retry_after = None  # type: ignore[assignment]
            created_at = ensure_utc(notification.created_at)  # type: ignore[arg-type]
            if created_at is not None:
                notification.delivery_time_ms = max(  # type: ignore[assignment]
                    int((sent_at - created_at).total_seconds() * 1000), 0
                )
        else:
            notification.status = NotificationStatus.FAILED.value  # type: ignore[assignment]

        self.repo.save(notification)
        return delivered_any

    async def _send_external(
        self,
        notification: Notification,
        record: NotificationChannel,
        content: ChannelContent,
    ) -> DeliveryResult:
        provider = self.providers.get(ChannelName(record.channel))
        if provider is None:
            return DeliveryResult.failed(NO_PROVIDER_ERROR)
        try:
            return await provider.send(notification.recipient, content)
        except Exception as exc:
            logger.exception(
                "Provider error delivering notification %s via %s",
                notification.notification_number,
                record.channel,
            )
            return DeliveryResult.failed(str(exc) or exc.__class__.__name__)
