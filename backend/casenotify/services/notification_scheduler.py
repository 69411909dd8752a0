"""Scheduled dispatch, retry with exponential backoff and expiry cleanup."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from casenotify.core.config import settings
from casenotify.models.notification import ChannelName
from casenotify.models.shared import utc_now
from casenotify.repositories.notification_repository import NotificationRepository
from casenotify.services.channel_providers import ChannelProvider
from casenotify.services.delivery_service import DeliveryService

logger = logging.getLogger(__name__)


def retry_backoff(retry_count: int) -> timedelta:
    """Delay before the next retry: 2^retry_count minutes."""
    return timedelta(minutes=2 ** retry_count)


@dataclass
class SweepResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0


class NotificationScheduler:
    """Batch sweeps over stored notifications. Each item is processed in isolation."""

    def __init__(
        self,
        db: Session,
        providers: Mapping[ChannelName, ChannelProvider] | None = None,
        delivery: DeliveryService | None = None,
    ):
        self.db = db
        self.repo = NotificationRepository(db)
        self.delivery = delivery or DeliveryService(db, providers)

    async def process_scheduled(
        self, now: datetime | None = None, limit: int | None = None
    ) -> SweepResult:
        """Dispatch pending notifications whose scheduled time has arrived.

        A notification that expired before the sweep reached it is soft-deleted
        without being sent.
        """
        now = now or utc_now()
        due = self.repo.get_due_scheduled(now, limit or settings.SCHEDULED_BATCH_SIZE)
        result = SweepResult()
        for notification in due:
            if notification.is_expired(now):
                logger.info(
                    "Dropping scheduled notification %s, expired before dispatch",
                    notification.notification_number,
                )
                notification.is_deleted = True  # type: ignore[assignment]
                notification.deleted_at = now  # type: ignore[assignment]
                self.repo.save(notification)
                continue
            result.processed += 1
            try:
                delivered = await self.delivery.deliver(notification, now=now)
            except Exception:
                logger.exception(
                    "Error processing scheduled notification %s", notification.id
                )
                self.db.rollback()
                result.failed += 1
                continue
            if delivered:
                result.succeeded += 1
            else:
                result.failed += 1

        logger.info(
            "Processed %d scheduled notifications (%d sent, %d failed)",
            result.processed,
            result.succeeded,
            result.failed,
        )
        return result

    async def retry_failed(
        self,
        max_retries: int | None = None,
        batch_id: str | None = None,
        now: datetime | None = None,
    ) -> SweepResult:
        """Retry failed notifications whose backoff window has elapsed.

        Each retry increments ``retry_count``; a failed retry pushes
        ``retry_after`` out by ``2^retry_count`` minutes. ``max_retries`` caps
        every notification's own ``max_retries``, it never raises it.
        """
        now = now or utc_now()
        limit = settings.DEFAULT_MAX_RETRIES if max_retries is None else max_retries
        candidates = self.repo.get_failed_for_retry(now, limit, batch_id)
        result = SweepResult()
        for notification in candidates:
            result.processed += 1
            try:
                notification.retry_count = int(notification.retry_count or 0) + 1  # type: ignore[assignment]
                delivered = await self.delivery.deliver(notification, now=now)
                if not delivered:
                    notification.retry_after = now + retry_backoff(  # type: ignore[assignment]
                        int(notification.retry_count)
                    )
                    self.repo.save(notification)
            except Exception:
                logger.exception("Error retrying notification %s", notification.id)
                self.db.rollback()
                result.failed += 1
                continue
            if delivered:
                result.succeeded += 1
            else:
                result.failed += 1

        logger.info(
            "Retried %d failed notifications (%d sent, %d failed)",
            result.processed,
            result.succeeded,
            result.failed,
        )
        return result

    def clean_expired(self, now: datetime | None = None) -> int:
        """Soft-delete notifications past their expiry. Returns the newly cleaned count."""
        count = self.repo.soft_delete_expired(now or utc_now())
        logger.info("Cleaned %d expired notifications", count)
        return count
