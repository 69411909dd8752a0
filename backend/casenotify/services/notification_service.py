"""Service orchestrating notification creation, delivery, tracking and analytics."""

from __future__ import annotations

import logging
import math
import secrets
import string
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from casenotify.core.auth import CurrentUser
from casenotify.core.config import settings
from casenotify.core.errors import BadRequestError, NotFoundError, UnauthorizedError
from casenotify.core.permissions import Operation, authorize
from casenotify.models.notification import (
    ActionType,
    ChannelName,
    DeliveryStatus,
    Notification,
    NotificationCategory,
    NotificationPriority,
    NotificationSource,
    NotificationStatus,
    NotificationType,
    compute_is_urgent,
)
from casenotify.models.shared import ensure_utc, utc_now
from casenotify.models.user import User
from casenotify.repositories.notification_repository import (
    TREND_FORMATS,
    ChannelPerformance,
    NotificationFilters,
    NotificationRepository,
    NotificationStatistics,
    TrendBucket,
    TypeBreakdown,
)
from casenotify.repositories.user_repository import UserRepository
from casenotify.schemas.notification import (
    BulkNotificationCreate,
    ChannelsConfig,
    ClickRequest,
    NotificationCreate,
    TemplateSpec,
)
from casenotify.services.channel_preferences import resolve_channels
from casenotify.services.channel_providers import ChannelProvider
from casenotify.services.delivery_service import DeliveryService
from casenotify.services.notification_scheduler import NotificationScheduler, SweepResult
from casenotify.services.notification_templates import apply_template
from casenotify.services.targeting_service import TargetingService

logger = logging.getLogger(__name__)

PERIOD_DAYS = {
    "7days": 7,
    "30days": 30,
    "90days": 90,
    "1year": 365,
}
DEFAULT_PERIOD = "30days"
DEFAULT_GROUP_BY = "day"

TITLE_MAX_LENGTH = 200
MESSAGE_MAX_LENGTH = 1000

_BATCH_ALPHABET = string.ascii_uppercase + string.digits


def generate_batch_id(now: datetime | None = None) -> str:
    """``BATCH-{epoch ms}-{6 random upper alnum}``."""
    millis = int((now or utc_now()).timestamp() * 1000)
    suffix = "".join(secrets.choice(_BATCH_ALPHABET) for _ in range(6))
    return f"BATCH-{millis}-{suffix}"


@dataclass
class Page:
    items: list[Notification]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1


@dataclass
class CreateResult:
    notifications: list[Notification]
    scheduled: bool


@dataclass
class BulkResult:
    batch_id: str
    recipient_count: int
    scheduled: bool


@dataclass
class ListResult:
    page: Page
    statistics: NotificationStatistics


@dataclass
class FeedResult:
    page: Page
    unread_count: int
    action_required_count: int


@dataclass
class StatsResult:
    period: str
    group_by: str
    statistics: NotificationStatistics
    trends: list[TrendBucket] = field(default_factory=list)
    channel_performance: list[ChannelPerformance] = field(default_factory=list)
    type_breakdown: list[TypeBreakdown] = field(default_factory=list)


@dataclass
class MarkReadResult:
    updated_count: int
    notification: Notification | None = None


def _values(enum_cls: Any) -> set[str]:
    return {member.value for member in enum_cls}


def _check_choice(value: str, enum_cls: Any, label: str) -> None:
    if value not in _values(enum_cls):
        raise BadRequestError(f"Invalid notification {label}")


def _check_choices(values: list[str], enum_cls: Any, label: str) -> None:
    for value in values:
        _check_choice(value, enum_cls, label)


def _elapsed_ms(start: datetime | None, end: datetime) -> int | None:
    start = ensure_utc(start)
    if start is None:
        return None
    return max(int((end - start).total_seconds() * 1000), 0)


class NotificationService:
    """Entry point for every notification operation.

    Each public method authorizes the caller against the capability table
    before touching storage.
    """

    def __init__(
        self,
        db: Session,
        providers: Mapping[ChannelName, ChannelProvider] | None = None,
    ):
        self.db = db
        self.repo = NotificationRepository(db)
        self.user_repo = UserRepository(db)
        self.targeting = TargetingService(db)
        self.delivery = DeliveryService(db, providers)
        self.scheduler = NotificationScheduler(db, delivery=self.delivery)

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _validate_content(
        self,
        *,
        title: str | None,
        message: str | None,
        type: str,
        category: str,
        priority: str,
        scheduled_for: datetime | None,
        expires_at: datetime | None,
        now: datetime,
    ) -> None:
        if not title or not message:
            raise BadRequestError("Title and message are required")
        _check_choice(type, NotificationType, "type")
        _check_choice(category, NotificationCategory, "category")
        _check_choice(priority, NotificationPriority, "priority")
        self._validate_schedule(scheduled_for, expires_at, now)

    @staticmethod
    def _validate_schedule(
        scheduled_for: datetime | None,
        expires_at: datetime | None,
        now: datetime,
    ) -> None:
        scheduled_for = ensure_utc(scheduled_for)
        expires_at = ensure_utc(expires_at)
        if scheduled_for is not None and scheduled_for <= now:
            raise BadRequestError("Scheduled time must be in the future")
        if scheduled_for is not None and expires_at is not None and expires_at <= scheduled_for:
            raise BadRequestError("Expiration time must be after scheduled time")

    @staticmethod
    def _render(
        title: str, message: str, template: TemplateSpec | None
    ) -> tuple[str, str]:
        variables = template.variables if template else None
        final_title = apply_template(title, variables)
        final_message = apply_template(message, variables)
        if len(final_title) > TITLE_MAX_LENGTH:
            raise BadRequestError(f"Title cannot exceed {TITLE_MAX_LENGTH} characters")
        if len(final_message) > MESSAGE_MAX_LENGTH:
            raise BadRequestError(f"Message cannot exceed {MESSAGE_MAX_LENGTH} characters")
        return final_title, final_message

    def _notification_row(
        self,
        *,
        recipient: User,
        requested_channels: ChannelsConfig,
        **fields: Any,
    ) -> dict[str, Any]:
        channels = resolve_channels(requested_channels, recipient.preferences)  # type: ignore[arg-type]
        return {
            **fields,
            "recipient_id": recipient.id,
            "language": recipient.language,
            "channels": [(name, request.enabled) for name, request in channels],
        }

    async def _dispatch_all(self, notifications: list[Notification]) -> None:
        for notification in notifications:
            try:
                await self.delivery.deliver(notification)
            except Exception:
                logger.exception("Failed to deliver notification %s", notification.id)
                self.db.rollback()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_notification(
        self, caller: CurrentUser, data: NotificationCreate, now: datetime | None = None
    ) -> CreateResult:
        """Create one notification per recipient and deliver unless scheduled."""
        authorize(caller, Operation.CREATE_NOTIFICATION)
        now = now or utc_now()

        if not data.title or not data.message:
            raise BadRequestError("Title and message are required")
        if not data.recipients:
            raise BadRequestError("At least one recipient is required")
        self._validate_content(
            title=data.title,
            message=data.message,
            type=data.type,
            category=data.category,
            priority=data.priority,
            scheduled_for=data.scheduled_for,
            expires_at=data.expires_at,
            now=now,
        )
        if data.action_type not in _values(ActionType):
            raise BadRequestError("Invalid action type")

        recipient_ids = list(dict.fromkeys(data.recipients))
        users = {user.id: user for user in self.user_repo.get_reachable_by_ids(recipient_ids)}
        invalid = [str(rid) for rid in recipient_ids if rid not in users]
        if invalid:
            raise BadRequestError(f"Invalid or inactive recipients: {', '.join(invalid)}")

        title, message = self._render(data.title, data.message, data.template)
        scheduled_for = ensure_utc(data.scheduled_for)
        template = data.template or TemplateSpec()

        rows = [
            self._notification_row(
                recipient=users[rid],
                requested_channels=data.channels,
                title=title,
                message=message,
                type=data.type,
                category=data.category,
                priority=data.priority,
                is_urgent=compute_is_urgent(data.priority, data.category),
                campaign_id=data.campaign_id,
                **data.related_entities.model_dump(),
                action_required=data.action_required,
                action_type=data.action_type,
                action_url=data.action_url,
                action_data=data.action_data,
                scheduled_for=scheduled_for,
                expires_at=ensure_utc(data.expires_at),
                max_retries=(
                    settings.DEFAULT_MAX_RETRIES if data.max_retries is None else data.max_retries
                ),
                template_id=template.template_id,
                template_name=template.template_name,
                template_variables=template.variables or None,
                source=NotificationSource.MANUAL.value,
                tags=data.metadata.tags,
                custom_data=data.metadata.custom_data,
                created_by=caller.user_id,
            )
            for rid in recipient_ids
        ]
        notifications = self.repo.create_many(rows)

        due = [n for n in notifications if not n.is_scheduled(now)]
        await self._dispatch_all(due)
        scheduled = len(due) < len(notifications)
        logger.info("Created %d notification(s), scheduled=%s", len(notifications), scheduled)
        return CreateResult(notifications=notifications, scheduled=scheduled)

    async def send_bulk_notifications(
        self, caller: CurrentUser, data: BulkNotificationCreate, now: datetime | None = None
    ) -> BulkResult:
        """Fan a message out to every user matching the targeting criteria."""
        authorize(caller, Operation.SEND_BULK_NOTIFICATIONS)
        now = now or utc_now()

        self._validate_content(
            title=data.title,
            message=data.message,
            type=data.type,
            category=data.category,
            priority=data.priority,
            scheduled_for=data.scheduled_for,
            expires_at=data.expires_at,
            now=now,
        )
        recipients = self.targeting.resolve_recipients(data.target_criteria, today=now.date())

        title, message = self._render(str(data.title), str(data.message), data.template)
        scheduled_for = ensure_utc(data.scheduled_for)
        template = data.template or TemplateSpec()
        batch_id = generate_batch_id(now)
        criteria = data.target_criteria.model_dump(exclude_none=True)
        chunk_size = max(settings.BULK_CHUNK_SIZE, 1)

        created = 0
        for start in range(0, len(recipients), chunk_size):
            chunk = recipients[start : start + chunk_size]
            rows = [
                self._notification_row(
                    recipient=user,
                    requested_channels=data.channels,
                    title=title,
                    message=message,
                    type=data.type,
                    category=data.category,
                    priority=data.priority,
                    is_urgent=compute_is_urgent(data.priority, data.category),
                    batch_id=batch_id,
                    campaign_id=data.campaign_id,
                    scheduled_for=scheduled_for,
                    expires_at=ensure_utc(data.expires_at),
                    max_retries=(
                        settings.DEFAULT_MAX_RETRIES
                        if data.max_retries is None
                        else data.max_retries
                    ),
                    template_id=template.template_id,
                    template_name=template.template_name,
                    template_variables=template.variables or None,
                    source=NotificationSource.BULK.value,
                    tags=data.metadata.tags,
                    custom_data=data.metadata.custom_data,
                    target_criteria=criteria,
                    created_by=caller.user_id,
                )
                for user in chunk
            ]
            notifications = self.repo.create_many(rows)
            created += len(notifications)
            await self._dispatch_all([n for n in notifications if not n.is_scheduled(now)])

        logger.info("Bulk batch %s created %d notification(s)", batch_id, created)
        return BulkResult(
            batch_id=batch_id,
            recipient_count=created,
            scheduled=scheduled_for is not None,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_notification(self, caller: CurrentUser, notification_id: UUID) -> Notification:
        authorize(caller, Operation.VIEW_NOTIFICATION)
        notification = self.repo.get_by_id(notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        if not caller.is_staff and notification.recipient_id != caller.user_id:
            raise UnauthorizedError("You can only view your own notifications")
        return notification

    def get_all_notifications(
        self,
        caller: CurrentUser,
        filters: NotificationFilters,
        page: int = 1,
        limit: int = 20,
        sort_by: str | None = "created_at",
        sort_order: str | None = "desc",
    ) -> ListResult:
        """Staff listing with the statistics of the same filter."""
        authorize(caller, Operation.LIST_NOTIFICATIONS)
        _check_choices(filters.types, NotificationType, "type")
        _check_choices(filters.categories, NotificationCategory, "category")
        _check_choices(filters.priorities, NotificationPriority, "priority")
        _check_choices(filters.statuses, NotificationStatus, "status")
        if filters.delivery_status and filters.delivery_status not in _values(DeliveryStatus):
            raise BadRequestError("Invalid delivery status")

        items = self.repo.get_all(
            filters,
            skip=(page - 1) * limit,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        total = self.repo.count(filters)
        return ListResult(
            page=Page(items=items, total=total, page=page, limit=limit),
            statistics=self.repo.statistics(filters),
        )

    def get_user_notifications(
        self,
        caller: CurrentUser,
        filters: NotificationFilters,
        page: int = 1,
        limit: int = 20,
        now: datetime | None = None,
    ) -> FeedResult:
        """The caller's own unexpired notifications, newest first."""
        authorize(caller, Operation.USER_NOTIFICATIONS)
        now = now or utc_now()
        items, total = self.repo.get_feed(
            caller.user_id, filters, skip=(page - 1) * limit, limit=limit, now=now
        )
        return FeedResult(
            page=Page(items=items, total=total, page=page, limit=limit),
            unread_count=self.repo.count_unread(caller.user_id, filters, now=now),
            action_required_count=self.repo.count_unread_action_required(
                caller.user_id, filters, now=now
            ),
        )

    def get_notification_stats(
        self,
        caller: CurrentUser,
        period: str | None = None,
        group_by: str | None = None,
        now: datetime | None = None,
    ) -> StatsResult:
        """Delivery and engagement analytics over a trailing period."""
        authorize(caller, Operation.NOTIFICATION_STATS)
        period = period if period in PERIOD_DAYS else DEFAULT_PERIOD
        group_by = group_by if group_by in TREND_FORMATS else DEFAULT_GROUP_BY
        start = (now or utc_now()) - timedelta(days=PERIOD_DAYS[period])
        filters = NotificationFilters(date_from=start)
        return StatsResult(
            period=period,
            group_by=group_by,
            statistics=self.repo.statistics(filters),
            trends=self.repo.engagement_trends(filters, group_by),
            channel_performance=self.repo.channel_performance(filters),
            type_breakdown=self.repo.type_breakdown(filters),
        )

    # ------------------------------------------------------------------
    # Engagement tracking
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_read(notification: Notification, now: datetime) -> None:
        notification.is_read = True  # type: ignore[assignment]
        notification.read_at = now  # type: ignore[assignment]
        notification.status = NotificationStatus.READ.value  # type: ignore[assignment]
        notification.read_time_ms = _elapsed_ms(notification.sent_at, now)  # type: ignore[arg-type, assignment]

    def mark_as_read(
        self,
        caller: CurrentUser,
        notification_id: UUID | None = None,
        mark_all: bool = False,
        now: datetime | None = None,
    ) -> MarkReadResult:
        """Mark one notification, or all of the caller's unread ones, as read."""
        authorize(caller, Operation.MARK_READ)
        now = now or utc_now()

        if mark_all:
            unread = self.repo.get_unread_for_recipient(caller.user_id)
            for notification in unread:
                self._apply_read(notification, now)
            self.db.commit()
            return MarkReadResult(updated_count=len(unread))

        if notification_id is None:
            raise BadRequestError("Notification id is required")
        notification = self.repo.get_by_id(notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        if notification.recipient_id != caller.user_id:
            raise UnauthorizedError("You can only mark your own notifications as read")

        if notification.is_read:
            return MarkReadResult(updated_count=0, notification=notification)
        self._apply_read(notification, now)
        self.repo.save(notification)
        return MarkReadResult(updated_count=1, notification=notification)

    def mark_as_clicked(
        self,
        caller: CurrentUser,
        notification_id: UUID,
        data: ClickRequest | None = None,
        now: datetime | None = None,
    ) -> Notification:
        """Record the first click on a notification and return it for its action."""
        authorize(caller, Operation.MARK_CLICKED)
        now = now or utc_now()
        notification = self.repo.get_by_id(notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        if notification.recipient_id != caller.user_id:
            raise UnauthorizedError("You can only interact with your own notifications")

        if notification.is_clicked:
            return notification
        notification.is_clicked = True  # type: ignore[assignment]
        notification.clicked_at = now  # type: ignore[assignment]
        notification.status = NotificationStatus.CLICKED.value  # type: ignore[assignment]
        notification.click_time_ms = _elapsed_ms(notification.read_at, now)  # type: ignore[arg-type, assignment]
        if data is not None and data.device_info is not None:
            notification.device_info = data.device_info.model_dump(exclude_none=True)  # type: ignore[assignment]
        if data is not None and data.location is not None:
            notification.location = data.location.model_dump(exclude_none=True)  # type: ignore[assignment]
        return self.repo.save(notification)

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def retry_failed_notifications(
        self,
        caller: CurrentUser,
        batch_id: str | None = None,
        max_retries: int | None = None,
        now: datetime | None = None,
    ) -> SweepResult:
        authorize(caller, Operation.RETRY_FAILED)
        return await self.scheduler.retry_failed(max_retries=max_retries, batch_id=batch_id, now=now)

    async def process_scheduled_notifications(
        self, caller: CurrentUser, now: datetime | None = None
    ) -> SweepResult:
        authorize(caller, Operation.PROCESS_SCHEDULED)
        return await self.scheduler.process_scheduled(now=now)

    def clean_expired_notifications(self, caller: CurrentUser, now: datetime | None = None) -> int:
        authorize(caller, Operation.CLEAN_EXPIRED)
        return self.scheduler.clean_expired(now=now)
