"""Notification model: one message instance for one recipient, tracked per channel."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from casenotify.core.database import Base
from casenotify.models.shared import UUIDType, ensure_utc, generate_uuid, utc_now


class NotificationType(str, Enum):
    SYSTEM = "system"
    REQUEST_STATUS = "request_status"
    PAYMENT = "payment"
    ANNOUNCEMENT = "announcement"
    REMINDER = "reminder"
    ALERT = "alert"
    WELCOME = "welcome"
    APPROVAL_REQUIRED = "approval_required"
    DOCUMENT_REQUIRED = "document_required"
    DEADLINE_APPROACHING = "deadline_approaching"


class NotificationCategory(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    URGENT = "urgent"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    CLICKED = "clicked"
    FAILED = "failed"


class ActionType(str, Enum):
    REVIEW_REQUEST = "review_request"
    APPROVE_PAYMENT = "approve_payment"
    UPLOAD_DOCUMENT = "upload_document"
    UPDATE_PROFILE = "update_profile"
    RESPOND_TO_MESSAGE = "respond_to_message"
    COMPLETE_APPLICATION = "complete_application"
    VIEW_ANNOUNCEMENT = "view_announcement"
    NONE = "none"


class NotificationSource(str, Enum):
    SYSTEM = "system"
    MANUAL = "manual"
    BULK = "bulk"
    SCHEDULED = "scheduled"
    TRIGGER = "trigger"


class Language(str, Enum):
    AR = "ar"
    FR = "fr"
    EN = "en"


class ChannelName(str, Enum):
    IN_APP = "in_app"
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class DeliveryStatus(str, Enum):
    NO_CHANNELS = "no_channels"
    NOT_DELIVERED = "not_delivered"
    PARTIALLY_DELIVERED = "partially_delivered"
    FULLY_DELIVERED = "fully_delivered"


def compute_is_urgent(priority: str, category: str) -> bool:
    return priority == NotificationPriority.CRITICAL.value or category == NotificationCategory.URGENT.value


def classify_delivery(channels: list[NotificationChannel]) -> DeliveryStatus:
    """Classify delivery progress from the enabled channels' delivered flags."""
    enabled = [c for c in channels if c.enabled]
    if not enabled:
        return DeliveryStatus.NO_CHANNELS
    delivered = sum(1 for c in enabled if c.delivered)
    if delivered == 0:
        return DeliveryStatus.NOT_DELIVERED
    if delivered == len(enabled):
        return DeliveryStatus.FULLY_DELIVERED
    return DeliveryStatus.PARTIALLY_DELIVERED


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_recipient_created", "recipient_id", "created_at"),
        Index("ix_notifications_recipient_read", "recipient_id", "is_read", "created_at"),
        Index("ix_notifications_type_status", "type", "status"),
        Index("ix_notifications_scheduled", "scheduled_for", "status"),
        Index("ix_notifications_retry", "status", "scheduled_for", "retry_after"),
        Index("ix_notifications_expires", "expires_at", "status"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    notification_number = Column(String(40), unique=True, nullable=False, index=True)

    title = Column(String(200), nullable=False)
    message = Column(String(1000), nullable=False)
    language = Column(String(2), nullable=False, default=Language.AR.value)

    type = Column(String(30), nullable=False, default=NotificationType.SYSTEM.value)
    category = Column(String(20), nullable=False, default=NotificationCategory.INFO.value)
    priority = Column(String(20), nullable=False, default=NotificationPriority.NORMAL.value)
    is_urgent = Column(Boolean, nullable=False, default=False)

    recipient_id = Column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    batch_id = Column(String(40), nullable=True, index=True)
    campaign_id = Column(String(100), nullable=True, index=True)

    # Back-references to the object that triggered the notification
    demande_id = Column(UUIDType, nullable=True, index=True)
    announcement_id = Column(UUIDType, nullable=True, index=True)
    budget_pool_id = Column(UUIDType, nullable=True)
    payment_id = Column(UUIDType, nullable=True)
    content_id = Column(UUIDType, nullable=True)
    related_user_id = Column(UUIDType, nullable=True)

    action_required = Column(Boolean, nullable=False, default=False)
    action_type = Column(String(30), nullable=False, default=ActionType.NONE.value)
    action_url = Column(String(500), nullable=True)
    action_data = Column(JSON, nullable=True)

    status = Column(
        String(20), nullable=False, default=NotificationStatus.PENDING.value, index=True
    )
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    is_clicked = Column(Boolean, nullable=False, default=False)
    clicked_at = Column(DateTime(timezone=True), nullable=True)

    scheduled_for = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    max_retries = Column(Integer, nullable=False, default=3)
    retry_count = Column(Integer, nullable=False, default=0)
    retry_after = Column(DateTime(timezone=True), nullable=True)

    template_id = Column(String(100), nullable=True)
    template_name = Column(String(200), nullable=True)
    template_variables = Column(JSON, nullable=True)

    source = Column(String(20), nullable=False, default=NotificationSource.SYSTEM.value)
    tags = Column(JSON, nullable=False, default=list)
    custom_data = Column(JSON, nullable=True)
    target_criteria = Column(JSON, nullable=True)

    delivery_time_ms = Column(Integer, nullable=True)
    read_time_ms = Column(Integer, nullable=True)
    click_time_ms = Column(Integer, nullable=True)
    device_info = Column(JSON, nullable=True)
    location = Column(JSON, nullable=True)

    created_by = Column(UUIDType, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    channels = relationship(
        "NotificationChannel",
        back_populates="notification",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="NotificationChannel.channel",
    )
    recipient = relationship("User", lazy="joined")

    def channel(self, name: ChannelName | str) -> NotificationChannel | None:
        key = ChannelName(name).value
        for record in self.channels:
            if record.channel == key:
                return record
        return None

    @property
    def delivery_status(self) -> DeliveryStatus:
        return classify_delivery(list(self.channels))

    def is_expired(self, now: datetime | None = None) -> bool:
        expires_at = ensure_utc(self.expires_at)  # type: ignore[arg-type]
        return expires_at is not None and expires_at < (now or utc_now())

    def is_scheduled(self, now: datetime | None = None) -> bool:
        scheduled_for = ensure_utc(self.scheduled_for)  # type: ignore[arg-type]
        return scheduled_for is not None and scheduled_for > (now or utc_now())

    def should_retry(self, now: datetime | None = None, max_retries: int | None = None) -> bool:
        limit = int(self.max_retries)
        if max_retries is not None:
            limit = min(limit, max_retries)
        retry_after = ensure_utc(self.retry_after)  # type: ignore[arg-type]
        return (
            self.status == NotificationStatus.FAILED.value
            and int(self.retry_count) < int(limit)
            and (retry_after is None or retry_after <= (now or utc_now()))
        )


class NotificationChannel(Base):
    """Delivery record of one channel for one notification."""

    __tablename__ = "notification_channels"
    __table_args__ = (UniqueConstraint("notification_id", "channel"),)

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    notification_id = Column(
        UUIDType,
        ForeignKey("notifications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    channel = Column(String(10), nullable=False, index=True)
    enabled = Column(Boolean, nullable=False, default=False)
    delivered = Column(Boolean, nullable=False, default=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_attempt = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)

    notification = relationship("Notification", back_populates="channels")
