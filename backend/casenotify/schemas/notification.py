"""Notification schemas.

Request models keep enum-valued fields as plain strings; the service
validates them so unknown values surface as a 400 with a descriptive
message rather than a schema error.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from casenotify.models.notification import DeliveryStatus


class ChannelRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False


class ChannelsConfig(BaseModel):
    """Requested channel configuration. Channels not listed are disabled."""

    model_config = ConfigDict(extra="forbid")

    in_app: ChannelRequest = Field(default_factory=ChannelRequest)
    email: ChannelRequest = Field(default_factory=ChannelRequest)
    sms: ChannelRequest = Field(default_factory=ChannelRequest)
    push: ChannelRequest = Field(default_factory=ChannelRequest)


def default_channels() -> ChannelsConfig:
    return ChannelsConfig(in_app=ChannelRequest(enabled=True))


class TemplateSpec(BaseModel):
    template_id: str | None = Field(default=None, max_length=100)
    template_name: str | None = Field(default=None, max_length=200)
    variables: dict[str, Any] = Field(default_factory=dict)


class RelatedEntities(BaseModel):
    model_config = ConfigDict(extra="forbid")

    demande_id: UUID | None = None
    announcement_id: UUID | None = None
    budget_pool_id: UUID | None = None
    payment_id: UUID | None = None
    content_id: UUID | None = None
    related_user_id: UUID | None = None


class NotificationMetadata(BaseModel):
    tags: list[str] = Field(default_factory=list)
    custom_data: dict[str, Any] | None = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: list[str]) -> list[str]:
        return [tag.strip().lower() for tag in v if tag.strip()]


class AgeRange(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min: int | None = Field(default=None, ge=0, le=150)
    max: int | None = Field(default=None, ge=0, le=150)


class TargetCriteria(BaseModel):
    """Declarative recipient filter. Fields AND together; lists are OR-sets."""

    model_config = ConfigDict(extra="forbid")

    roles: list[str] | None = None
    departments: list[str] | None = None
    eligibility_status: list[str] | None = None
    categories: list[str] | None = None
    age_range: AgeRange | None = None


class NotificationCreate(BaseModel):
    title: str | None = None
    message: str | None = None
    type: str = "system"
    category: str = "info"
    priority: str = "normal"
    recipients: list[UUID] = Field(default_factory=list)
    channels: ChannelsConfig = Field(default_factory=default_channels)
    related_entities: RelatedEntities = Field(default_factory=RelatedEntities)
    action_required: bool = False
    action_type: str = "none"
    action_url: str | None = Field(default=None, max_length=500)
    action_data: dict[str, Any] | None = None
    scheduled_for: datetime | None = None
    expires_at: datetime | None = None
    max_retries: int | None = Field(default=None, ge=0, le=10)
    template: TemplateSpec | None = None
    metadata: NotificationMetadata = Field(default_factory=NotificationMetadata)
    campaign_id: str | None = Field(default=None, max_length=100)

    @field_validator("recipients", mode="before")
    @classmethod
    def wrap_single_recipient(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, (str, UUID)):
            return [v]
        return v


class BulkNotificationCreate(BaseModel):
    title: str | None = None
    message: str | None = None
    type: str = "system"
    category: str = "info"
    priority: str = "normal"
    target_criteria: TargetCriteria = Field(default_factory=TargetCriteria)
    channels: ChannelsConfig = Field(default_factory=default_channels)
    scheduled_for: datetime | None = None
    expires_at: datetime | None = None
    max_retries: int | None = Field(default=None, ge=0, le=10)
    template: TemplateSpec | None = None
    metadata: NotificationMetadata = Field(default_factory=NotificationMetadata)
    campaign_id: str | None = Field(default=None, max_length=100)


class MarkReadRequest(BaseModel):
    mark_all: bool = False


class DeviceInfo(BaseModel):
    platform: str | None = Field(default=None, max_length=50)
    browser: str | None = Field(default=None, max_length=50)
    version: str | None = Field(default=None, max_length=50)


class LocationInfo(BaseModel):
    ip: str | None = Field(default=None, max_length=64)
    country: str | None = Field(default=None, max_length=100)
    city: str | None = Field(default=None, max_length=100)


class ClickRequest(BaseModel):
    device_info: DeviceInfo | None = None
    location: LocationInfo | None = None


class RetryRequest(BaseModel):
    batch_id: str | None = None
    max_retries: int = Field(default=3, ge=0, le=10)


class NotificationChannelResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    channel: str
    enabled: bool
    delivered: bool
    delivered_at: datetime | None = None
    attempts: int
    last_attempt: datetime | None = None
    error_message: str | None = None


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    notification_number: str
    title: str
    message: str
    language: str
    type: str
    category: str
    priority: str
    is_urgent: bool
    recipient_id: UUID
    batch_id: str | None = None
    campaign_id: str | None = None
    demande_id: UUID | None = None
    announcement_id: UUID | None = None
    budget_pool_id: UUID | None = None
    payment_id: UUID | None = None
    content_id: UUID | None = None
    related_user_id: UUID | None = None
    action_required: bool
    action_type: str
    action_url: str | None = None
    action_data: dict[str, Any] | None = None
    status: str
    is_read: bool
    read_at: datetime | None = None
    is_clicked: bool
    clicked_at: datetime | None = None
    scheduled_for: datetime | None = None
    sent_at: datetime | None = None
    expires_at: datetime | None = None
    retry_count: int
    max_retries: int
    retry_after: datetime | None = None
    template_id: str | None = None
    template_name: str | None = None
    source: str
    tags: list[str]
    custom_data: dict[str, Any] | None = None
    delivery_time_ms: int | None = None
    read_time_ms: int | None = None
    click_time_ms: int | None = None
    created_by: UUID | None = None
    created_at: datetime
    channels: list[NotificationChannelResponse]
    delivery_status: DeliveryStatus


class PaginationResponse(BaseModel):
    current_page: int
    total_pages: int
    total_notifications: int
    has_next_page: bool
    has_prev_page: bool


class NotificationStatisticsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_notifications: int
    sent_notifications: int
    delivered_notifications: int
    read_notifications: int
    clicked_notifications: int
    failed_notifications: int
    urgent_notifications: int
    action_required_notifications: int
    avg_delivery_time: float
    avg_read_time: float
    delivery_rate: float
    read_rate: float
    click_rate: float
    failure_rate: float


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    pagination: PaginationResponse
    statistics: NotificationStatisticsResponse


class FeedSummaryResponse(BaseModel):
    unread_count: int
    action_required_count: int
    total_count: int


class UserNotificationsResponse(BaseModel):
    notifications: list[NotificationResponse]
    pagination: PaginationResponse
    summary: FeedSummaryResponse


class NotificationCreateResponse(BaseModel):
    message: str
    notifications: list[NotificationResponse]
    scheduled: bool


class BulkSendResponse(BaseModel):
    message: str
    batch_id: str
    recipient_count: int
    scheduled: bool


class MarkReadResponse(BaseModel):
    message: str
    updated_count: int
    notification: NotificationResponse | None = None


class ClickResponse(BaseModel):
    message: str
    action_url: str | None = None
    action_data: dict[str, Any] | None = None


class SweepResponse(BaseModel):
    message: str
    processed_count: int
    success_count: int
    failed_count: int


class CleanExpiredResponse(BaseModel):
    message: str
    cleaned_count: int


class TrendBucketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    bucket: str
    total: int
    total_sent: int
    total_read: int
    total_clicked: int
    total_failed: int
    read_rate: float
    click_rate: float


class ChannelPerformanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    channel: str
    enabled: int
    delivered: int
    delivery_rate: float


class TypeBreakdownResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str
    count: int
    read_rate: float
    click_rate: float


class NotificationStatsResponse(BaseModel):
    period: str
    group_by: str
    statistics: NotificationStatisticsResponse
    trends: list[TrendBucketResponse]
    channel_performance: list[ChannelPerformanceResponse]
    type_breakdown: list[TypeBreakdownResponse]
