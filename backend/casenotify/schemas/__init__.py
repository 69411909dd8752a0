from casenotify.schemas.notification import (
    BulkNotificationCreate,
    BulkSendResponse,
    ChannelsConfig,
    ClickRequest,
    ClickResponse,
    MarkReadRequest,
    MarkReadResponse,
    NotificationCreate,
    NotificationCreateResponse,
    NotificationListResponse,
    NotificationResponse,
    NotificationStatsResponse,
    RetryRequest,
    SweepResponse,
    TargetCriteria,
    UserNotificationsResponse,
)

__all__ = [
    "BulkNotificationCreate",
    "BulkSendResponse",
    "ChannelsConfig",
    "ClickRequest",
    "ClickResponse",
    "MarkReadRequest",
    "MarkReadResponse",
    "NotificationCreate",
    "NotificationCreateResponse",
    "NotificationListResponse",
    "NotificationResponse",
    "NotificationStatsResponse",
    "RetryRequest",
    "SweepResponse",
    "TargetCriteria",
    "UserNotificationsResponse",
]
