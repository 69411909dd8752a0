from casenotify.models.notification import (
    ActionType,
    ChannelName,
    DeliveryStatus,
    Language,
    Notification,
    NotificationCategory,
    NotificationChannel,
    NotificationPriority,
    NotificationSource,
    NotificationStatus,
    NotificationType,
)
from casenotify.models.user import AccountStatus, User, UserEligibilityCategory, UserRole

__all__ = [
    "AccountStatus",
    "ActionType",
    "ChannelName",
    "DeliveryStatus",
    "Language",
    "Notification",
    "NotificationCategory",
    "NotificationChannel",
    "NotificationPriority",
    "NotificationSource",
    "NotificationStatus",
    "NotificationType",
    "User",
    "UserEligibilityCategory",
    "UserRole",
]
