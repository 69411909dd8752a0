from casenotify.repositories.notification_repository import (
    NotificationFilters,
    NotificationRepository,
)
from casenotify.repositories.user_repository import UserRepository

__all__ = [
    "NotificationFilters",
    "NotificationRepository",
    "UserRepository",
]
