"""Capability table mapping each notification operation to its allowed roles."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from casenotify.core.errors import UnauthorizedError
from casenotify.models.user import UserRole

if TYPE_CHECKING:
    from casenotify.core.auth import CurrentUser


class Operation(str, Enum):
    CREATE_NOTIFICATION = "create_notification"
    SEND_BULK_NOTIFICATIONS = "send_bulk_notifications"
    LIST_NOTIFICATIONS = "list_notifications"
    NOTIFICATION_STATS = "notification_stats"
    USER_NOTIFICATIONS = "user_notifications"
    VIEW_NOTIFICATION = "view_notification"
    MARK_READ = "mark_read"
    MARK_CLICKED = "mark_clicked"
    RETRY_FAILED = "retry_failed"
    PROCESS_SCHEDULED = "process_scheduled"
    CLEAN_EXPIRED = "clean_expired"


_STAFF = frozenset(UserRole.staff())
_ADMIN = frozenset({UserRole.ADMIN})
_ANYONE = frozenset(UserRole)

CAPABILITIES: dict[Operation, frozenset[UserRole]] = {
    Operation.CREATE_NOTIFICATION: _STAFF,
    Operation.SEND_BULK_NOTIFICATIONS: frozenset({UserRole.ADMIN, UserRole.CASE_WORKER}),
    Operation.LIST_NOTIFICATIONS: _STAFF,
    Operation.NOTIFICATION_STATS: _STAFF,
    Operation.USER_NOTIFICATIONS: _ANYONE,
    Operation.VIEW_NOTIFICATION: _ANYONE,
    Operation.MARK_READ: _ANYONE,
    Operation.MARK_CLICKED: _ANYONE,
    Operation.RETRY_FAILED: _ADMIN,
    Operation.PROCESS_SCHEDULED: _ADMIN,
    Operation.CLEAN_EXPIRED: _ADMIN,
}


def is_allowed(role: UserRole, operation: Operation) -> bool:
    return role in CAPABILITIES[operation]


def authorize(caller: CurrentUser, operation: Operation) -> None:
    """Raise UnauthorizedError unless ``caller`` may perform ``operation``."""
    if is_allowed(caller.role, operation):
        return

    allowed = ", ".join(sorted(role.value for role in CAPABILITIES[operation]))
    raise UnauthorizedError(
        f"Access denied. Required roles: {allowed} to {operation.value}. "
        f"Your role: {caller.role.value}"
    )
