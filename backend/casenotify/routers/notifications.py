"""Notification API endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from casenotify.core.auth import CurrentUser, get_current_user
from casenotify.core.database import get_db
from casenotify.core.errors import BadRequestError, NotFoundError, UnauthorizedError
from casenotify.models.notification import ChannelName
from casenotify.repositories.notification_repository import NotificationFilters
from casenotify.schemas.notification import (
    BulkNotificationCreate,
    BulkSendResponse,
    ChannelPerformanceResponse,
    CleanExpiredResponse,
    ClickRequest,
    ClickResponse,
    FeedSummaryResponse,
    MarkReadRequest,
    MarkReadResponse,
    NotificationCreate,
    NotificationCreateResponse,
    NotificationListResponse,
    NotificationResponse,
    NotificationStatisticsResponse,
    NotificationStatsResponse,
    PaginationResponse,
    RetryRequest,
    SweepResponse,
    TrendBucketResponse,
    TypeBreakdownResponse,
    UserNotificationsResponse,
)
from casenotify.services.channel_providers import ChannelProvider, build_default_providers
from casenotify.services.notification_service import NotificationService, Page

router = APIRouter()

AUTH_RESPONSES: dict[int | str, dict[str, str]] = {
    401: {"description": "Unauthorized – invalid or missing bearer token"},
    403: {"description": "Caller's role does not allow this operation"},
}


def get_channel_providers() -> dict[ChannelName, ChannelProvider]:
    return build_default_providers()


def get_notification_service(
    db: Session = Depends(get_db),
    providers: dict[ChannelName, ChannelProvider] = Depends(get_channel_providers),
) -> NotificationService:
    return NotificationService(db, providers)


def _to_http(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, UnauthorizedError):
        return HTTPException(status_code=403, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _split(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _pagination(page: Page) -> PaginationResponse:
    return PaginationResponse(
        current_page=page.page,
        total_pages=page.total_pages,
        total_notifications=page.total,
        has_next_page=page.has_next_page,
        has_prev_page=page.has_prev_page,
    )


@router.post(
    "/",
    response_model=NotificationCreateResponse,
    status_code=201,
    summary="Create notifications",
    responses={
        **AUTH_RESPONSES,
        400: {"description": "Validation error or invalid recipients"},
    },
)
async def create_notification(
    data: NotificationCreate,
    service: NotificationService = Depends(get_notification_service),
    caller: CurrentUser = Depends(get_current_user),
) -> NotificationCreateResponse:
    """Create one notification per recipient and deliver it unless scheduled."""
    try:
        result = await service.create_notification(caller, data)
    except (BadRequestError, UnauthorizedError) as e:
        raise _to_http(e) from None
    return NotificationCreateResponse(
        message=f"{len(result.notifications)} notification(s) created successfully",
        notifications=[NotificationResponse.model_validate(n) for n in result.notifications],
        scheduled=result.scheduled,
    )


@router.post(
    "/bulk",
    response_model=BulkSendResponse,
    summary="Send bulk notifications",
    responses={
        **AUTH_RESPONSES,
        400: {"description": "Validation error or no matching users"},
    },
)
async def send_bulk_notifications(
    data: BulkNotificationCreate,
    service: NotificationService = Depends(get_notification_service),
    caller: CurrentUser = Depends(get_current_user),
) -> BulkSendResponse:
    """Send one notification to every user matching the targeting criteria."""
    try:
        result = await service.send_bulk_notifications(caller, data)
    except (BadRequestError, UnauthorizedError) as e:
        raise _to_http(e) from None
    return BulkSendResponse(
        message=f"Bulk notification sent to {result.recipient_count} users",
        batch_id=result.batch_id,
        recipient_count=result.recipient_count,
        scheduled=result.scheduled,
    )


@router.get(
    "/",
    response_model=NotificationListResponse,
    summary="List notifications",
    responses={**AUTH_RESPONSES, 400: {"description": "Invalid filter value"}},
)
async def list_notifications(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    type: str | None = Query(default=None, description="Comma-separated types"),
    category: str | None = Query(default=None, description="Comma-separated categories"),
    priority: str | None = Query(default=None, description="Comma-separated priorities"),
    status: str | None = Query(default=None, description="Comma-separated statuses"),
    recipient: UUID | None = None,
    search: str | None = None,
    sort_by: str = Query(default="created_at"),
    sort_order: str = Query(default="desc", pattern="^(asc|desc)$"),
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    is_read: bool | None = None,
    action_required: bool | None = None,
    batch_id: str | None = None,
    delivery_status: str | None = None,
    service: NotificationService = Depends(get_notification_service),
    caller: CurrentUser = Depends(get_current_user),
) -> NotificationListResponse:
    """Staff view of all notifications with filters and statistics."""
    filters = NotificationFilters(
        types=_split(type),
        categories=_split(category),
        priorities=_split(priority),
        statuses=_split(status),
        recipient_id=recipient,
        search=search,
        is_read=is_read,
        action_required=action_required,
        date_from=date_from,
        date_to=date_to,
        batch_id=batch_id,
        delivery_status=delivery_status,
    )
    try:
        result = service.get_all_notifications(
            caller, filters, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order
        )
    except (BadRequestError, UnauthorizedError) as e:
        raise _to_http(e) from None
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in result.page.items],
        pagination=_pagination(result.page),
        statistics=NotificationStatisticsResponse.model_validate(result.statistics),
    )


@router.get(
    "/stats",
    response_model=NotificationStatsResponse,
    summary="Notification analytics",
    responses=AUTH_RESPONSES,
)
async def notification_stats(
    period: str = Query(default="30days", description="7days, 30days, 90days or 1year"),
    group_by: str = Query(default="day", description="hour, day or month"),
    service: NotificationService = Depends(get_notification_service),
    caller: CurrentUser = Depends(get_current_user),
) -> NotificationStatsResponse:
    """Delivery statistics, engagement trends, channel performance and type breakdown."""
    try:
        result = service.get_notification_stats(caller, period=period, group_by=group_by)
    except UnauthorizedError as e:
        raise _to_http(e) from None
    return NotificationStatsResponse(
        period=result.period,
        group_by=result.group_by,
        statistics=NotificationStatisticsResponse.model_validate(result.statistics),
        trends=[TrendBucketResponse.model_validate(t) for t in result.trends],
        channel_performance=[
            ChannelPerformanceResponse.model_validate(c) for c in result.channel_performance
        ],
        type_breakdown=[TypeBreakdownResponse.model_validate(t) for t in result.type_breakdown],
    )


@router.get(
    "/me",
    response_model=UserNotificationsResponse,
    summary="Personal notification feed",
    responses=AUTH_RESPONSES,
)
async def user_notifications(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    type: str | None = None,
    category: str | None = None,
    is_read: bool | None = None,
    action_required: bool | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    service: NotificationService = Depends(get_notification_service),
    caller: CurrentUser = Depends(get_current_user),
) -> UserNotificationsResponse:
    """The caller's own unexpired notifications, newest first."""
    filters = NotificationFilters(
        types=_split(type),
        categories=_split(category),
        is_read=is_read,
        action_required=action_required,
        date_from=date_from,
        date_to=date_to,
    )
    try:
        result = service.get_user_notifications(caller, filters, page=page, limit=limit)
    except UnauthorizedError as e:
        raise _to_http(e) from None
    return UserNotificationsResponse(
        notifications=[NotificationResponse.model_validate(n) for n in result.page.items],
        pagination=_pagination(result.page),
        summary=FeedSummaryResponse(
            unread_count=result.unread_count,
            action_required_count=result.action_required_count,
            total_count=result.page.total,
        ),
    )


@router.post(
    "/read_all",
    response_model=MarkReadResponse,
    summary="Mark all of the caller's notifications as read",
    responses=AUTH_RESPONSES,
)
async def mark_all_as_read(
    service: NotificationService = Depends(get_notification_service),
    caller: CurrentUser = Depends(get_current_user),
) -> MarkReadResponse:
    try:
        result = service.mark_as_read(caller, mark_all=True)
    except UnauthorizedError as e:
        raise _to_http(e) from None
    return MarkReadResponse(
        message=f"{result.updated_count} notifications marked as read",
        updated_count=result.updated_count,
    )


@router.post(
    "/retry",
    response_model=SweepResponse,
    summary="Retry failed notifications",
    responses=AUTH_RESPONSES,
)
async def retry_failed_notifications(
    data: RetryRequest | None = None,
    service: NotificationService = Depends(get_notification_service),
    caller: CurrentUser = Depends(get_current_user),
) -> SweepResponse:
    """Re-attempt failed notifications whose backoff window has elapsed."""
    data = data or RetryRequest()
    try:
        result = await service.retry_failed_notifications(
            caller, batch_id=data.batch_id, max_retries=data.max_retries
        )
    except UnauthorizedError as e:
        raise _to_http(e) from None
    message = (
        f"Retry completed for {result.processed} notifications"
        if result.processed
        else "No notifications available for retry"
    )
    return SweepResponse(
        message=message,
        processed_count=result.processed,
        success_count=result.succeeded,
        failed_count=result.failed,
    )


@router.post(
    "/process_scheduled",
    response_model=SweepResponse,
    summary="Dispatch due scheduled notifications",
    responses=AUTH_RESPONSES,
)
async def process_scheduled_notifications(
    service: NotificationService = Depends(get_notification_service),
    caller: CurrentUser = Depends(get_current_user),
) -> SweepResponse:
    try:
        result = await service.process_scheduled_notifications(caller)
    except UnauthorizedError as e:
        raise _to_http(e) from None
    return SweepResponse(
        message=f"Processed {result.processed} scheduled notifications",
        processed_count=result.processed,
        success_count=result.succeeded,
        failed_count=result.failed,
    )


@router.post(
    "/clean_expired",
    response_model=CleanExpiredResponse,
    summary="Soft-delete expired notifications",
    responses=AUTH_RESPONSES,
)
async def clean_expired_notifications(
    service: NotificationService = Depends(get_notification_service),
    caller: CurrentUser = Depends(get_current_user),
) -> CleanExpiredResponse:
    try:
        count = service.clean_expired_notifications(caller)
    except UnauthorizedError as e:
        raise _to_http(e) from None
    return CleanExpiredResponse(
        message=f"Cleaned up {count} expired notifications",
        cleaned_count=count,
    )


@router.get(
    "/{notification_id}",
    response_model=NotificationResponse,
    summary="Get notification",
    responses={**AUTH_RESPONSES, 404: {"description": "Notification not found"}},
)
async def get_notification(
    notification_id: UUID,
    service: NotificationService = Depends(get_notification_service),
    caller: CurrentUser = Depends(get_current_user),
) -> NotificationResponse:
    try:
        notification = service.get_notification(caller, notification_id)
    except (NotFoundError, UnauthorizedError) as e:
        raise _to_http(e) from None
    return NotificationResponse.model_validate(notification)


@router.post(
    "/{notification_id}/read",
    response_model=MarkReadResponse,
    summary="Mark a notification as read",
    responses={**AUTH_RESPONSES, 404: {"description": "Notification not found"}},
)
async def mark_as_read(
    notification_id: UUID,
    data: MarkReadRequest | None = None,
    service: NotificationService = Depends(get_notification_service),
    caller: CurrentUser = Depends(get_current_user),
) -> MarkReadResponse:
    """Mark a single notification as read, or all of them with ``mark_all``."""
    mark_all = bool(data and data.mark_all)
    try:
        result = service.mark_as_read(caller, notification_id, mark_all=mark_all)
    except (NotFoundError, UnauthorizedError) as e:
        raise _to_http(e) from None
    if mark_all:
        message = f"{result.updated_count} notifications marked as read"
    else:
        message = "Notification marked as read"
    return MarkReadResponse(
        message=message,
        updated_count=result.updated_count,
        notification=(
            NotificationResponse.model_validate(result.notification)
            if result.notification is not None
            else None
        ),
    )


@router.post(
    "/{notification_id}/click",
    response_model=ClickResponse,
    summary="Track a notification click",
    responses={**AUTH_RESPONSES, 404: {"description": "Notification not found"}},
)
async def mark_as_clicked(
    notification_id: UUID,
    data: ClickRequest | None = None,
    service: NotificationService = Depends(get_notification_service),
    caller: CurrentUser = Depends(get_current_user),
) -> ClickResponse:
    try:
        notification = service.mark_as_clicked(caller, notification_id, data)
    except (NotFoundError, UnauthorizedError) as e:
        raise _to_http(e) from None
    return ClickResponse(
        message="Notification click tracked",
        action_url=notification.action_url,  # type: ignore[arg-type]
        action_data=notification.action_data,  # type: ignore[arg-type]
    )
