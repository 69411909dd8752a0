"""Repository for Notification storage, listing and aggregation queries."""

from __future__ import annotations

import secrets
import string
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.orm import Query, Session

from casenotify.core.sorting import apply_order_by
from casenotify.models.notification import (
    ChannelName,
    DeliveryStatus,
    Notification,
    NotificationChannel,
    NotificationStatus,
)
from casenotify.models.shared import ensure_utc, utc_now

_NUMBER_ALPHABET = string.ascii_uppercase + string.digits

TREND_FORMATS = {
    "hour": "%Y-%m-%dT%H:00",
    "day": "%Y-%m-%d",
    "month": "%Y-%m",
}


def percentage(numerator: int | float, denominator: int | float) -> float:
    """``numerator / denominator`` as a percentage rounded to 2 decimals, 0 on empty."""
    if not denominator:
        return 0.0
    return round(float(numerator) * 100 / float(denominator), 2)


@dataclass
class NotificationFilters:
    """Composable listing filters. Empty values do not constrain the query."""

    types: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    priorities: list[str] = field(default_factory=list)
    statuses: list[str] = field(default_factory=list)
    recipient_id: UUID | None = None
    search: str | None = None
    is_read: bool | None = None
    action_required: bool | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    batch_id: str | None = None
    delivery_status: str | None = None


@dataclass
class NotificationStatistics:
    total_notifications: int = 0
    sent_notifications: int = 0
    delivered_notifications: int = 0
    read_notifications: int = 0
    clicked_notifications: int = 0
    failed_notifications: int = 0
    urgent_notifications: int = 0
    action_required_notifications: int = 0
    avg_delivery_time: float = 0.0
    avg_read_time: float = 0.0

    @property
    def delivery_rate(self) -> float:
        return percentage(self.sent_notifications, self.total_notifications)

    @property
    def read_rate(self) -> float:
        return percentage(self.read_notifications, self.sent_notifications)

    @property
    def click_rate(self) -> float:
        return percentage(self.clicked_notifications, self.read_notifications)

    @property
    def failure_rate(self) -> float:
        return percentage(self.failed_notifications, self.total_notifications)


@dataclass
class TrendBucket:
    bucket: str
    total: int = 0
    total_sent: int = 0
    total_read: int = 0
    total_clicked: int = 0
    total_failed: int = 0

    @property
    def read_rate(self) -> float:
        return percentage(self.total_read, self.total_sent)

    @property
    def click_rate(self) -> float:
        return percentage(self.total_clicked, self.total_read)


@dataclass
class ChannelPerformance:
    channel: str
    enabled: int
    delivered: int

    @property
    def delivery_rate(self) -> float:
        return percentage(self.delivered, self.enabled)


@dataclass
class TypeBreakdown:
    type: str
    count: int
    read: int
    clicked: int

    @property
    def read_rate(self) -> float:
        return percentage(self.read, self.count)

    @property
    def click_rate(self) -> float:
        return percentage(self.clicked, self.count)


def _enabled_channel_count() -> Any:
    return (
        select(func.count(NotificationChannel.id))
        .where(
            NotificationChannel.notification_id == Notification.id,
            NotificationChannel.enabled == True,  # noqa: E712
        )
        .correlate(Notification)
        .scalar_subquery()
    )


def _delivered_channel_count() -> Any:
    return (
        select(func.count(NotificationChannel.id))
        .where(
            NotificationChannel.notification_id == Notification.id,
            NotificationChannel.enabled == True,  # noqa: E712
            NotificationChannel.delivered == True,  # noqa: E712
        )
        .correlate(Notification)
        .scalar_subquery()
    )


def delivery_status_clause(status: DeliveryStatus | str) -> Any:
    """SQL predicate equivalent to ``classify_delivery`` for one status value."""
    enabled = _enabled_channel_count()
    delivered = _delivered_channel_count()
    value = DeliveryStatus(status)
    if value == DeliveryStatus.NO_CHANNELS:
        return enabled == 0
    if value == DeliveryStatus.NOT_DELIVERED:
        return and_(enabled > 0, delivered == 0)
    if value == DeliveryStatus.FULLY_DELIVERED:
        return and_(enabled > 0, delivered == enabled)
    return and_(delivered > 0, delivered < enabled)


class NotificationRepository:
    def __init__(self, db: Session):
        self.db = db

    def _live(self) -> Query:  # type: ignore[type-arg]
        """Base query for notifications that have not been soft-deleted."""
        return self.db.query(Notification).filter(
            Notification.is_deleted == False  # noqa: E712
        )

    def _filtered(self, filters: NotificationFilters | None) -> Query:  # type: ignore[type-arg]
        query = self._live()
        if filters is None:
            return query
        if filters.types:
            query = query.filter(Notification.type.in_(filters.types))
        if filters.categories:
            query = query.filter(Notification.category.in_(filters.categories))
        if filters.priorities:
            query = query.filter(Notification.priority.in_(filters.priorities))
        if filters.statuses:
            query = query.filter(Notification.status.in_(filters.statuses))
        if filters.recipient_id is not None:
            query = query.filter(Notification.recipient_id == filters.recipient_id)
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            query = query.filter(
                or_(
                    Notification.title.ilike(pattern),
                    Notification.message.ilike(pattern),
                    Notification.notification_number.ilike(pattern),
                )
            )
        if filters.is_read is not None:
            query = query.filter(Notification.is_read == filters.is_read)
        if filters.action_required is not None:
            query = query.filter(Notification.action_required == filters.action_required)
        if filters.date_from is not None:
            query = query.filter(Notification.created_at >= filters.date_from)
        if filters.date_to is not None:
            query = query.filter(Notification.created_at <= filters.date_to)
        if filters.batch_id:
            query = query.filter(Notification.batch_id == filters.batch_id)
        if filters.delivery_status:
            query = query.filter(delivery_status_clause(filters.delivery_status))
        return query

    def generate_number(self, notification_type: str, now: datetime | None = None) -> str:
        """Return an unused ``NOT-{TYP}-{YYYYMM}-{XXXX}`` number."""
        stamp = (now or utc_now()).strftime("%Y%m")
        prefix = f"NOT-{notification_type[:3].upper()}-{stamp}-"
        while True:
            suffix = "".join(secrets.choice(_NUMBER_ALPHABET) for _ in range(4))
            candidate = prefix + suffix
            # Pending objects are autoflushed off, so check the session too
            if any(
                isinstance(obj, Notification) and obj.notification_number == candidate
                for obj in self.db.new
            ):
                continue
            exists = (
                self.db.query(Notification.id)
                .filter(Notification.notification_number == candidate)
                .first()
            )
            if exists is None:
                return candidate

    def build(
        self,
        *,
        channels: Iterable[tuple[str, bool]],
        **fields: Any,
    ) -> Notification:
        """Build and stage a notification with one channel row per channel name."""
        if not fields.get("notification_number"):
            fields["notification_number"] = self.generate_number(fields["type"])
        notification = Notification(**fields)
        notification.channels = [
            NotificationChannel(channel=name, enabled=enabled) for name, enabled in channels
        ]
        self.db.add(notification)
        return notification

    def create_many(self, rows: Sequence[dict[str, Any]]) -> list[Notification]:
        """Insert a chunk of notifications in one transaction.

        Each row carries its own ``channels`` entry of ``(name, enabled)`` pairs.
        """
        notifications = [
            self.build(channels=row["channels"], **{k: v for k, v in row.items() if k != "channels"})
            for row in rows
        ]
        self.db.commit()
        for notification in notifications:
            self.db.refresh(notification)
        return notifications

    def save(self, notification: Notification) -> Notification:
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def get_by_id(self, notification_id: UUID) -> Notification | None:
        return self._live().filter(Notification.id == notification_id).first()

    def get_all(
        self,
        filters: NotificationFilters | None = None,
        skip: int = 0,
        limit: int = 20,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> list[Notification]:
        query = apply_order_by(self._filtered(filters), Notification, sort_by, sort_order)
        return query.offset(skip).limit(limit).all()

    def count(self, filters: NotificationFilters | None = None) -> int:
        return self._filtered(filters).count()

    def get_feed(
        self,
        recipient_id: UUID,
        filters: NotificationFilters | None = None,
        skip: int = 0,
        limit: int = 20,
        now: datetime | None = None,
    ) -> tuple[list[Notification], int]:
        """Unexpired notifications of one recipient, newest first, with the total."""
        query = self._feed_query(recipient_id, filters, now)
        total = query.count()
        items = query.order_by(Notification.created_at.desc()).offset(skip).limit(limit).all()
        return items, total

    def _feed_query(
        self,
        recipient_id: UUID,
        filters: NotificationFilters | None,
        now: datetime | None,
    ) -> Query:  # type: ignore[type-arg]
        scoped = replace(filters or NotificationFilters(), recipient_id=recipient_id)
        return self._filtered(scoped).filter(
            or_(Notification.expires_at.is_(None), Notification.expires_at > (now or utc_now()))
        )

    def count_unread(
        self,
        recipient_id: UUID,
        filters: NotificationFilters | None = None,
        now: datetime | None = None,
    ) -> int:
        return (
            self._feed_query(recipient_id, filters, now)
            .filter(Notification.is_read == False)  # noqa: E712
            .count()
        )

    def count_unread_action_required(
        self,
        recipient_id: UUID,
        filters: NotificationFilters | None = None,
        now: datetime | None = None,
    ) -> int:
        return (
            self._feed_query(recipient_id, filters, now)
            .filter(
                Notification.is_read == False,  # noqa: E712
                Notification.action_required == True,  # noqa: E712
            )
            .count()
        )

    def get_unread_for_recipient(self, recipient_id: UUID) -> list[Notification]:
        return (
            self._live()
            .filter(
                Notification.recipient_id == recipient_id,
                Notification.is_read == False,  # noqa: E712
            )
            .all()
        )

    def get_due_scheduled(self, now: datetime, limit: int) -> list[Notification]:
        """Pending notifications whose scheduled time has arrived, oldest first."""
        return (
            self._live()
            .filter(
                Notification.status == NotificationStatus.PENDING.value,
                Notification.scheduled_for.is_not(None),
                Notification.scheduled_for <= now,
            )
            .order_by(Notification.scheduled_for.asc(), Notification.created_at.asc())
            .limit(limit)
            .all()
        )

    def get_failed_for_retry(
        self,
        now: datetime,
        max_retries: int,
        batch_id: str | None = None,
    ) -> list[Notification]:
        """Failed notifications whose backoff has elapsed.

        A notification stays eligible while ``retry_count`` is below both its own
        ``max_retries`` and the sweep-wide ``max_retries`` cap.
        """
        query = self._live().filter(
            Notification.status == NotificationStatus.FAILED.value,
            Notification.retry_count < max_retries,
            Notification.retry_count < Notification.max_retries,
            or_(Notification.retry_after.is_(None), Notification.retry_after <= now),
        )
        if batch_id:
            query = query.filter(Notification.batch_id == batch_id)
        return query.order_by(Notification.created_at.asc()).all()

    def soft_delete_expired(self, now: datetime) -> int:
        count = (
            self._live()
            .filter(Notification.expires_at.is_not(None), Notification.expires_at < now)
            .update(
                {"is_deleted": True, "deleted_at": now},
                synchronize_session=False,
            )
        )
        self.db.commit()
        return int(count)

    def statistics(self, filters: NotificationFilters | None = None) -> NotificationStatistics:
        subquery = self._filtered(filters).with_entities(Notification.id).subquery()
        row = (
            self.db.query(
                func.count(Notification.id).label("total"),
                func.sum(case((Notification.sent_at.is_not(None), 1), else_=0)).label("sent"),
                func.sum(
                    case((delivery_status_clause(DeliveryStatus.FULLY_DELIVERED), 1), else_=0)
                ).label("delivered"),
                func.sum(case((Notification.is_read == True, 1), else_=0)).label("read"),  # noqa: E712
                func.sum(case((Notification.is_clicked == True, 1), else_=0)).label("clicked"),  # noqa: E712
                func.sum(
                    case((Notification.status == NotificationStatus.FAILED.value, 1), else_=0)
                ).label("failed"),
                func.sum(case((Notification.is_urgent == True, 1), else_=0)).label("urgent"),  # noqa: E712
                func.sum(
                    case((Notification.action_required == True, 1), else_=0)  # noqa: E712
                ).label("action_required"),
                func.avg(Notification.delivery_time_ms).label("avg_delivery"),
                func.avg(Notification.read_time_ms).label("avg_read"),
            )
            .filter(Notification.id.in_(select(subquery.c.id)))
            .one()
        )
        return NotificationStatistics(
            total_notifications=int(row.total or 0),
            sent_notifications=int(row.sent or 0),
            delivered_notifications=int(row.delivered or 0),
            read_notifications=int(row.read or 0),
            clicked_notifications=int(row.clicked or 0),
            failed_notifications=int(row.failed or 0),
            urgent_notifications=int(row.urgent or 0),
            action_required_notifications=int(row.action_required or 0),
            avg_delivery_time=round(float(row.avg_delivery or 0), 2),
            avg_read_time=round(float(row.avg_read or 0), 2),
        )

    def engagement_trends(
        self,
        filters: NotificationFilters | None = None,
        group_by: str = "day",
    ) -> list[TrendBucket]:
        """Per-period engagement counts, bucketed in Python to stay dialect-neutral."""
        fmt = TREND_FORMATS[group_by]
        rows = (
            self._filtered(filters)
            .with_entities(
                Notification.created_at,
                Notification.sent_at,
                Notification.is_read,
                Notification.is_clicked,
                Notification.status,
            )
            .all()
        )
        buckets: dict[str, TrendBucket] = {}
        for row in rows:
            created_at = ensure_utc(row.created_at)
            if created_at is None:
                continue
            key = created_at.strftime(fmt)
            bucket = buckets.setdefault(key, TrendBucket(bucket=key))
            bucket.total += 1
            if row.sent_at is not None:
                bucket.total_sent += 1
            if row.is_read:
                bucket.total_read += 1
            if row.is_clicked:
                bucket.total_clicked += 1
            if row.status == NotificationStatus.FAILED.value:
                bucket.total_failed += 1
        return [buckets[key] for key in sorted(buckets)]

    def channel_performance(
        self, filters: NotificationFilters | None = None
    ) -> list[ChannelPerformance]:
        subquery = self._filtered(filters).with_entities(Notification.id).subquery()
        rows = (
            self.db.query(
                NotificationChannel.channel,
                func.sum(case((NotificationChannel.enabled == True, 1), else_=0)).label("enabled"),  # noqa: E712
                func.sum(
                    case(
                        (
                            and_(
                                NotificationChannel.enabled == True,  # noqa: E712
                                NotificationChannel.delivered == True,  # noqa: E712
                            ),
                            1,
                        ),
                        else_=0,
                    )
                ).label("delivered"),
            )
            .filter(NotificationChannel.notification_id.in_(select(subquery.c.id)))
            .group_by(NotificationChannel.channel)
            .all()
        )
        by_channel = {row.channel: row for row in rows}
        result = []
        for name in ChannelName:
            row = by_channel.get(name.value)
            result.append(
                ChannelPerformance(
                    channel=name.value,
                    enabled=int(row.enabled or 0) if row else 0,
                    delivered=int(row.delivered or 0) if row else 0,
                )
            )
        return result

    def type_breakdown(self, filters: NotificationFilters | None = None) -> list[TypeBreakdown]:
        subquery = self._filtered(filters).with_entities(Notification.id).subquery()
        total = func.count(Notification.id)
        rows = (
            self.db.query(
                Notification.type,
                total.label("count"),
                func.sum(case((Notification.is_read == True, 1), else_=0)).label("read"),  # noqa: E712
                func.sum(case((Notification.is_clicked == True, 1), else_=0)).label("clicked"),  # noqa: E712
            )
            .filter(Notification.id.in_(select(subquery.c.id)))
            .group_by(Notification.type)
            .order_by(total.desc(), Notification.type.asc())
            .all()
        )
        return [
            TypeBreakdown(
                type=row.type,
                count=int(row.count or 0),
                read=int(row.read or 0),
                clicked=int(row.clicked or 0),
            )
            for row in rows
        ]
