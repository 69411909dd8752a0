"""Tests for NotificationScheduler – scheduled dispatch, retry backoff and cleanup."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from casenotify.models.notification import ChannelName, NotificationStatus
from casenotify.models.shared import ensure_utc
from casenotify.services.notification_scheduler import NotificationScheduler, retry_backoff
from tests.conftest import FakeProvider

T0 = datetime(2030, 1, 1, 8, 0, tzinfo=UTC)


class TestRetryBackoff:
    def test_doubles_each_retry(self) -> None:
        assert retry_backoff(1) == timedelta(minutes=2)
        assert retry_backoff(2) == timedelta(minutes=4)
        assert retry_backoff(3) == timedelta(minutes=8)


class TestProcessScheduled:
    @pytest.mark.asyncio
    async def test_dispatches_due_notifications(
        self, db_session, make_user, make_notification, providers
    ):
        user = make_user()
        due = make_notification(user, scheduled_for=T0 - timedelta(minutes=1))
        later = make_notification(user, scheduled_for=T0 + timedelta(hours=1))

        result = await NotificationScheduler(db_session, providers).process_scheduled(now=T0)

        assert (result.processed, result.succeeded, result.failed) == (1, 1, 0)
        db_session.refresh(due)
        db_session.refresh(later)
        assert due.status == NotificationStatus.SENT.value
        assert later.status == NotificationStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_second_sweep_is_a_no_op(
        self, db_session, make_user, make_notification, providers
    ):
        user = make_user()
        make_notification(user, scheduled_for=T0 - timedelta(minutes=1))
        scheduler = NotificationScheduler(db_session, providers)

        await scheduler.process_scheduled(now=T0)
        result = await scheduler.process_scheduled(now=T0)

        assert result.processed == 0

    @pytest.mark.asyncio
    async def test_respects_batch_limit(self, db_session, make_user, make_notification, providers):
        user = make_user()
        for _ in range(3):
            make_notification(user, scheduled_for=T0 - timedelta(minutes=1))

        result = await NotificationScheduler(db_session, providers).process_scheduled(
            now=T0, limit=2
        )

        assert result.processed == 2

    @pytest.mark.asyncio
    async def test_failed_delivery_counted(
        self, db_session, make_user, make_notification, failing_providers
    ):
        user = make_user()
        make_notification(user, channels={"email": True}, scheduled_for=T0 - timedelta(minutes=1))

        result = await NotificationScheduler(db_session, failing_providers).process_scheduled(
            now=T0
        )

        assert (result.processed, result.succeeded, result.failed) == (1, 0, 1)

    @pytest.mark.asyncio
    async def test_one_error_does_not_abort_batch(
        self, db_session, make_user, make_notification, providers
    ):
        user = make_user()
        first = make_notification(user, scheduled_for=T0 - timedelta(minutes=2))
        second = make_notification(user, scheduled_for=T0 - timedelta(minutes=1))
        scheduler = NotificationScheduler(db_session, providers)
        original = scheduler.delivery.deliver

        async def flaky(notification, now=None):  # type: ignore[no-untyped-def]
            if notification.id == first.id:
                raise RuntimeError("database hiccup")
            return await original(notification, now=now)

        with patch.object(scheduler.delivery, "deliver", AsyncMock(side_effect=flaky)):
            result = await scheduler.process_scheduled(now=T0)

        assert (result.processed, result.succeeded, result.failed) == (2, 1, 1)
        db_session.refresh(second)
        assert second.status == NotificationStatus.SENT.value

    @pytest.mark.asyncio
    async def test_expired_before_dispatch_is_dropped(
        self, db_session, make_user, make_notification, providers
    ):
        user = make_user()
        stale = make_notification(
            user,
            scheduled_for=T0 - timedelta(hours=2),
            expires_at=T0 - timedelta(hours=1),
        )
        fresh = make_notification(user, scheduled_for=T0 - timedelta(minutes=1))

        result = await NotificationScheduler(db_session, providers).process_scheduled(now=T0)

        assert (result.processed, result.succeeded) == (1, 1)
        db_session.refresh(stale)
        db_session.refresh(fresh)
        assert stale.is_deleted is True
        assert stale.status == NotificationStatus.PENDING.value
        assert stale.channel(ChannelName.IN_APP).delivered is False
        assert fresh.status == NotificationStatus.SENT.value


class TestRetryFailed:
    @pytest.mark.asyncio
    async def test_backoff_gates_next_attempt(self, db_session, make_user, make_notification):
        sms = FakeProvider(ChannelName.SMS, succeed=False)
        user = make_user()
        notification = make_notification(user, channels={"sms": True}, status="failed")
        scheduler = NotificationScheduler(db_session, {ChannelName.SMS: sms})

        first = await scheduler.retry_failed(now=T0)
        assert first.processed == 1
        db_session.refresh(notification)
        assert notification.retry_count == 1
        assert ensure_utc(notification.retry_after) == T0 + timedelta(minutes=2)

        early = await scheduler.retry_failed(now=T0 + timedelta(minutes=1))
        assert early.processed == 0

        second = await scheduler.retry_failed(now=T0 + timedelta(minutes=2))
        assert second.processed == 1
        db_session.refresh(notification)
        assert notification.retry_count == 2
        assert ensure_utc(notification.retry_after) == T0 + timedelta(minutes=6)
        assert len(sms.calls) == 2

    @pytest.mark.asyncio
    async def test_successful_retry_marks_sent(self, db_session, make_user, make_notification):
        email = FakeProvider(ChannelName.EMAIL)
        user = make_user()
        notification = make_notification(user, channels={"email": True}, status="failed")

        result = await NotificationScheduler(db_session, {ChannelName.EMAIL: email}).retry_failed(
            now=T0
        )

        assert (result.processed, result.succeeded, result.failed) == (1, 1, 0)
        db_session.refresh(notification)
        assert notification.status == NotificationStatus.SENT.value
        assert notification.retry_count == 1
        assert notification.retry_after is None

    @pytest.mark.asyncio
    async def test_stops_at_max_retries(self, db_session, make_user, make_notification):
        sms = FakeProvider(ChannelName.SMS, succeed=False)
        user = make_user()
        notification = make_notification(user, channels={"sms": True}, status="failed")
        scheduler = NotificationScheduler(db_session, {ChannelName.SMS: sms})

        now = T0
        for _ in range(5):
            await scheduler.retry_failed(max_retries=2, now=now)
            now += timedelta(hours=1)

        db_session.refresh(notification)
        assert notification.retry_count == 2
        assert len(sms.calls) == 2

    @pytest.mark.asyncio
    async def test_notification_max_retries_below_sweep_cap(
        self, db_session, make_user, make_notification
    ):
        sms = FakeProvider(ChannelName.SMS, succeed=False)
        user = make_user()
        notification = make_notification(
            user, channels={"sms": True}, status="failed", max_retries=1
        )
        scheduler = NotificationScheduler(db_session, {ChannelName.SMS: sms})

        now = T0
        for _ in range(4):
            await scheduler.retry_failed(max_retries=5, now=now)
            now += timedelta(hours=1)

        db_session.refresh(notification)
        assert notification.retry_count == 1
        assert len(sms.calls) == 1

    @pytest.mark.asyncio
    async def test_zero_max_retries_is_never_retried(
        self, db_session, make_user, make_notification, providers
    ):
        user = make_user()
        notification = make_notification(user, status="failed", max_retries=0)

        result = await NotificationScheduler(db_session, providers).retry_failed(now=T0)

        assert result.processed == 0
        db_session.refresh(notification)
        assert notification.status == NotificationStatus.FAILED.value

    @pytest.mark.asyncio
    async def test_batch_filter(self, db_session, make_user, make_notification, providers):
        user = make_user()
        in_batch = make_notification(user, status="failed", batch_id="BATCH-1-AAAAAA")
        outside = make_notification(user, status="failed", batch_id="BATCH-2-BBBBBB")

        result = await NotificationScheduler(db_session, providers).retry_failed(
            batch_id="BATCH-1-AAAAAA", now=T0
        )

        assert result.processed == 1
        db_session.refresh(in_batch)
        db_session.refresh(outside)
        assert in_batch.status == NotificationStatus.SENT.value
        assert outside.status == NotificationStatus.FAILED.value

    @pytest.mark.asyncio
    async def test_nothing_to_retry(self, db_session, providers):
        result = await NotificationScheduler(db_session, providers).retry_failed(now=T0)
        assert (result.processed, result.succeeded, result.failed) == (0, 0, 0)


class TestCleanExpired:
    def test_soft_deletes_once(self, db_session, make_user, make_notification):
        user = make_user()
        expired = make_notification(user, expires_at=T0 - timedelta(minutes=1))
        make_notification(user, expires_at=T0 + timedelta(days=1))
        scheduler = NotificationScheduler(db_session, {})

        assert scheduler.clean_expired(now=T0) == 1
        assert scheduler.clean_expired(now=T0) == 0

        db_session.refresh(expired)
        assert expired.is_deleted is True
        assert expired.deleted_at is not None
