"""Tests for DeliveryService – per-channel attempts and status folding."""

from datetime import UTC, datetime, timedelta

import pytest

from casenotify.models.notification import ChannelName, DeliveryStatus, NotificationStatus
from casenotify.services.delivery_service import NO_PROVIDER_ERROR, DeliveryService
from tests.conftest import FakeProvider


class TestInAppDelivery:
    @pytest.mark.asyncio
    async def test_in_app_only_is_sent(self, db_session, make_user, make_notification, providers):
        user = make_user()
        notification = make_notification(user)

        delivered = await DeliveryService(db_session, providers).deliver(notification)

        assert delivered is True
        assert notification.status == NotificationStatus.SENT.value
        assert notification.sent_at is not None
        in_app = notification.channel(ChannelName.IN_APP)
        assert in_app.delivered is True
        assert in_app.delivered_at is not None
        assert in_app.attempts == 0
        assert notification.delivery_status == DeliveryStatus.FULLY_DELIVERED
        for provider in providers.values():
            assert provider.calls == []

    @pytest.mark.asyncio
    async def test_delivery_time_measured_from_creation(
        self, db_session, make_user, make_notification, providers
    ):
        user = make_user()
        notification = make_notification(user)
        created_at = notification.created_at.replace(tzinfo=UTC)

        await DeliveryService(db_session, providers).deliver(
            notification, now=created_at + timedelta(seconds=2)
        )

        assert notification.delivery_time_ms == 2000


class TestExternalChannels:
    @pytest.mark.asyncio
    async def test_all_channels_delivered(self, db_session, make_user, make_notification, providers):
        user = make_user(device_tokens=["tok"])
        notification = make_notification(
            user, channels={"in_app": True, "email": True, "sms": True, "push": True}
        )

        delivered = await DeliveryService(db_session, providers).deliver(notification)

        assert delivered is True
        assert notification.delivery_status == DeliveryStatus.FULLY_DELIVERED
        assert len(providers[ChannelName.EMAIL].calls) == 1
        assert len(providers[ChannelName.SMS].calls) == 1
        assert len(providers[ChannelName.PUSH].calls) == 1

    @pytest.mark.asyncio
    async def test_disabled_channels_are_not_attempted(
        self, db_session, make_user, make_notification, providers
    ):
        user = make_user()
        notification = make_notification(user, channels={"in_app": True, "email": True})

        await DeliveryService(db_session, providers).deliver(notification)

        assert len(providers[ChannelName.EMAIL].calls) == 1
        assert providers[ChannelName.SMS].calls == []
        assert providers[ChannelName.PUSH].calls == []
        sms = notification.channel(ChannelName.SMS)
        assert sms.enabled is False
        assert sms.delivered is False
        assert sms.attempts == 0

    @pytest.mark.asyncio
    async def test_one_success_is_enough(self, db_session, make_user, make_notification):
        """A notification is sent when any enabled channel delivers."""
        providers = {
            ChannelName.EMAIL: FakeProvider(ChannelName.EMAIL),
            ChannelName.SMS: FakeProvider(ChannelName.SMS, succeed=False, error="SMS down"),
        }
        user = make_user()
        notification = make_notification(user, channels={"email": True, "sms": True})

        delivered = await DeliveryService(db_session, providers).deliver(notification)

        assert delivered is True
        assert notification.status == NotificationStatus.SENT.value
        assert notification.delivery_status == DeliveryStatus.PARTIALLY_DELIVERED
        sms = notification.channel(ChannelName.SMS)
        assert sms.attempts == 1
        assert sms.error_message == "SMS down"
        assert sms.last_attempt is not None

    @pytest.mark.asyncio
    async def test_all_failures_mark_failed(
        self, db_session, make_user, make_notification, failing_providers
    ):
        user = make_user()
        notification = make_notification(user, channels={"email": True, "push": True})

        delivered = await DeliveryService(db_session, failing_providers).deliver(notification)

        assert delivered is False
        assert notification.status == NotificationStatus.FAILED.value
        assert notification.sent_at is None
        assert notification.delivery_status == DeliveryStatus.NOT_DELIVERED
        assert notification.channel(ChannelName.EMAIL).error_message == "SMTP down"
        assert notification.channel(ChannelName.PUSH).error_message == "Push down"

    @pytest.mark.asyncio
    async def test_missing_provider_is_a_failure(self, db_session, make_user, make_notification):
        user = make_user()
        notification = make_notification(user, channels={"sms": True})

        delivered = await DeliveryService(db_session, {}).deliver(notification)

        assert delivered is False
        sms = notification.channel(ChannelName.SMS)
        assert sms.error_message == NO_PROVIDER_ERROR
        assert sms.attempts == 1

    @pytest.mark.asyncio
    async def test_provider_exception_is_recorded(self, db_session, make_user, make_notification):
        providers = {
            ChannelName.EMAIL: FakeProvider(ChannelName.EMAIL, raises=RuntimeError("socket closed")),
        }
        user = make_user()
        notification = make_notification(user, channels={"in_app": True, "email": True})

        delivered = await DeliveryService(db_session, providers).deliver(notification)

        assert delivered is True
        email = notification.channel(ChannelName.EMAIL)
        assert email.delivered is False
        assert email.error_message == "socket closed"

    @pytest.mark.asyncio
    async def test_already_delivered_channels_are_skipped(
        self, db_session, make_user, make_notification
    ):
        email = FakeProvider(ChannelName.EMAIL)
        sms = FakeProvider(ChannelName.SMS, succeed=False)
        user = make_user()
        notification = make_notification(user, channels={"email": True, "sms": True})
        service = DeliveryService(db_session, {ChannelName.EMAIL: email, ChannelName.SMS: sms})

        await service.deliver(notification)
        await service.deliver(notification)

        assert len(email.calls) == 1
        assert len(sms.calls) == 2
        assert notification.channel(ChannelName.SMS).attempts == 2

    @pytest.mark.asyncio
    async def test_success_clears_previous_error(self, db_session, make_user, make_notification):
        sms = FakeProvider(ChannelName.SMS, succeed=False, error="timeout")
        user = make_user()
        notification = make_notification(user, channels={"sms": True})
        service = DeliveryService(db_session, {ChannelName.SMS: sms})

        assert await service.deliver(notification) is False
        sms.succeed = True
        now = datetime(2030, 1, 1, tzinfo=UTC)
        assert await service.deliver(notification, now=now) is True

        record = notification.channel(ChannelName.SMS)
        assert record.delivered is True
        assert record.error_message is None
        assert record.attempts == 1
        assert notification.status == NotificationStatus.SENT.value

    @pytest.mark.asyncio
    async def test_content_passed_to_provider(self, db_session, make_user, make_notification):
        email = FakeProvider(ChannelName.EMAIL)
        user = make_user()
        notification = make_notification(
            user,
            channels={"email": True},
            title="Payment issued",
            action_url="https://example.com/payments/1",
        )

        await DeliveryService(db_session, {ChannelName.EMAIL: email}).deliver(notification)

        recipient_id, content = email.calls[0]
        assert recipient_id == user.id
        assert content.title == "Payment issued"
        assert content.action_url == "https://example.com/payments/1"
        assert content.data["notification_number"] == notification.notification_number


class TestNoChannels:
    @pytest.mark.asyncio
    async def test_no_enabled_channel_fails(self, db_session, make_user, make_notification, providers):
        user = make_user()
        notification = make_notification(user, channels={})

        delivered = await DeliveryService(db_session, providers).deliver(notification)

        assert delivered is False
        assert notification.status == NotificationStatus.FAILED.value
        assert notification.delivery_status == DeliveryStatus.NO_CHANNELS
