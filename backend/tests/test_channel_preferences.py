"""Tests for per-recipient channel resolution."""

from casenotify.schemas.notification import ChannelRequest, ChannelsConfig, default_channels
from casenotify.services.channel_preferences import resolve_channels


def _all_enabled() -> ChannelsConfig:
    return ChannelsConfig(
        in_app=ChannelRequest(enabled=True),
        email=ChannelRequest(enabled=True),
        sms=ChannelRequest(enabled=True),
        push=ChannelRequest(enabled=True),
    )


def _enabled(config: ChannelsConfig) -> list[str]:
    return [name for name, request in config if request.enabled]


class TestResolveChannels:
    def test_no_preferences_keeps_request(self) -> None:
        resolved = resolve_channels(_all_enabled(), None)
        assert _enabled(resolved) == ["in_app", "email", "sms", "push"]

    def test_email_opt_out_disables_email(self) -> None:
        resolved = resolve_channels(_all_enabled(), {"notifications": {"email": False}})
        assert resolved.email.enabled is False
        assert resolved.sms.enabled is True

    def test_sms_opt_out_disables_sms(self) -> None:
        resolved = resolve_channels(_all_enabled(), {"notifications": {"sms": False}})
        assert resolved.sms.enabled is False
        assert resolved.email.enabled is True

    def test_in_app_and_push_are_not_gated(self) -> None:
        prefs = {"notifications": {"in_app": False, "push": False, "email": False, "sms": False}}
        resolved = resolve_channels(_all_enabled(), prefs)
        assert resolved.in_app.enabled is True
        assert resolved.push.enabled is True

    def test_opt_in_does_not_enable_unrequested_channel(self) -> None:
        resolved = resolve_channels(default_channels(), {"notifications": {"email": True}})
        assert resolved.email.enabled is False
        assert _enabled(resolved) == ["in_app"]

    def test_request_is_not_mutated(self) -> None:
        requested = _all_enabled()
        resolve_channels(requested, {"notifications": {"email": False, "sms": False}})
        assert requested.email.enabled is True
        assert requested.sms.enabled is True

    def test_results_are_independent_copies(self) -> None:
        requested = _all_enabled()
        first = resolve_channels(requested, None)
        second = resolve_channels(requested, None)
        first.email.enabled = False
        assert second.email.enabled is True

    def test_missing_notifications_key(self) -> None:
        resolved = resolve_channels(_all_enabled(), {"language": "fr"})
        assert resolved.email.enabled is True
