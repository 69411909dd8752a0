"""Effective channel configuration for one recipient."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from casenotify.schemas.notification import ChannelsConfig

# Channels a recipient may opt out of through their preferences
OPT_OUT_CHANNELS = ("email", "sms")


def resolve_channels(
    requested: ChannelsConfig,
    preferences: Mapping[str, Any] | None,
) -> ChannelsConfig:
    """Apply a recipient's opt-outs to the requested channel configuration.

    Works on a deep copy: the same requested config is reused across every
    recipient of a bulk send and must never be mutated. In-app and push are
    not gated by preferences; missing preferences mean no restriction.
    """
    resolved = requested.model_copy(deep=True)
    notification_prefs = (preferences or {}).get("notifications") or {}
    for name in OPT_OUT_CHANNELS:
        if notification_prefs.get(name) is False:
            getattr(resolved, name).enabled = False
    return resolved
