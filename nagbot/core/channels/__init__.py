"""Notification channels: sender contract, registry, and channel implementations."""

from nagbot.core.channels.base import (
    ChannelSender,
    ChannelSendError,
    SenderRegistry,
    build_sender_registry,
)

__all__ = ["ChannelSendError", "ChannelSender", "SenderRegistry", "build_sender_registry"]
