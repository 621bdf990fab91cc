"""Channel base: sender contract and the channel-id → sender registry."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from loguru import logger

from nagbot.core.notifications.types import PendingDelivery

if TYPE_CHECKING:
    from nagbot.core.config.schema import Config


class ChannelSendError(RuntimeError):
    """Raised by a sender when the transport or remote API rejects a delivery."""


@runtime_checkable
class ChannelSender(Protocol):
    """Anything that can push a pending delivery to one channel.

    ``send`` returns on success and raises on failure; the dispatcher turns
    the exception text into the delivery's ``last_error``.
    """

    channel: str

    async def send(self, delivery: PendingDelivery) -> None: ...


class SenderRegistry:
    """Channel id → sender. Read-only once the loops are running."""

    def __init__(self, senders: list[ChannelSender] | None = None):
        self._senders: dict[str, ChannelSender] = {}
        for sender in senders or []:
            self.register(sender)

    def register(self, sender: ChannelSender) -> None:
        if sender.channel in self._senders:
            logger.warning(f"Replacing sender for channel '{sender.channel}'")
        self._senders[sender.channel] = sender

    def get(self, channel: str) -> ChannelSender | None:
        return self._senders.get(channel)

    def channels(self) -> list[str]:
        return sorted(self._senders)

    def __contains__(self, channel: object) -> bool:
        return channel in self._senders

    def __len__(self) -> int:
        return len(self._senders)


def build_sender_registry(config: Config) -> SenderRegistry:
    """Register a sender for every enabled channel."""
    registry = SenderRegistry()

    tg = config.channels.telegram
    if tg.enabled:
        from nagbot.core.channels.telegram import TelegramChannel

        registry.register(
            TelegramChannel(
                bot_token=tg.bot_token,
                chat_id=tg.chat_id,
                timeout_s=tg.request_timeout_s,
            )
        )

    unrouted = [c for c in config.notifications.channels if c not in registry]
    if config.notifications.enabled and unrouted:
        logger.warning(f"No sender for notification channel(s): {unrouted}")
    return registry
