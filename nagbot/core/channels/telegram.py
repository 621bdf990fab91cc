"""Telegram channel: Bot API sender, "mark done" callbacks, polling listener, webhook."""

from __future__ import annotations

import asyncio
import html
import secrets
import uuid
from datetime import datetime, timezone
from typing import Any

import httpx
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from loguru import logger

from nagbot.api.deps import get_config, get_store
from nagbot.core.channels.base import ChannelSendError
from nagbot.core.config.schema import Config
from nagbot.core.notifications.types import PendingDelivery
from nagbot.storage.models import TelegramWebhookResponse
from nagbot.storage.store import ChoreStore

router = APIRouter(tags=["telegram"])

TELEGRAM_API = "https://api.telegram.org/bot{token}"

DONE_CALLBACK_PREFIX = "done:"
DONE_BUTTON_TEXT = "Mark done"
COMPLETION_NOTES = "Completed via Telegram"


class TelegramChannel:
    """Sends due notifications to a single Telegram chat."""

    channel = "telegram"

    def __init__(
        self,
        bot_token: str,
        chat_id: str | int,
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        try:
            self.chat_id = int(str(chat_id).strip())
        except ValueError:
            raise ValueError(
                f"Invalid chat_id '{chat_id}': expected numeric chat id"
            ) from None
        self.bot_token = bot_token
        self.timeout_s = timeout_s
        self._transport = transport

    async def send(self, delivery: PendingDelivery) -> None:
        """Post the notification with a "Mark done" button. Raises ChannelSendError."""
        text = f"<b>{html.escape(delivery.title)}</b>\n{html.escape(delivery.body)}"
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "reply_markup": {
                "inline_keyboard": [
                    [
                        {
                            "text": DONE_BUTTON_TEXT,
                            "callback_data": f"{DONE_CALLBACK_PREFIX}{delivery.chore_id}",
                        }
                    ]
                ]
            },
        }
        try:
            await self._call("sendMessage", payload)
        except ChannelSendError as e:
            raise ChannelSendError(f"Telegram send failed: {e}") from e

    async def answer_callback_query(self, callback_query_id: str, text: str) -> None:
        await self._call(
            "answerCallbackQuery",
            {"callback_query_id": callback_query_id, "text": text},
        )

    async def clear_inline_keyboard(self, chat_id: int, message_id: int) -> None:
        await self._call(
            "editMessageReplyMarkup",
            {
                "chat_id": chat_id,
                "message_id": message_id,
                "reply_markup": {"inline_keyboard": []},
            },
        )

    async def get_updates(
        self, offset: int | None = None, timeout_s: int = 30
    ) -> list[dict[str, Any]]:
        """Long-poll for callback query updates."""
        payload: dict[str, Any] = {
            "timeout": timeout_s,
            "allowed_updates": ["callback_query"],
        }
        if offset is not None:
            payload["offset"] = offset
        # HTTP timeout must outlive the long-poll window
        return await self._call("getUpdates", payload, timeout_s=timeout_s + 10) or []

    async def _call(
        self, method: str, payload: dict[str, Any], timeout_s: float | None = None
    ) -> Any:
        """POST a Bot API method and return its ``result``."""
        url = f"{TELEGRAM_API.format(token=self.bot_token)}/{method}"
        timeout = httpx.Timeout(timeout_s or self.timeout_s)
        try:
            async with httpx.AsyncClient(
                timeout=timeout, transport=self._transport
            ) as client:
                resp = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise ChannelSendError(
                f"{method} request error: {type(e).__name__}: {e}"
            ) from e

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            raise ChannelSendError(
                f"{method} returned {resp.status_code}: unexpected response body"
            )
        if resp.status_code != 200 or not data.get("ok"):
            description = data.get("description") or resp.text[:200]
            raise ChannelSendError(
                f"{method} returned {resp.status_code}: {description}"
            )
        return data.get("result")


# ════════════════════════════════════════════════════════════
# INBOUND - "mark done" callback handling
# ════════════════════════════════════════════════════════════


async def handle_callback_query(
    store: ChoreStore, channel: TelegramChannel, query: dict[str, Any]
) -> str:
    """Handle one inline-button press. Returns the text shown to the user."""
    data = query.get("data")
    message = query.get("message") or {}

    if not data:
        text = "No action attached"
    elif not data.startswith(DONE_CALLBACK_PREFIX):
        text = "Unsupported action"
    else:
        try:
            chore_id = str(uuid.UUID(data[len(DONE_CALLBACK_PREFIX):]))
        except ValueError:
            text = "Invalid chore id"
        else:
            text = await _mark_done(store, channel, chore_id, message)

    callback_id = query.get("id")
    if callback_id:
        try:
            await channel.answer_callback_query(callback_id, text)
        except ChannelSendError as e:
            logger.warning(f"Telegram: failed to answer callback query: {e}")
    return text


async def _mark_done(
    store: ChoreStore,
    channel: TelegramChannel,
    chore_id: str,
    message: dict[str, Any],
) -> str:
    sent_at = None
    if isinstance(message.get("date"), int):
        sent_at = datetime.fromtimestamp(message["date"], tz=timezone.utc)

    try:
        # Second press on the same notification
        if sent_at and store.completion_exists(chore_id, since=sent_at):
            await _clear_keyboard(channel, message)
            return "Already marked done"
        store.create_completion(chore_id, notes=COMPLETION_NOTES)
    except LookupError:
        logger.warning(f"Telegram: mark done for unknown chore {chore_id}")
        return "Failed to mark done"
    except Exception as e:
        logger.error(f"Telegram: failed to mark chore {chore_id} done: {e}")
        return "Failed to mark done"

    logger.info(f"Telegram: chore {chore_id} marked done")
    await _clear_keyboard(channel, message)
    return "Marked done"


async def _clear_keyboard(channel: TelegramChannel, message: dict[str, Any]) -> None:
    chat_id = (message.get("chat") or {}).get("id")
    message_id = message.get("message_id")
    if chat_id is None or message_id is None:
        return
    try:
        await channel.clear_inline_keyboard(chat_id, message_id)
    except ChannelSendError as e:
        logger.warning(f"Telegram: failed to remove inline keyboard: {e}")


class TelegramCallbackListener:
    """Long-polling loop that feeds callback queries to the "mark done" handler."""

    def __init__(
        self,
        store: ChoreStore,
        channel: TelegramChannel,
        poll_timeout_s: int = 30,
        retry_delay_s: float = 5.0,
    ):
        self.store = store
        self.channel = channel
        self.poll_timeout_s = poll_timeout_s
        self.retry_delay_s = retry_delay_s
        self._offset: int | None = None
        self._running = False

    async def start(self) -> None:
        """Poll until stopped (or cancelled)."""
        self._running = True
        logger.info("Telegram callback listener started")
        while self._running:
            try:
                updates = await self.channel.get_updates(
                    self._offset, self.poll_timeout_s
                )
            except Exception as e:
                logger.warning(
                    f"Telegram: getUpdates failed, retrying in {self.retry_delay_s}s: {e}"
                )
                await asyncio.sleep(self.retry_delay_s)
                continue

            for update in updates:
                await self.handle_update(update)

    def stop(self) -> None:
        self._running = False
        logger.info("Telegram callback listener stopped")

    async def handle_update(self, update: dict[str, Any]) -> str | None:
        """Advance the offset past ``update`` and handle it if it is a callback."""
        update_id = update.get("update_id")
        if isinstance(update_id, int):
            self._offset = update_id + 1

        query = update.get("callback_query")
        if not query:
            return None
        try:
            return await handle_callback_query(self.store, self.channel, query)
        except Exception as e:
            logger.error(f"Telegram: callback handling error: {e}")
            return None


# ════════════════════════════════════════════════════════════
# WEBHOOK
# ════════════════════════════════════════════════════════════


@router.post("/webhooks/telegram", response_model=TelegramWebhookResponse)
async def telegram_webhook(
    request: Request,
    config: Config = Depends(get_config),
    store: ChoreStore = Depends(get_store),
    x_telegram_bot_api_secret_token: str | None = Header(None),
):
    """Handle Telegram webhook updates (callback_mode=webhook)."""
    channel: TelegramChannel | None = getattr(request.app.state, "telegram", None)
    if channel is None:
        return JSONResponse({"error": "Telegram channel not enabled"}, status_code=404)

    secret = config.channels.telegram.webhook_secret
    if secret and not secrets.compare_digest(
        x_telegram_bot_api_secret_token or "", secret
    ):
        return JSONResponse({"error": "Invalid secret token"}, status_code=403)

    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        return JSONResponse({"error": "Invalid update body"}, status_code=400)

    query = body.get("callback_query")
    if not query:
        return TelegramWebhookResponse()

    result = await handle_callback_query(store, channel, query)
    return TelegramWebhookResponse(result=result)
