# File: src/archivemind/infrastructure/notify/telegram.py
"""
Knowledge-base mirror and admin alerts over Telegram.

TelegramNotifier reuses one pooled HTTPX connection for all sends. NullNotifier stands
in when no Telegram chat is configured so callers never branch on configuration.
"""

import asyncio
import logging
from typing import Optional, Union

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import NetworkError, RetryAfter, TelegramError, TimedOut
from telegram.request import HTTPXRequest

from archivemind.config import settings

log = logging.getLogger(__name__)

MAX_MESSAGE_CHARS = 4096


class TelegramNotifier:
    def __init__(self, bot_token: Optional[str] = None,
                 knowledge_base_chat_id: Optional[str] = None,
                 admin_chat_id: Optional[str] = None,
                 bot: Optional[Bot] = None):
        self.bot_token = bot_token or settings.TELEGRAM_BOT_TOKEN
        if not self.bot_token and bot is None:
            raise ValueError("Telegram bot token is required")
        self.knowledge_base_chat_id = knowledge_base_chat_id or settings.KNOWLEDGE_BASE_CHAT_ID
        self.admin_chat_id = admin_chat_id or settings.TELEGRAM_ADMIN_CHAT_ID

        if bot is None:
            request = HTTPXRequest(
                connection_pool_size=8,
                read_timeout=10.0,
                write_timeout=10.0,
                connect_timeout=5.0,
            )
            bot = Bot(token=self.bot_token, request=request)
        self.bot = bot

    async def _send_text(self, chat_id: Union[int, str], text: str, retries: int = 3) -> bool:
        """Send with bounded retries on flood control and transient network errors."""
        if len(text) > MAX_MESSAGE_CHARS:
            text = text[:MAX_MESSAGE_CHARS - 3] + "..."
        for attempt in range(retries + 1):
            try:
                await self.bot.send_message(
                    chat_id=chat_id,
                    text=text,
                    parse_mode=ParseMode.HTML,
                    disable_web_page_preview=True,
                )
                return True
            except RetryAfter as e:
                delay = e.retry_after.total_seconds() if hasattr(e.retry_after, "total_seconds") else float(e.retry_after)
                log.warning(f"Flood limit. Sleeping {delay}s")
                await asyncio.sleep(delay)
            except (TimedOut, NetworkError) as e:
                if attempt == retries:
                    log.error(f"Network failed for {chat_id}: {e}")
                    return False
                await asyncio.sleep(1)
            except TelegramError as e:
                log.error(f"Send failed for {chat_id}: {e}")
                return False
        log.error(f"Giving up on {chat_id} after {retries + 1} attempts")
        return False

    # --- Public API ---

    async def post_resource_digest(self, text: str) -> bool:
        if not self.knowledge_base_chat_id:
            return False
        return await self._send_text(self.knowledge_base_chat_id, text)

    async def send_admin_alert(self, text: str) -> None:
        if self.admin_chat_id:
            await self._send_text(self.admin_chat_id, f"🚨 <b>ARCHIVEMIND ALERT</b>\n{text}")


class NullNotifier:
    """Notifier used when no Telegram chat is configured."""

    async def post_resource_digest(self, text: str) -> bool:
        log.debug("Knowledge base not configured; digest dropped.")
        return False

    async def send_admin_alert(self, text: str) -> None:
        log.warning(f"ADMIN ALERT (no Telegram chat configured): {text}")
