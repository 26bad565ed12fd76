from __future__ import annotations

from typing import Optional
import asyncio
import logging
import os

from telegram import Bot
from telegram.error import TelegramError


class TransportError(RuntimeError):
    pass


class TelegramSender:
    """Delivers replies through the Telegram Bot API. Does not retry."""

    def __init__(self, token: Optional[str] = None, bot: Optional[Bot] = None) -> None:
        if bot is not None:
            self.bot = bot
        else:
            token = token or os.getenv("BOT_TOKEN")
            if not token:
                raise RuntimeError("BOT_TOKEN not configured")
            self.bot = Bot(token=token)
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def _ensure_initialized(self) -> None:
        async with self._init_lock:
            if not self._initialized:
                await self.bot.initialize()
                self._initialized = True

    async def send(self, chat_id: int | str, text: str) -> None:
        try:
            await self._ensure_initialized()
            await self.bot.send_message(chat_id=chat_id, text=text)
        except TelegramError as e:
            logging.getLogger("uvicorn.error").error(
                f"[minepattern] send failed chat_id={chat_id} error={e}"
            )
            raise TransportError(str(e)) from e

    async def close(self) -> None:
        if self._initialized:
            await self.bot.shutdown()
            self._initialized = False
