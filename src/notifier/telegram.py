# src/notifier/telegram.py
import logging

from telegram import Bot
from telegram.error import TelegramError

logger = logging.getLogger(__name__)


class TelegramNotifier:
    def __init__(self, bot_token: str, chat_id: str):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.bot = Bot(token=bot_token)

    async def send_message(self, text: str) -> None:
        await self.bot.send_message(
            chat_id=self.chat_id,
            text=text,
            parse_mode="HTML",
        )

    async def safe_send(self, text: str) -> bool:
        """发送失败只记录日志"""
        try:
            await self.send_message(text)
            return True
        except TelegramError as e:
            logger.error(f"Failed to send Telegram message: {e}")
            return False
