"""
Telegram notifier for approved-order messages.
"""
import logging
from typing import Optional
from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import TelegramError

from error_handler import ConfigurationError

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Single-attempt delivery of formatted messages to Telegram channels"""

    def __init__(self, bot_token: str, timeout: int = 10, bot: Optional[Bot] = None):
        self.timeout = timeout
        self.bot = bot
        if self.bot is None and bot_token:
            self.bot = Bot(token=bot_token)
        logger.info(f"TelegramNotifier initialized (configured: {self.bot is not None})")

    async def send(self, message: str, channel_id: Optional[str]) -> bool:
        """
        Send a message to a channel

        Failures are logged and reported, never retried; duplicate
        suppression belongs to the approval gate.

        Args:
            message: HTML-formatted message text
            channel_id: Telegram chat/channel id of the account

        Returns:
            True if Telegram accepted the message
        """
        try:
            if self.bot is None:
                raise ConfigurationError("Telegram bot token is not configured")
            if not channel_id:
                raise ConfigurationError("Telegram channel id is not configured for this account")

            await self.bot.send_message(
                chat_id=channel_id,
                text=message,
                parse_mode=ParseMode.HTML,
                read_timeout=self.timeout,
                write_timeout=self.timeout,
                connect_timeout=self.timeout
            )
            logger.info(f"Notification sent to channel {channel_id}")
            return True

        except ConfigurationError as e:
            logger.error(f"Cannot send notification: {e.message}")
        except TelegramError as e:
            logger.error(f"Failed to send notification to channel {channel_id}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error sending notification to channel {channel_id}: {e}")
        return False

    async def send_test_notification(self, channel_id: Optional[str]) -> bool:
        """Send a test message to verify the channel is reachable"""
        test_message = (
            "🧪 <b>Test notification</b>\n\n"
            "RetailCRM approval relay is running correctly."
        )
        return await self.send(test_message, channel_id)

    async def close(self):
        """Close the bot HTTP session"""
        if self.bot is None:
            return
        try:
            await self.bot.shutdown()
        except Exception as e:
            logger.error(f"Error closing notifier: {e}")
