__all__ = ["TelegramClient", "TelegramError"]

from telegram_relay.telegram.client import TelegramClient, TelegramError
