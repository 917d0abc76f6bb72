from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Optional

# Telegram wire values for `parse_mode`.
ParseMode = Literal["MarkdownV2", "HTML"]

_PARSE_MODE_ALIASES: dict[str, ParseMode] = {
    "markdown": "MarkdownV2",
    "html": "HTML",
}


@dataclass(frozen=True)
class OutboundMessage:
    text: str
    parse_mode: Optional[ParseMode] = None


@dataclass(frozen=True)
class TelegramUpdate:
    update_id: int
    chat_id: Optional[str] = None
    username: Optional[str] = None
    text: Optional[str] = None


def parse_mode_from_header(value: str | None) -> Optional[ParseMode]:
    """Map a `telegram-parse-mode` header value to a Telegram parse mode.

    Unknown values fall back to a plain send.
    """
    if value is None:
        return None
    return _PARSE_MODE_ALIASES.get(value.strip().lower())


def normalize_username(username: str) -> str:
    return username.strip().removeprefix("@").lower()


def parse_update(raw: Any) -> Optional[TelegramUpdate]:
    if not isinstance(raw, dict):
        return None
    update_id = raw.get("update_id")
    if not isinstance(update_id, int) or isinstance(update_id, bool):
        return None

    message = raw.get("message") or raw.get("edited_message")
    if not isinstance(message, dict):
        return TelegramUpdate(update_id=update_id)

    sender = message.get("from")
    chat = message.get("chat")
    username = sender.get("username") if isinstance(sender, dict) else None
    chat_id = chat.get("id") if isinstance(chat, dict) else None
    text = message.get("text")
    return TelegramUpdate(
        update_id=update_id,
        chat_id=str(chat_id) if isinstance(chat_id, (int, str)) else None,
        username=username if isinstance(username, str) else None,
        text=text if isinstance(text, str) else None,
    )
