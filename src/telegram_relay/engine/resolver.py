from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Optional, Protocol

from telegram_relay.config.relay import RelayConfig
from telegram_relay.telegram.client import TelegramError
from telegram_relay.types import TelegramUpdate, normalize_username, parse_update

logger = logging.getLogger("telegram_relay.resolver")

_DEFAULT_POLL_TIMEOUT_SECONDS = 30
_DEFAULT_RETRY_SECONDS = 5.0
_DEFAULT_POLL_INTERVAL_SECONDS = 1.0


class ResolverState(str, enum.Enum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"


class UpdatesSource(Protocol):
    async def get_updates(
        self,
        *,
        offset: int | None = None,
        timeout_seconds: int = 0,
    ) -> list[Any]: ...


class ChatIdSink(Protocol):
    @property
    def config(self) -> RelayConfig: ...

    def persist_chat_id(self, chat_id: str) -> RelayConfig: ...


class ChatResolver:
    """Blocks until the configured user has messaged the bot, then stores the chat id.

    Polls `getUpdates` with an increasing offset and takes the chat id of the
    first message whose sender matches `telegram_username`. There is no overall
    timeout: a human has to open the bot and send `/start`.
    """

    def __init__(
        self,
        *,
        store: ChatIdSink,
        client: UpdatesSource,
        poll_timeout_seconds: int = _DEFAULT_POLL_TIMEOUT_SECONDS,
        retry_seconds: float = _DEFAULT_RETRY_SECONDS,
        poll_interval_seconds: float = _DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> None:
        self._store = store
        self._client = client
        self._poll_timeout_seconds = int(max(0, poll_timeout_seconds))
        self._retry_seconds = float(max(0.0, retry_seconds))
        self._poll_interval_seconds = float(max(0.0, poll_interval_seconds))
        self._offset: int | None = None
        self.state = ResolverState.UNRESOLVED

    @property
    def offset(self) -> int | None:
        return self._offset

    async def resolve(self) -> str:
        config = self._store.config
        cached = config.chat_id
        if cached is not None:
            self.state = ResolverState.RESOLVED
            logger.info(
                "chat_id_cached",
                extra={"chat_id": cached, "username": config.telegram_username},
            )
            return cached

        username = normalize_username(config.telegram_username)
        self.state = ResolverState.RESOLVING
        logger.info(
            f"waiting for @{username} to message the bot; ask them to open it and send /start",
            extra={"username": username},
        )

        while True:
            try:
                match = await self._poll_once(username=username)
            except TelegramError as e:
                logger.warning(
                    "get_updates_failed",
                    extra={
                        "endpoint": e.method,
                        "status_code": e.status_code,
                        "offset": self._offset,
                    },
                )
                await asyncio.sleep(self._retry_seconds)
                continue

            if match is not None and match.chat_id is not None:
                self._store.persist_chat_id(match.chat_id)
                self.state = ResolverState.RESOLVED
                logger.info(
                    "chat_id_resolved",
                    extra={"chat_id": match.chat_id, "username": username},
                )
                return match.chat_id

            await asyncio.sleep(self._poll_interval_seconds)

    async def _poll_once(self, *, username: str) -> Optional[TelegramUpdate]:
        raw_updates = await self._client.get_updates(
            offset=self._offset,
            timeout_seconds=self._poll_timeout_seconds,
        )
        for raw in raw_updates:
            update = parse_update(raw)
            if update is None:
                logger.debug("update_skipped", extra={"offset": self._offset})
                continue
            # Never re-read an update once seen.
            self._offset = update.update_id + 1
            if update.username is None or update.chat_id is None:
                continue
            if normalize_username(update.username) == username:
                return update
        return None
