from __future__ import annotations

from typing import Any, Optional, cast

import httpx

from telegram_relay.types import ParseMode

DEFAULT_BASE_URL = "https://api.telegram.org"


class TelegramError(RuntimeError):
    def __init__(self, *, method: str, status_code: int | None, payload: Any) -> None:
        super().__init__(
            f"Telegram API error: method={method} status={status_code} payload={payload!r}"
        )
        self.method = method
        self.status_code = status_code
        self.payload = payload


class TelegramClient:
    def __init__(
        self,
        *,
        bot_token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._bot_token = bot_token.strip()
        self._timeout_seconds = float(timeout_seconds)
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(self._timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send_message(
        self,
        *,
        chat_id: str,
        text: str,
        parse_mode: Optional[ParseMode] = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode is not None:
            payload["parse_mode"] = parse_mode
        data = await self._request("POST", "sendMessage", json=payload)
        result = data.get("result") if isinstance(data, dict) else None
        return cast(dict[str, Any], result) if isinstance(result, dict) else {}

    async def get_updates(
        self,
        *,
        offset: int | None = None,
        timeout_seconds: int = 0,
    ) -> list[Any]:
        params: dict[str, Any] = {"timeout": int(max(0, timeout_seconds))}
        if offset is not None:
            params["offset"] = offset
        # The server holds a long poll open for `timeout` seconds.
        timeout = httpx.Timeout(self._timeout_seconds + params["timeout"])
        data = await self._request("GET", "getUpdates", params=params, timeout=timeout)
        result = data.get("result") if isinstance(data, dict) else None
        if not isinstance(result, list):
            return []
        return result

    async def _request(
        self,
        http_method: str,
        method: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        timeout: httpx.Timeout | None = None,
    ) -> Any:
        url = f"/bot{self._bot_token}/{method}"
        try:
            response = await self._client.request(
                http_method,
                url,
                params=params,
                json=json,
                timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.HTTPError as e:
            # httpx errors may carry the request URL, which embeds the token.
            raise TelegramError(
                method=method,
                status_code=None,
                payload=f"{type(e).__name__}: {self._redact(str(e))}",
            ) from None

        payload: Any
        try:
            payload = response.json()
        except ValueError:
            payload = response.text

        if response.status_code >= 400:
            raise TelegramError(method=method, status_code=response.status_code, payload=payload)
        if isinstance(payload, dict) and payload.get("ok") is False:
            raise TelegramError(method=method, status_code=response.status_code, payload=payload)
        return payload

    def _redact(self, text: str) -> str:
        if not self._bot_token:
            return text
        return text.replace(self._bot_token, "***")
