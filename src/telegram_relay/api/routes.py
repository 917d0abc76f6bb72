from __future__ import annotations

import json
import logging
from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from telegram_relay.telegram.client import TelegramClient, TelegramError
from telegram_relay.types import OutboundMessage, parse_mode_from_header

logger = logging.getLogger("telegram_relay.api")

PARSE_MODE_HEADER = "telegram-parse-mode"


class BadRequest(ValueError):
    pass


def get_telegram_client(request: Request) -> TelegramClient:
    return request.app.state.telegram_client


def get_chat_id(request: Request) -> str:
    return request.app.state.chat_id


def _route_paths(prefix: Optional[str], *paths: str) -> list[str]:
    if not prefix:
        return list(paths)
    mounted: list[str] = []
    for path in paths:
        if path == "/":
            mounted.extend([f"/{prefix}", f"/{prefix}/"])
        else:
            mounted.append(f"/{prefix}{path}")
    return mounted


def _is_json(content_type: str | None) -> bool:
    return (content_type or "").strip().lower().startswith("application/json")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": message})


def extract_message(
    *,
    body: bytes,
    content_type: str | None,
    parse_mode_header: str | None,
) -> OutboundMessage:
    """Turn an inbound request body into the message to relay.

    JSON bodies must be an object with a string `message`; anything else is
    relayed verbatim as UTF-8 text.
    """
    parse_mode = parse_mode_from_header(parse_mode_header)
    if _is_json(content_type):
        try:
            payload: Any = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise BadRequest(f"invalid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise BadRequest("invalid JSON: expected an object")
        message = payload.get("message")
        if not isinstance(message, str):
            raise BadRequest("invalid JSON: `message` must be a string")
        return OutboundMessage(text=message, parse_mode=parse_mode)

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise BadRequest(f"invalid UTF-8 in request body: {e}") from e
    if not text:
        raise BadRequest("empty body")
    return OutboundMessage(text=text, parse_mode=parse_mode)


async def send_message(
    request: Request,
    client: TelegramClient = Depends(get_telegram_client),
    chat_id: str = Depends(get_chat_id),
) -> Union[JSONResponse, dict[str, Any]]:
    body = await request.body()
    try:
        message = extract_message(
            body=body,
            content_type=request.headers.get("content-type"),
            parse_mode_header=request.headers.get(PARSE_MODE_HEADER),
        )
    except BadRequest as e:
        logger.warning(f"bad_request: {e}", extra={"path": request.url.path, "status_code": 400})
        return _error(400, str(e))

    try:
        await client.send_message(chat_id=chat_id, text=message.text, parse_mode=message.parse_mode)
    except TelegramError as e:
        logger.error(
            "telegram_send_failed",
            extra={"endpoint": e.method, "status_code": e.status_code, "chat_id": chat_id},
        )
        return _error(502, f"telegram send failed: {e}")

    logger.debug("message_relayed", extra={"chat_id": chat_id, "path": request.url.path})
    return {"ok": True, "status": "sent"}


async def health() -> dict[str, str]:
    return {"status": "ok"}


def build_router(*, path_prefix: Optional[str] = None) -> APIRouter:
    router = APIRouter()
    for path in _route_paths(path_prefix, "/", "/send"):
        router.add_api_route(path, send_message, methods=["POST"], response_model=None)
    for path in _route_paths(path_prefix, "/health"):
        router.add_api_route(path, health, methods=["GET"], response_model=None)
    return router
