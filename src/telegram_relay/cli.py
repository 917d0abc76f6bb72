from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from telegram_relay.api.app import create_app
from telegram_relay.config.relay import (
    DEFAULT_CONFIG_PATH,
    ConfigError,
    ConfigStore,
    RelayConfig,
    parse_listen_addr,
)
from telegram_relay.engine.resolver import ChatResolver
from telegram_relay.logging_utils import configure_logging
from telegram_relay.settings import Settings
from telegram_relay.telegram.client import TelegramClient, TelegramError
from telegram_relay.types import parse_mode_from_header

app = typer.Typer(no_args_is_help=True, add_completion=False)
logger = logging.getLogger("telegram_relay")

_CONFIG_ARGUMENT_HELP = "Relay config file (JSON)."


def _load_store(path: Path) -> ConfigStore:
    store = ConfigStore(path)
    try:
        store.load()
    except ConfigError as e:
        raise typer.BadParameter(str(e), param_hint="CONFIG") from e
    return store


def _build_client(settings: Settings, config: RelayConfig) -> TelegramClient:
    return TelegramClient(
        bot_token=config.telegram_bot_token,
        base_url=settings.telegram_api_base_url,
        timeout_seconds=settings.telegram_timeout_seconds,
    )


def _build_resolver(
    settings: Settings,
    store: ConfigStore,
    client: TelegramClient,
) -> ChatResolver:
    return ChatResolver(
        store=store,
        client=client,
        poll_timeout_seconds=settings.resolver_poll_timeout_seconds,
        retry_seconds=settings.resolver_retry_seconds,
        poll_interval_seconds=settings.resolver_poll_interval_seconds,
    )


@app.command()
def serve(
    config: Path = typer.Argument(DEFAULT_CONFIG_PATH, help=_CONFIG_ARGUMENT_HELP),
) -> None:
    """
    Resolve the chat id if it is not cached yet, then relay HTTP requests to Telegram.
    """
    settings = Settings()
    configure_logging(settings.log_level)
    store = _load_store(config)
    host, port = parse_listen_addr(store.config.listen_addr)

    async def _run() -> None:
        client = _build_client(settings, store.config)
        try:
            # Nothing can be relayed until the chat id is known.
            chat_id = await _build_resolver(settings, store, client).resolve()
            api = create_app(config=store.config, client=client, chat_id=chat_id)
            server = uvicorn.Server(
                uvicorn.Config(api, host=host, port=port, log_config=None, access_log=True)
            )
            logger.info("relay_listening", extra={"listen_addr": f"{host}:{port}"})
            await server.serve()
        finally:
            await client.aclose()

    try:
        asyncio.run(_run())
    except ConfigError as e:
        logger.error(f"config_persist_failed: {e}", extra={"path": str(config)})
        raise typer.Exit(code=1) from e
    except KeyboardInterrupt:
        logger.info("relay_stopped")


@app.command()
def resolve(
    config: Path = typer.Argument(DEFAULT_CONFIG_PATH, help=_CONFIG_ARGUMENT_HELP),
) -> None:
    """
    Wait for the configured user to message the bot and store the chat id.
    """
    settings = Settings()
    configure_logging(settings.log_level)
    store = _load_store(config)

    async def _run() -> str:
        client = _build_client(settings, store.config)
        try:
            return await _build_resolver(settings, store, client).resolve()
        finally:
            await client.aclose()

    try:
        chat_id = asyncio.run(_run())
    except ConfigError as e:
        logger.error(f"config_persist_failed: {e}", extra={"path": str(config)})
        raise typer.Exit(code=1) from e
    typer.echo({"ok": True, "chat_id": chat_id, "username": store.config.telegram_username})


@app.command()
def send(
    message: str = typer.Argument(..., help="Message text to relay."),
    config: Path = typer.Argument(DEFAULT_CONFIG_PATH, help=_CONFIG_ARGUMENT_HELP),
    parse_mode: Optional[str] = typer.Option(None, help="Formatting mode: markdown|html."),
) -> None:
    """
    Send one message to the resolved chat without starting the server.
    """
    settings = Settings()
    configure_logging(settings.log_level)
    store = _load_store(config)

    chat_id = store.config.chat_id
    if chat_id is None:
        raise typer.BadParameter("telegram_chat_id is not resolved yet; run `resolve` first")
    mode = parse_mode_from_header(parse_mode)
    if parse_mode is not None and mode is None:
        raise typer.BadParameter(
            "parse_mode must be 'markdown' or 'html'",
            param_hint="--parse-mode",
        )

    async def _run() -> None:
        client = _build_client(settings, store.config)
        try:
            await client.send_message(chat_id=chat_id, text=message, parse_mode=mode)
        finally:
            await client.aclose()

    try:
        asyncio.run(_run())
    except TelegramError as e:
        logger.error(
            "telegram_send_failed",
            extra={"endpoint": e.method, "status_code": e.status_code, "chat_id": chat_id},
        )
        typer.echo({"ok": False, "error": str(e)})
        raise typer.Exit(code=1) from e
    typer.echo({"ok": True, "chat_id": chat_id})


@app.command()
def show_config(
    config: Path = typer.Argument(DEFAULT_CONFIG_PATH, help=_CONFIG_ARGUMENT_HELP),
) -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    store = _load_store(config)
    logger.info("loaded_config", extra={"path": str(config)})
    typer.echo(store.config.redacted())
