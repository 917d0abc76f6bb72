from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from telegram_relay.api.routes import build_router
from telegram_relay.config.relay import RelayConfig
from telegram_relay.logging_utils import EndpointFilter
from telegram_relay.telegram.client import TelegramClient

logger = logging.getLogger("telegram_relay.api")


def health_path(path_prefix: Optional[str]) -> str:
    return f"/{path_prefix}/health" if path_prefix else "/health"


def create_app(*, config: RelayConfig, client: TelegramClient, chat_id: str) -> FastAPI:
    """Build the relay app. Routes are mounted once, under `path_prefix` if set."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Liveness probes would otherwise flood the access log.
        access_logger = logging.getLogger("uvicorn.access")
        access_logger.addFilter(EndpointFilter(health_path(config.path_prefix)))
        logger.info("relay_started", extra={"listen_addr": config.listen_addr, "chat_id": chat_id})
        try:
            yield
        finally:
            logger.info("relay_stopped")

    app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.telegram_client = client
    app.state.chat_id = chat_id
    app.include_router(build_router(path_prefix=config.path_prefix))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        error = "not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"ok": False, "error": error},
            headers=getattr(exc, "headers", None),
        )

    return app
