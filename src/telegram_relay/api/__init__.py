__all__ = ["build_router", "create_app"]

from telegram_relay.api.app import create_app
from telegram_relay.api.routes import build_router
