__all__ = ["ChatResolver", "ResolverState"]

from telegram_relay.engine.resolver import ChatResolver, ResolverState
