__all__ = [
    "ConfigError",
    "ConfigStore",
    "DEFAULT_CONFIG_PATH",
    "RelayConfig",
    "load_relay_config",
    "parse_listen_addr",
    "persist_chat_id",
]

from telegram_relay.config.relay import (
    DEFAULT_CONFIG_PATH,
    ConfigError,
    ConfigStore,
    RelayConfig,
    load_relay_config,
    parse_listen_addr,
    persist_chat_id,
)
