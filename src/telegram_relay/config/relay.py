from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ValidationError, field_validator

logger = logging.getLogger("telegram_relay.config")

DEFAULT_CONFIG_PATH = Path("config.json")
DEFAULT_LISTEN_ADDR = "127.0.0.1:8080"


class ConfigError(RuntimeError):
    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(f"{message} ({path})" if path is not None else message)
        self.path = path


class RelayConfig(BaseModel):
    listen_addr: str = DEFAULT_LISTEN_ADDR
    telegram_bot_token: str
    telegram_username: str
    telegram_chat_id: Optional[Union[int, str]] = None
    path_prefix: Optional[str] = None

    @field_validator("telegram_bot_token", "telegram_username")
    @classmethod
    def _require_non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("telegram_chat_id")
    @classmethod
    def _normalize_chat_id(cls, value: int | str | None) -> str | None:
        if value is None:
            return None
        if isinstance(value, bool):
            raise ValueError("must be an integer or a string")
        text = str(value).strip()
        return text or None

    @field_validator("path_prefix")
    @classmethod
    def _normalize_prefix(cls, value: str | None) -> str | None:
        if value is None:
            return None
        # Braces would become route path parameters and match anything.
        if "{" in value or "}" in value:
            raise ValueError("must not contain '{' or '}'")
        return value.strip().strip("/") or None

    @field_validator("listen_addr")
    @classmethod
    def _check_listen_addr(cls, value: str) -> str:
        try:
            parse_listen_addr(value)
        except ConfigError as e:
            raise ValueError(str(e)) from e
        return value.strip()

    @property
    def chat_id(self) -> str | None:
        # Validator above normalizes to str.
        return None if self.telegram_chat_id is None else str(self.telegram_chat_id)

    def redacted(self) -> dict[str, Any]:
        data = self.model_dump()
        data["telegram_bot_token"] = "***" if data["telegram_bot_token"] else ""
        return data


def parse_listen_addr(value: str) -> tuple[str, int]:
    """Split `host:port`, `[v6]:port` or `:port` into a host and a port."""
    s = value.strip()
    host, sep, port_s = s.rpartition(":")
    if not sep:
        raise ConfigError(f"listen_addr must be host:port, got {value!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    if not host:
        host = "0.0.0.0"
    if not port_s.isdigit() or not 0 < int(port_s) < 65536:
        raise ConfigError(f"listen_addr has an invalid port: {value!r}")
    return host, int(port_s)


def _read_raw(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigError("config file not found", path=path) from e
    except OSError as e:
        raise ConfigError(f"failed to read config file: {e}", path=path) from e
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"failed to parse config file: {e}", path=path) from e
    if not isinstance(raw, dict):
        raise ConfigError("config file must contain a JSON object", path=path)
    return raw


def _validate(raw: dict[str, Any], *, path: Path) -> RelayConfig:
    try:
        return RelayConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"invalid config: {e}", path=path) from e


def _chat_id_json_value(chat_id: str) -> int | str:
    try:
        return int(chat_id)
    except ValueError:
        return chat_id


def _write_atomic(path: Path, raw: dict[str, Any]) -> None:
    contents = json.dumps(raw, indent=2, ensure_ascii=False) + "\n"
    directory = path.resolve().parent
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(contents)
        os.replace(tmp_name, path)
    except OSError as e:
        Path(tmp_name).unlink(missing_ok=True)
        raise ConfigError(f"failed to write config file: {e}", path=path) from e


def load_relay_config(path: Path) -> RelayConfig:
    return _validate(_read_raw(path), path=path)


def persist_chat_id(path: Path, chat_id: str) -> RelayConfig:
    """Write `telegram_chat_id` into the config file, keeping every other field.

    Writing the chat id that is already stored leaves the file untouched.
    """
    chat_id = str(chat_id).strip()
    if not chat_id:
        raise ConfigError("refusing to persist an empty chat id", path=path)

    raw = _read_raw(path)
    current = _validate(raw, path=path)
    if current.chat_id == chat_id:
        return current

    raw["telegram_chat_id"] = _chat_id_json_value(chat_id)
    updated = _validate(raw, path=path)
    _write_atomic(path, raw)
    logger.info("chat_id_persisted", extra={"path": str(path), "chat_id": chat_id})
    return updated


class ConfigStore:
    """Single-writer handle on the relay config file."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._config: RelayConfig | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def config(self) -> RelayConfig:
        if self._config is None:
            return self.load()
        return self._config

    def load(self) -> RelayConfig:
        self._config = load_relay_config(self._path)
        return self._config

    def persist_chat_id(self, chat_id: str) -> RelayConfig:
        self._config = persist_chat_id(self._path, chat_id)
        return self._config
