import asyncio
import json
from pathlib import Path
from typing import Any

import pytest

import telegram_relay.engine.resolver as resolver_module
from telegram_relay.config import ConfigStore
from telegram_relay.engine import ChatResolver, ResolverState
from telegram_relay.telegram import TelegramError


def _message(
    update_id: int,
    *,
    username: str,
    chat_id: int,
    text: str = "/start",
) -> dict[str, Any]:
    return {
        "update_id": update_id,
        "message": {
            "message_id": update_id * 10,
            "from": {"id": chat_id, "is_bot": False, "username": username},
            "chat": {"id": chat_id, "type": "private"},
            "text": text,
        },
    }


class _FakeUpdates:
    def __init__(self, batches: list[Any]) -> None:
        self._batches = list(batches)
        self.offsets: list[int | None] = []
        self.timeouts: list[int] = []

    async def get_updates(
        self,
        *,
        offset: int | None = None,
        timeout_seconds: int = 0,
    ) -> list[Any]:
        self.offsets.append(offset)
        self.timeouts.append(timeout_seconds)
        if not self._batches:
            raise AssertionError("unexpected extra poll")
        batch = self._batches.pop(0)
        if isinstance(batch, Exception):
            raise batch
        return batch


def _store(tmp_path: Path, **extra: object) -> ConfigStore:
    path = tmp_path / "config.json"
    data = {
        "listen_addr": "127.0.0.1:8080",
        "telegram_bot_token": "123:abc",
        "telegram_username": "@Alice",
    } | extra
    path.write_text(json.dumps(data), encoding="utf-8")
    return ConfigStore(path)


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    calls: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        calls.append(seconds)

    monkeypatch.setattr(resolver_module.asyncio, "sleep", fake_sleep)
    return calls


def test_cached_chat_id_skips_polling(tmp_path: Path, sleeps: list[float]) -> None:
    store = _store(tmp_path, telegram_chat_id=99)
    client = _FakeUpdates([])
    resolver = ChatResolver(store=store, client=client)

    chat_id = asyncio.run(resolver.resolve())

    assert chat_id == "99"
    assert client.offsets == []
    assert resolver.state is ResolverState.RESOLVED


def test_resolves_first_matching_user_and_persists(tmp_path: Path, sleeps: list[float]) -> None:
    store = _store(tmp_path)
    client = _FakeUpdates(
        [
            [],
            [
                _message(10, username="bob", chat_id=111),
                _message(11, username="alice", chat_id=222),
                _message(12, username="alice", chat_id=333),
            ],
        ]
    )
    resolver = ChatResolver(
        store=store,
        client=client,
        poll_timeout_seconds=30,
        poll_interval_seconds=1,
    )
    assert resolver.state is ResolverState.UNRESOLVED

    chat_id = asyncio.run(resolver.resolve())

    assert chat_id == "222"
    assert resolver.state is ResolverState.RESOLVED
    assert client.offsets == [None, None]
    assert client.timeouts == [30, 30]
    assert resolver.offset == 12
    assert sleeps == [1.0]
    raw = json.loads(store.path.read_text(encoding="utf-8"))
    assert raw["telegram_chat_id"] == 222


def test_offset_advances_past_non_matching_updates(tmp_path: Path, sleeps: list[float]) -> None:
    store = _store(tmp_path)
    client = _FakeUpdates(
        [
            [_message(7, username="bob", chat_id=1), _message(8, username="carol", chat_id=2)],
            [{"update_id": 9, "my_chat_member": {}}],
            [_message(10, username="ALICE", chat_id=5)],
        ]
    )
    resolver = ChatResolver(store=store, client=client, poll_interval_seconds=0)

    assert asyncio.run(resolver.resolve()) == "5"
    assert client.offsets == [None, 9, 10]


def test_retries_after_telegram_error(tmp_path: Path, sleeps: list[float]) -> None:
    store = _store(tmp_path)
    client = _FakeUpdates(
        [
            TelegramError(method="getUpdates", status_code=502, payload="bad gateway"),
            [_message(1, username="alice", chat_id=42)],
        ]
    )
    resolver = ChatResolver(store=store, client=client, retry_seconds=5)

    assert asyncio.run(resolver.resolve()) == "42"
    assert sleeps == [5.0]


def test_malformed_updates_are_ignored(tmp_path: Path, sleeps: list[float]) -> None:
    store = _store(tmp_path)
    client = _FakeUpdates(
        [
            ["junk", {"no_update_id": True}, {"update_id": 3, "message": "nope"}],
            [_message(4, username="alice", chat_id=8)],
        ]
    )
    resolver = ChatResolver(store=store, client=client, poll_interval_seconds=0)

    assert asyncio.run(resolver.resolve()) == "8"
    assert client.offsets == [None, 4]


def test_second_resolution_is_noop(tmp_path: Path, sleeps: list[float]) -> None:
    store = _store(tmp_path)
    first_client = _FakeUpdates([[_message(1, username="alice", chat_id=42)]])
    first = ChatResolver(store=store, client=first_client)
    asyncio.run(first.resolve())
    content = store.path.read_text(encoding="utf-8")

    reloaded = ConfigStore(store.path)
    client = _FakeUpdates([])
    second = ChatResolver(store=reloaded, client=client)

    assert asyncio.run(second.resolve()) == "42"
    assert client.offsets == []
    assert store.path.read_text(encoding="utf-8") == content
