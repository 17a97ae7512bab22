"""Shared fixtures: in-memory store, scripted broker channel and settings."""

from __future__ import annotations

from collections import deque
from pathlib import Path
from typing import Any, Callable, Iterable

import pytest

from ghmirror.config import ConfigLocator, ConfigRepository, MirrorConfig, PublishTarget
from ghmirror.persister import MemoryPersister
from ghmirror.publisher import BrokerChannel


class FakeChannel(BrokerChannel):
    """Broker channel whose loop is driven explicitly by the test."""

    def __init__(self, auto_ack: bool = False) -> None:
        super().__init__()
        self.auto_ack = auto_ack
        self.published: list[tuple[int, str, str, bool]] = []
        self.pending: deque[Callable[[], None]] = deque()
        self.closed = False
        self.close_calls = 0
        self.on_ready: Callable[[], None] | None = None
        self._last_tag = 0
        self._acked_up_to = 0

    def publish(self, payload: str, routing_key: str, persistent: bool = True) -> int:
        self._last_tag += 1
        self.published.append((self._last_tag, payload, routing_key, persistent))
        return self._last_tag

    def call_soon(self, callback: Callable[[], None]) -> None:
        self.pending.append(callback)

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True

    @property
    def routing_keys(self) -> list[str]:
        return [key for _tag, _payload, key, _persistent in self.published]

    def run_next(self) -> None:
        self.pending.popleft()()

    def run_pending(self) -> None:
        while self.pending:
            self.run_next()

    # Same entry points as AmqpChannel, used by the CLI
    def connect(self, on_ready: Callable[[], None]) -> None:
        self.on_ready = on_ready

    def run(self) -> None:
        if self.on_ready is not None:
            self.on_ready()
        while self.pending:
            self.run_next()
            if self.auto_ack and not self.closed and self._acked_up_to < self._last_tag:
                self._acked_up_to = self._last_tag
                self.dispatch_ack(self._last_tag, True)


@pytest.fixture
def persister() -> MemoryPersister:
    return MemoryPersister()


@pytest.fixture
def make_channel() -> Callable[..., FakeChannel]:
    def _builder(auto_ack: bool = False) -> FakeChannel:
        return FakeChannel(auto_ack=auto_ack)

    return _builder


@pytest.fixture
def events_target() -> PublishTarget:
    return PublishTarget(
        collection="events",
        payload="",
        routing_field="type",
        routing_key_template="evt.%s",
    )


@pytest.fixture
def seed() -> Callable[[MemoryPersister, str, Iterable[dict[str, Any]]], None]:
    def _seed(store: MemoryPersister, collection: str, records: Iterable[dict[str, Any]]) -> None:
        for record in records:
            store.store(collection, record)

    return _seed


@pytest.fixture
def mirror_config() -> MirrorConfig:
    return MirrorConfig(urlbase="https://api.test/", per_page=2, commit_pages_new_repo=2)


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigRepository:
    monkeypatch.setenv("GHMIRROR_HOME", str(tmp_path))
    return ConfigRepository(ConfigLocator(project_root=tmp_path))
