"""Common test fixtures for chatroom-sync tests."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from chatroom_sync.config import Settings
from chatroom_sync.schema import CurrentUser

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def at(seconds: float) -> str:
    """ISO timestamp ``seconds`` after T0, as the backend sends it."""
    return (T0 + timedelta(seconds=seconds)).isoformat()


def row(id, body, user="u1", seconds=0.0, topic="topic-A", **extra) -> Dict[str, Any]:
    data = {
        "id": id,
        "thing_id": topic,
        "message": body,
        "user_id": user,
        "date": at(seconds),
        "meta": None,
    }
    data.update(extra)
    return data


def broadcast(body, user="u1", seconds=0.0, **extra) -> Dict[str, Any]:
    data = {"message": body, "user_id": user, "date": at(seconds), "meta": None}
    data.update(extra)
    return data


class FakeChannel:
    """In-memory realtime channel recording what the reconciler registers."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.broadcast_handlers: Dict[str, Callable] = {}
        self.insert_handlers: List[tuple] = []
        self.subscribed = False
        self.sent: List[tuple] = []
        self.broadcast_error: Optional[Exception] = None

    def on_broadcast(self, event, callback) -> None:
        self.broadcast_handlers[event] = callback

    def on_row_insert(self, table, row_filter, callback) -> None:
        self.insert_handlers.append((table, row_filter, callback))

    async def subscribe(self) -> None:
        self.subscribed = True

    async def broadcast(self, event, payload) -> None:
        if self.broadcast_error is not None:
            raise self.broadcast_error
        self.sent.append((event, payload))

    # Helpers for tests to push events as the platform would
    def deliver_broadcast(self, payload, event="message") -> None:
        self.broadcast_handlers[event](payload)

    def deliver_row(self, record) -> None:
        for _, _, callback in self.insert_handlers:
            callback(record)


class FakeBackend:
    def __init__(self) -> None:
        self.rows: List[Dict[str, Any]] = []
        self.select_errors: List[Exception] = []
        self.select_calls: List[Dict[str, Any]] = []
        self.calls: List[tuple] = []
        self.call_error: Optional[Exception] = None
        self.channels: List[FakeChannel] = []
        self.closed: List[FakeChannel] = []
        self.user: Optional[CurrentUser] = CurrentUser(id="u1", name="Ada Lovelace")

    async def select(self, table, columns="*", filters=None, order_by=None, ascending=True):
        self.select_calls.append(
            {"table": table, "columns": columns, "filters": filters, "order_by": order_by}
        )
        if self.select_errors:
            raise self.select_errors.pop(0)
        return list(self.rows)

    def open_channel(self, name):
        channel = FakeChannel(name)
        self.channels.append(channel)
        return channel

    async def close_channel(self, channel) -> None:
        self.closed.append(channel)

    async def call(self, procedure, params):
        self.calls.append((procedure, params))
        if self.call_error is not None:
            raise self.call_error
        return None

    async def current_user(self):
        if self.user is None:
            raise RuntimeError("No active session")
        return self.user


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test files."""
    return tmp_path


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def test_settings(temp_dir: Path, monkeypatch) -> Settings:
    """Create test settings with mock values."""
    for name, value in {
        "SUPABASE_URL": "https://test.supabase.co",
        "SUPABASE_KEY": "test-anon-key",
        "SUPABASE_EMAIL": "ada@example.com",
        "SUPABASE_PASSWORD": "test_password",
    }.items():
        monkeypatch.setenv(name, value)

    settings = Settings()
    settings.logging.file_path = str(temp_dir / "test.log")
    settings.logging.level = "DEBUG"
    return settings
