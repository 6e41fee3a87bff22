from __future__ import annotations

import asyncio
import json

import pytest
import pytest_asyncio

from moodroom.config import Settings
from moodroom.runtime import CollabRuntime
from moodroom.runtime_types import ClientConnection, RoomRuntime


class MockWebSocket:
    """Lightweight stand-in for a live socket; records decoded frames."""

    def __init__(self, fail: bool = False) -> None:
        self.sent_messages: list[dict] = []
        self.closed = False
        self.fail = fail

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("Cannot call send once a close message has been sent.")
        self.sent_messages.append(json.loads(data))

    async def close(self, code: int = 1000) -> None:
        self.closed = True

    def last(self, msg_type: str) -> dict | None:
        for msg in reversed(self.sent_messages):
            if msg.get("type") == msg_type:
                return msg
        return None

    def all(self, msg_type: str) -> list[dict]:
        return [m for m in self.sent_messages if m.get("type") == msg_type]

    def types(self) -> list[str]:
        return [m.get("type") for m in self.sent_messages]


class StalledWebSocket(MockWebSocket):
    """A peer whose transport never drains until ``release`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()

    async def send_text(self, data: str) -> None:
        await self.release.wait()
        await super().send_text(data)


def make_member(room: RoomRuntime, conn_id: str, name: str, identity: str) -> ClientConnection:
    connection = ClientConnection(
        conn_id=conn_id,
        identity=identity,
        websocket=MockWebSocket(),
        name=name,
        room_id=room.room_id,
    )
    room.members[conn_id] = connection
    room.identities[identity] = conn_id
    return connection


@pytest.fixture()
def test_settings() -> Settings:
    config = Settings()
    config.history_limit = 100
    config.max_name_length = 50
    config.room_idle_timeout_seconds = 30 * 60
    config.room_sweep_interval_seconds = 5 * 60
    config.outbound_queue_size = 64
    config.trust_forwarded_for = True
    config.turn_gated_games = frozenset()
    return config


@pytest_asyncio.fixture()
async def runtime(test_settings: Settings):
    collab = CollabRuntime(config=test_settings)
    yield collab
    await collab.shutdown()


@pytest.fixture()
def open_client(runtime: CollabRuntime):
    def _open(identity: str = "10.0.0.1", fail: bool = False) -> tuple[ClientConnection, MockWebSocket]:
        ws = MockWebSocket(fail=fail)
        return runtime.open_connection(ws, identity), ws

    return _open


@pytest.fixture()
def send_event(runtime: CollabRuntime):
    """Handle one frame, then wait for every queued outbound frame to be written."""

    async def _send(connection: ClientConnection, payload: dict | str) -> None:
        raw = payload if isinstance(payload, str) else json.dumps(payload)
        await runtime.handle_raw(connection, raw)
        await runtime.broadcaster.flush()

    return _send
